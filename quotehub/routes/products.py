import uuid
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import Product, QuoteMaterial, User
from ..schemas.catalog import ProductIn, ProductOut
from ..services.decimal_bridge import to_storage


router = APIRouter(prefix="/products", tags=["products"])


def _own_product(db: Session, product_id: uuid.UUID, me: User) -> Product:
    # Another user's product is reported exactly like a missing one
    row = db.query(Product).filter(Product.id == product_id, Product.created_by == me.id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Product not found")
    return row


@router.get("", response_model=List[ProductOut])
def list_products(q: str = Query(""), db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    query = db.query(Product).filter(Product.created_by == me.id)
    if q:
        query = query.filter(Product.name.ilike(f"%{q}%"))
    return [ProductOut.from_row(p) for p in query.order_by(Product.name.asc()).limit(50).all()]


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: uuid.UUID, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return ProductOut.from_row(_own_product(db, product_id, me))


@router.post("", response_model=ProductOut, status_code=201)
def create_product(body: ProductIn, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    row = Product(
        created_by=me.id,
        name=body.name,
        description=body.description,
        unit=body.unit,
        unit_price=to_storage(body.unit_price, field="unit_price"),
        notes=body.notes,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return ProductOut.from_row(row)


@router.put("/{product_id}", response_model=ProductOut)
def update_product(product_id: uuid.UUID, body: ProductIn, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    row = _own_product(db, product_id, me)
    data = body.model_dump(exclude_unset=True)
    if "unit_price" in data:
        data["unit_price"] = to_storage(data["unit_price"], field="unit_price")
    for k, v in data.items():
        setattr(row, k, v)
    row.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(row)
    return ProductOut.from_row(row)


@router.delete("/{product_id}")
def delete_product(product_id: uuid.UUID, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    """Delete a catalog product. Materials that used it keep their own name and price."""
    row = _own_product(db, product_id, me)
    db.query(QuoteMaterial).filter(QuoteMaterial.product_id == row.id).update(
        {QuoteMaterial.product_id: None}, synchronize_session=False
    )
    db.delete(row)
    db.commit()
    return {"id": str(product_id), "status": "ok"}
