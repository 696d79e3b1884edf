import uuid
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import Customer, Quote, User
from ..schemas.catalog import CustomerIn, CustomerOut


router = APIRouter(prefix="/customers", tags=["customers"])


def _own_customer(db: Session, customer_id: uuid.UUID, me: User) -> Customer:
    row = db.query(Customer).filter(Customer.id == customer_id, Customer.owner_id == me.id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Customer not found")
    return row


@router.get("", response_model=List[CustomerOut])
def list_customers(db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return db.query(Customer).filter(Customer.owner_id == me.id).order_by(Customer.name.asc()).all()


@router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(customer_id: uuid.UUID, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return _own_customer(db, customer_id, me)


@router.post("", response_model=CustomerOut, status_code=201)
def create_customer(body: CustomerIn, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    row = Customer(owner_id=me.id, **body.model_dump())
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.put("/{customer_id}", response_model=CustomerOut)
def update_customer(customer_id: uuid.UUID, body: CustomerIn, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    row = _own_customer(db, customer_id, me)
    for k, v in body.model_dump().items():
        setattr(row, k, v)
    row.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(row)
    return row


@router.delete("/{customer_id}")
def delete_customer(customer_id: uuid.UUID, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    """Delete a customer. Their quotes stay, detached from the customer."""
    row = _own_customer(db, customer_id, me)
    db.query(Quote).filter(Quote.customer_id == row.id).update(
        {Quote.customer_id: None}, synchronize_session=False
    )
    db.delete(row)
    db.commit()
    return {"id": str(customer_id), "status": "ok"}
