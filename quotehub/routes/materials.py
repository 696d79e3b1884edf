import uuid

from fastapi import APIRouter, Depends

from ..auth.security import get_current_user
from ..models.models import User
from ..schemas.quotes import DeletedOut, MaterialOut, MaterialUpdate
from ..services import mutations
from ..services.store import SqlQuoteStore
from .deps import get_store


router = APIRouter(prefix="/materials", tags=["materials"])


@router.patch("/{material_id}", response_model=MaterialOut)
def update_material(
    material_id: uuid.UUID,
    body: MaterialUpdate,
    store: SqlQuoteStore = Depends(get_store),
    me: User = Depends(get_current_user),
):
    return mutations.update_material(store, me.id, material_id, body)


@router.delete("/{material_id}", response_model=DeletedOut)
def delete_material(material_id: uuid.UUID, store: SqlQuoteStore = Depends(get_store), me: User = Depends(get_current_user)):
    return mutations.delete_material(store, me.id, material_id)
