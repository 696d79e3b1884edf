import uuid

from fastapi import APIRouter, Depends

from ..auth.security import get_current_user
from ..models.models import User
from ..schemas.quotes import DeletedOut, MaterialCreate, MaterialOut, TaskOut, TaskUpdate
from ..services import mutations
from ..services.store import SqlQuoteStore
from .deps import get_store


router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.patch("/{task_id}", response_model=TaskOut)
def update_task(task_id: uuid.UUID, body: TaskUpdate, store: SqlQuoteStore = Depends(get_store), me: User = Depends(get_current_user)):
    return mutations.update_task(store, me.id, task_id, body)


@router.delete("/{task_id}", response_model=DeletedOut)
def delete_task(task_id: uuid.UUID, store: SqlQuoteStore = Depends(get_store), me: User = Depends(get_current_user)):
    return mutations.delete_task(store, me.id, task_id)


@router.post("/{task_id}/materials", response_model=MaterialOut, status_code=201)
def create_material(
    task_id: uuid.UUID,
    body: MaterialCreate,
    store: SqlQuoteStore = Depends(get_store),
    me: User = Depends(get_current_user),
):
    return mutations.create_material(store, me.id, task_id, body)
