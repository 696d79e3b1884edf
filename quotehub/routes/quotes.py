import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..auth.security import get_current_user
from ..models.models import User
from ..schemas.quotes import (
    DeletedOut,
    QuoteChargesUpdate,
    QuoteCreate,
    QuoteDetail,
    QuoteOut,
    QuoteStatusUpdate,
    QuoteSummary,
    QuoteUpdate,
    TaskCreate,
    TaskDetail,
)
from ..services import mutations, quote_service
from ..services.store import SqlQuoteStore
from .deps import get_store


router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.get("", response_model=List[QuoteSummary])
def list_quotes(
    status: Optional[str] = Query(None),
    store: SqlQuoteStore = Depends(get_store),
    me: User = Depends(get_current_user),
):
    return quote_service.list_quotes(store, me.id, status)


@router.post("", response_model=QuoteOut, status_code=201)
def create_quote(body: QuoteCreate, store: SqlQuoteStore = Depends(get_store), me: User = Depends(get_current_user)):
    return quote_service.create_quote(store, me.id, body)


@router.get("/{quote_id}", response_model=QuoteDetail)
def get_quote(quote_id: uuid.UUID, store: SqlQuoteStore = Depends(get_store), me: User = Depends(get_current_user)):
    return quote_service.get_quote_with_totals(store, me.id, quote_id)


@router.patch("/{quote_id}", response_model=QuoteOut)
def update_quote(
    quote_id: uuid.UUID,
    body: QuoteUpdate,
    store: SqlQuoteStore = Depends(get_store),
    me: User = Depends(get_current_user),
):
    return quote_service.update_quote(store, me.id, quote_id, body)


@router.patch("/{quote_id}/charges", response_model=QuoteOut)
def update_quote_charges(
    quote_id: uuid.UUID,
    body: QuoteChargesUpdate,
    store: SqlQuoteStore = Depends(get_store),
    me: User = Depends(get_current_user),
):
    return mutations.update_quote_charges(store, me.id, quote_id, body)


@router.patch("/{quote_id}/status", response_model=QuoteOut)
def update_quote_status(
    quote_id: uuid.UUID,
    body: QuoteStatusUpdate,
    store: SqlQuoteStore = Depends(get_store),
    me: User = Depends(get_current_user),
):
    return mutations.update_quote_status(store, me.id, quote_id, body)


@router.delete("/{quote_id}", response_model=DeletedOut)
def delete_quote(quote_id: uuid.UUID, store: SqlQuoteStore = Depends(get_store), me: User = Depends(get_current_user)):
    return quote_service.delete_quote(store, me.id, quote_id)


@router.post("/{quote_id}/tasks", response_model=TaskDetail, status_code=201)
def create_task(
    quote_id: uuid.UUID,
    body: TaskCreate,
    store: SqlQuoteStore = Depends(get_store),
    me: User = Depends(get_current_user),
):
    return mutations.create_task(store, me.id, quote_id, body)
