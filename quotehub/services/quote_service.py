"""
Quote lifecycle and the read projection that pairs a quote with its totals.
"""
import uuid
from datetime import datetime
from typing import Any, List, Optional

import structlog

from ..config import settings
from ..errors import NotFound, ValidationError
from ..models.models import Quote
from ..schemas.quotes import (
    DeletedOut,
    MaterialOut,
    QuoteCreate,
    QuoteDetail,
    QuoteOut,
    QuoteSummary,
    QuoteUpdate,
    TaskDetail,
    TaskLineOut,
    TaskOut,
    TotalsOut,
    validate_payload,
)
from .audit import build_audit_log, pending_changes, snapshot
from .decimal_bridge import to_storage
from .formatting import format_totals
from .ownership import require_owner
from .pricing import compute_totals, group_materials, task_line_totals
from .store import QuoteStore
from .workflow import INITIAL_STATUS, QuoteStatus


logger = structlog.get_logger(__name__)

QUOTE_FIELDS = ("title", "customer_id", "notes")


def _check_customer(store: QuoteStore, acting_user_id: uuid.UUID, customer_id: Optional[uuid.UUID]) -> None:
    if customer_id is None:
        return
    customer = store.get_customer(customer_id)
    # Another user's customer is reported exactly like a missing one
    if customer is None or customer.owner_id != acting_user_id:
        raise NotFound("Customer not found")


def create_quote(store: QuoteStore, acting_user_id: uuid.UUID, payload: Any) -> QuoteOut:
    data = validate_payload(QuoteCreate, payload)
    _check_customer(store, acting_user_id, data.customer_id)

    markup = data.markup_percentage
    if markup is None:
        markup = settings.default_markup_percentage

    quote = Quote(
        id=uuid.uuid4(),
        owner_id=acting_user_id,
        customer_id=data.customer_id,
        sequential_id=store.next_sequential_id(acting_user_id),
        title=data.title,
        status=INITIAL_STATUS.value,
        complexity_charge=to_storage(data.complexity_charge, field="complexity_charge"),
        markup_percentage=to_storage(markup, field="markup_percentage"),
        notes=data.notes,
    )
    with store.transaction():
        store.add(quote)
        store.add(build_audit_log("quote", quote.id, "CREATE", actor_id=acting_user_id,
                                  changes_json=snapshot(quote, QUOTE_FIELDS),
                                  context={"quote_id": str(quote.id)}))

    logger.info("quote_created", quote_id=str(quote.id), owner_id=str(acting_user_id))
    return QuoteOut.from_row(quote)


def update_quote(store: QuoteStore, acting_user_id: uuid.UUID, quote_id: uuid.UUID, payload: Any) -> QuoteOut:
    data = validate_payload(QuoteUpdate, payload)
    chain = require_owner(store, acting_user_id, "quote", quote_id)
    quote = chain.quote

    changes_in = data.model_dump(exclude_unset=True)
    if "customer_id" in changes_in:
        _check_customer(store, acting_user_id, changes_in["customer_id"])

    changes = pending_changes(quote, QUOTE_FIELDS, changes_in)
    if not changes:
        return QuoteOut.from_row(quote)

    with store.transaction():
        for key, value in changes_in.items():
            setattr(quote, key, value)
        quote.updated_at = datetime.utcnow()
        store.add(build_audit_log("quote", quote.id, "UPDATE", actor_id=acting_user_id,
                                  changes_json=changes,
                                  context={"quote_id": str(quote.id)}))
    return QuoteOut.from_row(quote)


def delete_quote(store: QuoteStore, acting_user_id: uuid.UUID, quote_id: uuid.UUID) -> DeletedOut:
    """Delete a quote; its tasks and their materials go with it."""
    chain = require_owner(store, acting_user_id, "quote", quote_id)
    with store.transaction():
        store.add(build_audit_log("quote", quote_id, "DELETE", actor_id=acting_user_id,
                                  changes_json=snapshot(chain.quote, QUOTE_FIELDS + ("status",)),
                                  context={"quote_id": str(quote_id)}))
        store.delete(chain.quote)
    logger.info("quote_deleted", quote_id=str(quote_id))
    return DeletedOut(id=quote_id, quote_id=quote_id)


def load_quote_items(store: QuoteStore, quote: Quote):
    tasks = store.list_tasks(quote.id)
    materials_by_task = group_materials(store.list_materials([t.id for t in tasks]))
    return tasks, materials_by_task


def get_quote_with_totals(store: QuoteStore, acting_user_id: uuid.UUID, quote_id: uuid.UUID) -> QuoteDetail:
    chain = require_owner(store, acting_user_id, "quote", quote_id)
    quote = chain.quote
    tasks, materials_by_task = load_quote_items(store, quote)

    totals = compute_totals(quote, tasks, materials_by_task)
    lines = task_line_totals(tasks, materials_by_task)

    task_details = []
    for task in tasks:
        detail = TaskDetail(
            **TaskOut.from_row(task).model_dump(),
            materials=[MaterialOut.from_row(m, quote.id) for m in materials_by_task.get(task.id, [])],
            line=TaskLineOut.from_line(lines[task.id]),
        )
        task_details.append(detail)

    return QuoteDetail(
        quote=QuoteOut.from_row(quote),
        tasks=task_details,
        totals=TotalsOut.from_totals(totals),
        formatted=format_totals(totals),
    )


def list_quotes(store: QuoteStore, acting_user_id: uuid.UUID, status: Optional[str] = None) -> List[QuoteSummary]:
    if status is not None:
        try:
            status = QuoteStatus(status).value
        except ValueError:
            raise ValidationError(["status"], "Unknown quote status")

    out = []
    for quote in store.list_quotes(acting_user_id, status):
        tasks, materials_by_task = load_quote_items(store, quote)
        totals = compute_totals(quote, tasks, materials_by_task)
        out.append(QuoteSummary(**QuoteOut.from_row(quote).model_dump(), grand_total=totals.grand_total))
    return out
