"""
Create/update/delete for quote tasks and materials, plus quote charge and
status updates.

Every operation runs in the same order:

1. validate the payload (ValidationError, nothing read yet)
2. walk the ownership chain (Forbidden / NotFound, nothing written yet)
3. convert money fields to storage strings
4. write the row and its audit entry in one transaction (PersistenceError)
5. return the entity with Decimal money fields and its quote id

An update that would not change any stored value returns the entity as it
is, without a write or an audit entry.
"""
import uuid
from datetime import datetime
from typing import Any

import structlog

from ..config import settings
from ..errors import NotFound, ValidationError
from ..models.models import QuoteMaterial, QuoteTask
from ..schemas.quotes import (
    DeletedOut,
    MaterialCreate,
    MaterialOut,
    MaterialUpdate,
    QuoteChargesUpdate,
    QuoteOut,
    QuoteStatusUpdate,
    TaskCreate,
    TaskDetail,
    TaskLineOut,
    TaskOut,
    TaskUpdate,
    validate_payload,
)
from .audit import build_audit_log, pending_changes, snapshot
from .decimal_bridge import to_storage
from .ownership import require_owner
from .pricing import MaterialType, task_line_totals
from .store import QuoteStore
from .workflow import check_transition


logger = structlog.get_logger(__name__)

TASK_FIELDS = ("description", "price", "estimated_materials_cost", "order", "material_type")
MATERIAL_FIELDS = ("product_id", "name", "description", "quantity", "unit_price", "notes")
CHARGE_FIELDS = ("complexity_charge", "markup_percentage")
MONEY_FIELDS = frozenset({"price", "estimated_materials_cost", "unit_price", "complexity_charge", "markup_percentage"})


def _storage_values(data: dict) -> dict:
    out = {}
    for key, value in data.items():
        if key in MONEY_FIELDS:
            out[key] = to_storage(value, field=key)
        elif isinstance(value, MaterialType):
            out[key] = value.value
        else:
            out[key] = value
    return out


def _audit(store: QuoteStore, entity_type: str, entity_id, action: str, actor_id, quote_id, changes=None, task_id=None):
    context = {"quote_id": str(quote_id)}
    if task_id is not None:
        context["task_id"] = str(task_id)
    store.add(
        build_audit_log(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            changes_json=changes,
            context=context,
        )
    )


def _owned_product(store: QuoteStore, acting_user_id: uuid.UUID, product_id: uuid.UUID):
    product = store.get_product(product_id)
    # Catalogs are per user; someone else's product is reported as missing
    if product is None or product.created_by != acting_user_id:
        raise NotFound("Product not found")
    return product


def _apply_product_defaults(store: QuoteStore, acting_user_id: uuid.UUID, data: MaterialCreate) -> dict:
    values = data.model_dump()
    if data.product_id is None:
        return values
    product = _owned_product(store, acting_user_id, data.product_id)
    if values.get("name") is None:
        values["name"] = product.name
    if values.get("description") is None:
        values["description"] = product.description
    if values.get("unit_price") is None:
        values["unit_price"] = product.unit_price
    return values


# ===================== Tasks =====================

def create_task(store: QuoteStore, acting_user_id: uuid.UUID, quote_id: uuid.UUID, payload: Any) -> TaskDetail:
    """
    Add a task to a quote. An itemized task may bring its first materials
    along; the task, its materials and their audit entries commit together.
    """
    data = validate_payload(TaskCreate, payload)
    chain = require_owner(store, acting_user_id, "quote", quote_id)

    values = _storage_values(data.model_dump(exclude={"order", "materials"}))
    order = data.order if data.order is not None else store.next_task_order(chain.quote.id)
    task = QuoteTask(id=uuid.uuid4(), quote_id=chain.quote.id, order=order, **values)

    materials = []
    for item in data.materials:
        item_values = _storage_values(_apply_product_defaults(store, acting_user_id, item))
        materials.append(QuoteMaterial(id=uuid.uuid4(), task_id=task.id, **item_values))

    with store.transaction():
        store.add(task)
        _audit(store, "task", task.id, "CREATE", acting_user_id, chain.quote.id,
               changes=snapshot(task, TASK_FIELDS))
        for material in materials:
            store.add(material)
            _audit(store, "material", material.id, "CREATE", acting_user_id, chain.quote.id,
                   changes=snapshot(material, MATERIAL_FIELDS), task_id=task.id)

    logger.info("task_created", task_id=str(task.id), quote_id=str(chain.quote.id), materials=len(materials))
    line = task_line_totals([task], {task.id: materials})[task.id]
    return TaskDetail(
        **TaskOut.from_row(task).model_dump(),
        materials=[MaterialOut.from_row(m, chain.quote.id) for m in materials],
        line=TaskLineOut.from_line(line),
    )


def update_task(store: QuoteStore, acting_user_id: uuid.UUID, task_id: uuid.UUID, payload: Any) -> TaskOut:
    data = validate_payload(TaskUpdate, payload)
    chain = require_owner(store, acting_user_id, "task", task_id)
    task = chain.task

    values = _storage_values(data.model_dump(exclude_unset=True))
    changes = pending_changes(task, TASK_FIELDS, values)
    if not changes:
        return TaskOut.from_row(task)

    with store.transaction():
        for key, value in values.items():
            setattr(task, key, value)
        task.updated_at = datetime.utcnow()
        _audit(store, "task", task.id, "UPDATE", acting_user_id, chain.quote.id, changes=changes)

    logger.info("task_updated", task_id=str(task_id), quote_id=str(chain.quote_id), fields=sorted(changes))
    return TaskOut.from_row(task)


def delete_task(store: QuoteStore, acting_user_id: uuid.UUID, task_id: uuid.UUID) -> DeletedOut:
    chain = require_owner(store, acting_user_id, "task", task_id)
    quote_id = chain.quote.id

    with store.transaction():
        _audit(store, "task", task_id, "DELETE", acting_user_id, quote_id,
               changes=snapshot(chain.task, TASK_FIELDS))
        store.delete(chain.task)

    logger.info("task_deleted", task_id=str(task_id), quote_id=str(quote_id))
    return DeletedOut(id=task_id, quote_id=quote_id)


# ===================== Materials =====================

def create_material(store: QuoteStore, acting_user_id: uuid.UUID, task_id: uuid.UUID, payload: Any) -> MaterialOut:
    data = validate_payload(MaterialCreate, payload)
    chain = require_owner(store, acting_user_id, "task", task_id)

    if chain.task.material_type == MaterialType.LUMPSUM.value:
        if settings.reject_materials_on_lumpsum:
            raise ValidationError(["task_id"], "Task uses a lump-sum materials estimate")
        logger.warning("material_on_lumpsum_task", task_id=str(task_id), quote_id=str(chain.quote_id))

    values = _storage_values(_apply_product_defaults(store, acting_user_id, data))
    material = QuoteMaterial(id=uuid.uuid4(), task_id=chain.task.id, **values)

    with store.transaction():
        store.add(material)
        _audit(store, "material", material.id, "CREATE", acting_user_id, chain.quote.id,
               changes=snapshot(material, MATERIAL_FIELDS), task_id=chain.task.id)

    logger.info("material_created", material_id=str(material.id), task_id=str(task_id))
    return MaterialOut.from_row(material, chain.quote.id)


def update_material(store: QuoteStore, acting_user_id: uuid.UUID, material_id: uuid.UUID, payload: Any) -> MaterialOut:
    data = validate_payload(MaterialUpdate, payload)
    chain = require_owner(store, acting_user_id, "material", material_id)
    material = chain.material

    changes_in = data.model_dump(exclude_unset=True)
    if changes_in.get("product_id") is not None:
        _owned_product(store, acting_user_id, changes_in["product_id"])

    values = _storage_values(changes_in)
    changes = pending_changes(material, MATERIAL_FIELDS, values)
    if not changes:
        return MaterialOut.from_row(material, chain.quote.id)

    with store.transaction():
        for key, value in values.items():
            setattr(material, key, value)
        material.updated_at = datetime.utcnow()
        _audit(store, "material", material.id, "UPDATE", acting_user_id, chain.quote.id,
               changes=changes, task_id=chain.task.id)

    logger.info("material_updated", material_id=str(material_id), fields=sorted(changes))
    return MaterialOut.from_row(material, chain.quote.id)


def delete_material(store: QuoteStore, acting_user_id: uuid.UUID, material_id: uuid.UUID) -> DeletedOut:
    chain = require_owner(store, acting_user_id, "material", material_id)
    quote_id = chain.quote.id

    with store.transaction():
        _audit(store, "material", material_id, "DELETE", acting_user_id, quote_id,
               changes=snapshot(chain.material, MATERIAL_FIELDS), task_id=chain.task.id)
        store.delete(chain.material)

    logger.info("material_deleted", material_id=str(material_id), quote_id=str(quote_id))
    return DeletedOut(id=material_id, quote_id=quote_id)


# ===================== Quote charges & status =====================

def update_quote_charges(store: QuoteStore, acting_user_id: uuid.UUID, quote_id: uuid.UUID, payload: Any) -> QuoteOut:
    data = validate_payload(QuoteChargesUpdate, payload)
    chain = require_owner(store, acting_user_id, "quote", quote_id)
    quote = chain.quote

    values = _storage_values(data.model_dump())
    changes = pending_changes(quote, CHARGE_FIELDS, values)
    if not changes:
        return QuoteOut.from_row(quote)

    with store.transaction():
        for key, value in values.items():
            setattr(quote, key, value)
        quote.updated_at = datetime.utcnow()
        _audit(store, "quote", quote.id, "UPDATE", acting_user_id, quote.id, changes=changes)

    logger.info("quote_charges_updated", quote_id=str(quote_id))
    return QuoteOut.from_row(quote)


def update_quote_status(store: QuoteStore, acting_user_id: uuid.UUID, quote_id: uuid.UUID, payload: Any) -> QuoteOut:
    data = validate_payload(QuoteStatusUpdate, payload)
    chain = require_owner(store, acting_user_id, "quote", quote_id)
    quote = chain.quote

    previous = quote.status
    target = check_transition(previous, data.status, enforce=settings.enforce_status_transitions)
    if target.value == previous:
        return QuoteOut.from_row(quote)

    with store.transaction():
        quote.status = target.value
        quote.updated_at = datetime.utcnow()
        _audit(store, "quote", quote.id, "STATUS", acting_user_id, quote.id,
               changes={"status": {"before": previous, "after": target.value}})

    logger.info("quote_status_changed", quote_id=str(quote_id), from_status=previous, to_status=target.value)
    return QuoteOut.from_row(quote)
