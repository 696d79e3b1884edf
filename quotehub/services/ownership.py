"""
Ownership checks for quotes and their children.

A material is owned through its task, a task through its quote, and a quote
by the user in ``Quote.owner_id``. Every hop is read independently from the
store; nothing is inferred from relationships already loaded on an object.
"""
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from ..errors import Forbidden, NotFound
from ..models.models import Quote, QuoteMaterial, QuoteTask
from .store import QuoteStore


logger = structlog.get_logger(__name__)

ENTITY_KINDS = ("quote", "task", "material")


class Verdict(str, Enum):
    AUTHORIZED = "authorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class OwnershipChain:
    verdict: Verdict
    quote: Optional[Quote] = None
    task: Optional[QuoteTask] = None
    material: Optional[QuoteMaterial] = None

    @property
    def quote_id(self) -> Optional[uuid.UUID]:
        return self.quote.id if self.quote is not None else None


def resolve(store: QuoteStore, acting_user_id: uuid.UUID, kind: str, entity_id: uuid.UUID) -> OwnershipChain:
    if kind not in ENTITY_KINDS:
        raise ValueError(f"Unknown entity kind: {kind}")

    material = task = None
    if kind == "material":
        material = store.get_material(entity_id)
        if material is None:
            return OwnershipChain(Verdict.NOT_FOUND)
        task_id = material.task_id
    elif kind == "task":
        task_id = entity_id

    if kind in ("material", "task"):
        task = store.get_task(task_id)
        if task is None:
            return OwnershipChain(Verdict.NOT_FOUND, material=material)
        quote_id = task.quote_id
    else:
        quote_id = entity_id

    quote = store.get_quote(quote_id)
    if quote is None:
        return OwnershipChain(Verdict.NOT_FOUND, task=task, material=material)

    if quote.owner_id != acting_user_id:
        return OwnershipChain(Verdict.FORBIDDEN, quote=quote, task=task, material=material)
    return OwnershipChain(Verdict.AUTHORIZED, quote=quote, task=task, material=material)


def authorize(store: QuoteStore, acting_user_id: uuid.UUID, kind: str, entity_id: uuid.UUID) -> Verdict:
    return resolve(store, acting_user_id, kind, entity_id).verdict


def require_owner(store: QuoteStore, acting_user_id: uuid.UUID, kind: str, entity_id: uuid.UUID) -> OwnershipChain:
    """
    Resolve the chain and raise unless the acting user owns it.

    NotFound covers both a missing entity and a broken parent link; the
    log line keeps Forbidden and NotFound apart for auditing.
    """
    chain = resolve(store, acting_user_id, kind, entity_id)
    if chain.verdict is Verdict.AUTHORIZED:
        return chain
    logger.warning(
        "authorization_denied",
        verdict=chain.verdict.value,
        kind=kind,
        entity_id=str(entity_id),
        actor_id=str(acting_user_id),
    )
    if chain.verdict is Verdict.FORBIDDEN:
        raise Forbidden(f"You don't have permission to modify this {kind}")
    raise NotFound(f"{kind.capitalize()} not found")
