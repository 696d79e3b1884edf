from enum import Enum

import structlog

from ..errors import ValidationError


logger = structlog.get_logger(__name__)


class QuoteStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


INITIAL_STATUS = QuoteStatus.DRAFT
TERMINAL_STATUSES = frozenset({QuoteStatus.ACCEPTED, QuoteStatus.REJECTED})

FORWARD_TRANSITIONS = {
    QuoteStatus.DRAFT: frozenset({QuoteStatus.SENT}),
    QuoteStatus.SENT: frozenset({QuoteStatus.ACCEPTED, QuoteStatus.REJECTED}),
    QuoteStatus.ACCEPTED: frozenset(),
    QuoteStatus.REJECTED: frozenset(),
}


def is_forward(current: QuoteStatus, target: QuoteStatus) -> bool:
    return target in FORWARD_TRANSITIONS[current]


def check_transition(current, target, enforce: bool = False) -> QuoteStatus:
    """
    Validate a status change and return the target status.

    Same-state writes and forward edges always pass. Any other edge (for
    example ACCEPTED -> DRAFT) is rejected when ``enforce`` is set and only
    logged otherwise, since manual corrections go through the same call.
    """
    try:
        current = QuoteStatus(current)
        target = QuoteStatus(target)
    except ValueError:
        raise ValidationError(["status"], "Unknown quote status")

    if current == target or is_forward(current, target):
        return target

    if enforce:
        raise ValidationError(["status"], f"Cannot move a quote from {current.value} to {target.value}")
    logger.warning(
        "status_transition_outside_workflow",
        from_status=current.value,
        to_status=target.value,
    )
    return target
