"""
Audit logging service.
Append-only audit log with integrity hashing.
"""
import hashlib
import json
import uuid
from datetime import datetime
from typing import Optional, Dict

from ..models.models import AuditLog
from ..config import settings


def build_audit_log(
    entity_type: str,
    entity_id: uuid.UUID,
    action: str,
    actor_id: Optional[uuid.UUID] = None,
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None,
) -> AuditLog:
    """
    Build an audit log entry without persisting it.

    The caller adds it to the store inside the same transaction as the
    mutation it describes, so the entry and the change commit or fail together.

    Args:
        entity_type: Type of entity (quote|task|material)
        entity_id: Entity ID
        action: Action performed (CREATE|UPDATE|DELETE|STATUS)
        actor_id: User ID who performed the action
        changes_json: Before/after diff
        context: Additional context (quote_id, task_id)
        integrity_secret: Secret for integrity hash (defaults to JWT_SECRET)
    """
    timestamp_utc = datetime.utcnow().replace(tzinfo=None)

    integrity_hash = None
    if integrity_secret is None:
        integrity_secret = settings.jwt_secret

    if integrity_secret:
        canonical_data = {
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "action": action,
            "actor_id": str(actor_id) if actor_id else None,
            "timestamp_utc": timestamp_utc.isoformat(),
            "changes": changes_json,
            "context": context,
        }
        canonical_data = {k: v for k, v in canonical_data.items() if v is not None}
        canonical_json = json.dumps(canonical_data, sort_keys=True, default=str)
        hash_input = f"{canonical_json}:{integrity_secret}"
        integrity_hash = hashlib.sha256(hash_input.encode()).hexdigest()

    return AuditLog(
        id=uuid.uuid4(),
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        changes_json=changes_json,
        timestamp_utc=timestamp_utc,
        context=context,
        integrity_hash=integrity_hash,
    )


def compute_diff(before: Dict, after: Dict) -> Dict:
    """Before/after values for the keys whose value changed."""
    diff = {}
    for key in set(before.keys()) | set(after.keys()):
        before_val = before.get(key)
        after_val = after.get(key)
        if before_val != after_val:
            diff[key] = {"before": before_val, "after": after_val}
    return diff


def snapshot(obj, fields) -> Dict:
    """JSON-safe copy of selected attributes."""
    out = {}
    for f in fields:
        v = getattr(obj, f, None)
        out[f] = str(v) if isinstance(v, uuid.UUID) else v
    return out


def pending_changes(obj, fields, values: Dict) -> Dict:
    """Diff between ``obj`` and ``obj`` with ``values`` applied, without touching ``obj``."""
    before = snapshot(obj, fields)
    after = dict(before)
    for key, value in values.items():
        after[key] = str(value) if isinstance(value, uuid.UUID) else value
    return compute_diff(before, after)
