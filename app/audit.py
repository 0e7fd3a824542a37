"""
app/audit.py

Change history for quotations, lines and master data.

Every mutating route records one AuditLog row per changed entity with JSON
snapshots of the row before and after the change, plus the caller's IP.

The helper only ADDS to the session; the route owns the transaction:

    db.session.flush()          # entity gets its id
    log_action(entity, "UPDATE", before=..., after=...)
    db.session.commit()
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional

from flask import has_request_context, request

from .extensions import db
from .models import AuditLog
from .utils import to_jsonable

AUDIT_ACTIONS = ("CREATE", "UPDATE", "DELETE")

# bookkeeping columns that change on every write
IGNORED_COLUMNS = ("updated_at",)

Snapshot = Dict[str, Optional[str]]


def serialize_model(instance: Any, ignore: Iterable[str] = IGNORED_COLUMNS) -> Snapshot:
    """Column values as strings (Decimal "12.50" / "0.125", dates ISO); no relationships."""
    snapshot: Snapshot = {}
    for column in instance.__table__.columns:
        if column.name in ignore:
            continue
        value = getattr(instance, column.name)
        snapshot[column.name] = None if value is None else str(to_jsonable(value))
    return snapshot


def _dump(snapshot: Optional[Snapshot]) -> Optional[str]:
    if not snapshot:
        return None
    return json.dumps(snapshot, ensure_ascii=False, sort_keys=True)


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Snapshot] = None,
    after: Optional[Snapshot] = None,
) -> AuditLog:
    """Queue an AuditLog row for `entity` (must be flushed so it has an id)."""
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action {action!r}.")

    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError(f"{entity.__class__.__name__} has no id yet; flush before auditing.")

    entry = AuditLog(
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=action,
        before_data=_dump(before),
        after_data=_dump(after),
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)
    return entry
