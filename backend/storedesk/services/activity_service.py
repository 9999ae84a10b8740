# Overview: Service-layer operations for the activity audit trail.

from __future__ import annotations

from ..extensions import db
from ..models import Activity
"""
Activity trail invariants

- Append-only: rows are never updated or deleted.
- No domain logic here; callers decide what is worth recording.
- Written from outbox handlers after the business transaction commits, so a
  failed audit write never undoes the business change it describes.
"""


def log_activity(
    *,
    entity_type: str,
    entity_id: int,
    action: str,
    details: dict | None = None,
    user_id: int | None = None,
) -> Activity:
    if not entity_type or not action:
        raise ValueError("entity_type and action are required")
    row = Activity(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        details=details,
        user_id=user_id,
    )
    db.session.add(row)
    db.session.flush()
    return row


def list_activities(*, entity_type: str, entity_id: int, limit: int = 100) -> list[Activity]:
    return (
        db.session.query(Activity)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(Activity.created_at.desc(), Activity.id.desc())
        .limit(limit)
        .all()
    )
