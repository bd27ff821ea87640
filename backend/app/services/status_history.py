"""Append-only status history log. Rows are inserted, never updated or deleted."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from ..models import StatusHistory


def append_status_history(
    db: Session,
    *,
    health_check_id: UUID,
    from_status: str | None,
    to_status: str,
    changed_by: UUID | None,
    notes: str | None = None,
    change_source: str = "user",
    at: datetime | None = None,
) -> StatusHistory:
    entry = StatusHistory(
        health_check_id=health_check_id,
        from_status=from_status,
        to_status=to_status,
        changed_by=changed_by,
        change_source=change_source,
        notes=notes,
    )
    if at is not None:
        entry.changed_at = at
    db.add(entry)
    return entry


def append_status_history_batch(db: Session, entries: Iterable[StatusHistory]) -> int:
    rows = list(entries)
    db.add_all(rows)
    return len(rows)


def list_status_history(db: Session, *, health_check_id: UUID) -> list[StatusHistory]:
    return (
        db.query(StatusHistory)
        .filter(StatusHistory.health_check_id == health_check_id)
        .order_by(StatusHistory.changed_at.asc())
        .all()
    )
