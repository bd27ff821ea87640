"""Technician clock-in/clock-out sessions with stale-session recovery."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..models import TimeEntry
from .status_rules import as_utc

logger = logging.getLogger(__name__)


def elapsed_minutes(clock_in_at: datetime, clock_out_at: datetime) -> int:
    """Whole minutes between two instants, halves rounded up, never negative."""
    seconds = (as_utc(clock_out_at) - as_utc(clock_in_at)).total_seconds()
    minutes = (Decimal(str(seconds)) / Decimal(60)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return max(0, int(minutes))


def find_open_time_entry(db: Session, *, health_check_id: UUID, technician_id: UUID) -> Optional[TimeEntry]:
    return (
        db.query(TimeEntry)
        .filter(
            TimeEntry.health_check_id == health_check_id,
            TimeEntry.technician_id == technician_id,
            TimeEntry.clock_out_at.is_(None),
        )
        .order_by(TimeEntry.clock_in_at.desc())
        .first()
    )


def close_time_entry(entry: TimeEntry, *, at: datetime) -> TimeEntry:
    entry.clock_out_at = at
    entry.duration_minutes = elapsed_minutes(entry.clock_in_at, at)
    return entry


def open_time_entry(
    db: Session,
    *,
    health_check_id: UUID,
    technician_id: UUID,
    at: datetime,
) -> tuple[TimeEntry, Optional[TimeEntry]]:
    """Close any stale open session, then open a new one.

    Returns (new_entry, auto_closed_entry). The close is flushed before the insert so
    the open-session unique index never sees two open rows.
    """
    stale = find_open_time_entry(db, health_check_id=health_check_id, technician_id=technician_id)
    if stale is not None:
        close_time_entry(stale, at=at)
        db.flush()
        logger.info(
            "time_entry.auto_closed health_check=%s technician=%s minutes=%s",
            health_check_id,
            technician_id,
            stale.duration_minutes,
        )

    entry = TimeEntry(
        health_check_id=health_check_id,
        technician_id=technician_id,
        clock_in_at=at,
    )
    db.add(entry)
    db.flush()
    return entry, stale


def list_time_entries(db: Session, *, health_check_id: UUID) -> list[TimeEntry]:
    return (
        db.query(TimeEntry)
        .filter(TimeEntry.health_check_id == health_check_id)
        .order_by(TimeEntry.clock_in_at.asc())
        .all()
    )


def total_tracked_minutes(entries: Iterable[TimeEntry]) -> int:
    return sum((entry.duration_minutes or 0 for entry in entries), 0)
