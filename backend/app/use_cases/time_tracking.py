"""Technician clock-in/clock-out use-cases."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from ..domain_errors import NotClockedInError
from ..models import HealthCheck, TimeEntry, User
from ..security import require_capability
from ..services.realtime import RealtimeNotifier
from ..services.repair_items import generate_repair_items
from ..services.status_history import append_status_history
from ..services.status_rules import CLOCK_IN_RESUMABLE_STATUSES, clock_out_target_status
from ..services.time_tracking import (
    close_time_entry,
    find_open_time_entry,
    list_time_entries,
    open_time_entry,
    total_tracked_minutes,
)
from ..services.totals import recompute_health_check_totals, recompute_rag_counts
from .common import (
    commit_or_raise,
    get_health_check_or_404,
    get_org_user_or_404,
    resolve_notifier,
    resolve_now,
)

logger = logging.getLogger(__name__)


@dataclass
class ClockInResult:
    health_check: HealthCheck
    time_entry: TimeEntry
    auto_closed_entry: TimeEntry | None
    status_changed: bool


@dataclass
class ClockOutResult:
    health_check: HealthCheck
    time_entry: TimeEntry
    status_changed: bool
    repair_items_created: int


@dataclass
class TimeEntryListing:
    entries: list[TimeEntry]
    total_minutes: int


def _resolve_technician_id(
    *,
    db: Session,
    current_user: User,
    technician_id: UUID | None,
) -> UUID:
    if technician_id is None or technician_id == current_user.id:
        return current_user.id
    get_org_user_or_404(db=db, user_id=technician_id, org_id=current_user.org_id)
    return technician_id


def clock_in_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    technician_id: UUID | None = None,
    now: datetime | None = None,
    notifier: RealtimeNotifier | None = None,
) -> ClockInResult:
    """Open a work session; a stale open session for the same technician is closed first."""
    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(
        current_user,
        "clock_in",
        health_check,
        technician_id=technician_id or current_user.id,
    )
    tech_id = _resolve_technician_id(db=db, current_user=current_user, technician_id=technician_id)

    at = resolve_now(now)
    entry, stale = open_time_entry(db, health_check_id=health_check.id, technician_id=tech_id, at=at)

    previous_status = health_check.status
    status_changed = previous_status in CLOCK_IN_RESUMABLE_STATUSES
    if status_changed:
        health_check.status = "in_progress"
        health_check.updated_at = at
        # Resuming from pause keeps the original start time.
        if health_check.tech_started_at is None:
            health_check.tech_started_at = at
        append_status_history(
            db,
            health_check_id=health_check.id,
            from_status=previous_status,
            to_status="in_progress",
            changed_by=current_user.id,
            notes="Technician clocked in",
            at=at,
        )
    commit_or_raise(db, operation="clock_in")

    realtime = resolve_notifier(notifier)
    if status_changed:
        realtime.notify_status_changed(
            health_check, from_status=previous_status, to_status="in_progress", changed_by=current_user.id
        )
    realtime.notify_clocked_in(health_check, technician_id=tech_id, at=at)

    return ClockInResult(
        health_check=health_check,
        time_entry=entry,
        auto_closed_entry=stale,
        status_changed=status_changed,
    )


def clock_out_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    technician_id: UUID | None = None,
    complete: bool = True,
    now: datetime | None = None,
    notifier: RealtimeNotifier | None = None,
) -> ClockOutResult:
    """Close the open session; completing moves the job to tech_completed and generates repair items.

    The health check row lock serialises concurrent clock-outs, so the transition and
    generation run at most once.
    """
    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(
        current_user,
        "clock_out",
        health_check,
        technician_id=technician_id or current_user.id,
    )
    tech_id = _resolve_technician_id(db=db, current_user=current_user, technician_id=technician_id)

    entry = find_open_time_entry(db, health_check_id=health_check.id, technician_id=tech_id)
    if entry is None:
        raise NotClockedInError()

    at = resolve_now(now)
    close_time_entry(entry, at=at)

    previous_status = health_check.status
    target_status = clock_out_target_status(previous_status, complete=complete)
    created = 0
    if target_status is not None:
        health_check.status = target_status
        health_check.updated_at = at
        if target_status == "tech_completed":
            health_check.tech_completed_at = at
            recompute_rag_counts(db, health_check=health_check)
            created = generate_repair_items(db, health_check=health_check)
            recompute_health_check_totals(db, health_check=health_check, at=at)
        append_status_history(
            db,
            health_check_id=health_check.id,
            from_status=previous_status,
            to_status=target_status,
            changed_by=current_user.id,
            notes="Technician completed check" if complete else "Technician clocked out (paused)",
            at=at,
        )
    commit_or_raise(db, operation="clock_out")

    realtime = resolve_notifier(notifier)
    if target_status is not None:
        realtime.notify_status_changed(
            health_check, from_status=previous_status, to_status=target_status, changed_by=current_user.id
        )
    realtime.notify_clocked_out(
        health_check,
        technician_id=tech_id,
        at=at,
        duration_minutes=entry.duration_minutes,
        completed=complete,
    )

    return ClockOutResult(
        health_check=health_check,
        time_entry=entry,
        status_changed=target_status is not None,
        repair_items_created=created,
    )


def list_time_entries_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
) -> TimeEntryListing:
    health_check = get_health_check_or_404(
        db=db,
        health_check_id=health_check_id,
        org_id=current_user.org_id,
        lock=False,
    )
    require_capability(current_user, "view", health_check)
    entries = list_time_entries(db, health_check_id=health_check.id)
    return TimeEntryListing(entries=entries, total_minutes=total_tracked_minutes(entries))
