"""Health check lifecycle use-cases used by health check router endpoints."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from ..domain_errors import (
    DomainValidationError,
    IncompleteWorkError,
    InvalidStateError,
    InvalidTransitionError,
)
from ..models import Authorization, CheckResult, HealthCheck, RepairItem, StatusHistory, TimeEntry, User
from ..security import require_capability
from ..services.authorization_summary import AuthorizationSummary, summarize_authorizations
from ..services.realtime import RealtimeNotifier
from ..services.repair_items import generate_repair_items, has_repairable_findings
from ..services.status_history import append_status_history, list_status_history
from ..services.status_rules import (
    LINK_EXPIRABLE_STATUSES,
    TERMINAL_STATUSES,
    initial_health_check_status,
    is_known_status,
    is_valid_transition,
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

NO_SHOW_DEFAULT_NOTES = "Vehicle did not arrive"
ARRIVED_NOTES = "Vehicle arrived"
CLOSE_NOTES = "Health check closed by advisor"
LINK_EXPIRED_NOTES = "Customer link expired"


def _apply_status_side_effects(db: Session, health_check: HealthCheck, new_status: str, *, at: datetime) -> None:
    """Timestamps and generation hooks tied to entering a status."""
    if new_status == "in_progress" and health_check.tech_started_at is None:
        health_check.tech_started_at = at
    elif new_status == "tech_completed":
        health_check.tech_completed_at = at
        recompute_rag_counts(db, health_check=health_check)
        if generate_repair_items(db, health_check=health_check):
            recompute_health_check_totals(db, health_check=health_check, at=at)


def create_health_check_use_case(
    *,
    db: Session,
    current_user: User,
    vehicle_id: UUID,
    template_id: UUID,
    customer_id: UUID | None = None,
    technician_id: UUID | None = None,
    advisor_id: UUID | None = None,
    site_id: UUID | None = None,
    mileage_in: int | None = None,
    awaiting_arrival: bool = False,
    now: datetime | None = None,
) -> HealthCheck:
    """Create a health check; status is assigned when a technician is given up front."""
    require_capability(current_user, "create")
    at = resolve_now(now)

    if technician_id is not None:
        get_org_user_or_404(db=db, user_id=technician_id, org_id=current_user.org_id)

    status = initial_health_check_status(technician_id=technician_id, awaiting_arrival=awaiting_arrival)
    health_check = HealthCheck(
        org_id=current_user.org_id,
        site_id=site_id or current_user.site_id,
        vehicle_id=vehicle_id,
        customer_id=customer_id,
        template_id=template_id,
        technician_id=technician_id,
        advisor_id=advisor_id or current_user.id,
        status=status,
        mileage_in=mileage_in,
        created_at=at,
        updated_at=at,
    )
    db.add(health_check)
    db.flush()

    append_status_history(
        db,
        health_check_id=health_check.id,
        from_status=None,
        to_status=status,
        changed_by=current_user.id,
        notes="Health check created",
        at=at,
    )
    commit_or_raise(db, operation="create_health_check")
    logger.info("health_check.created id=%s status=%s", health_check.id, status)
    return health_check


def change_status_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    new_status: str,
    notes: str | None = None,
    now: datetime | None = None,
    notifier: RealtimeNotifier | None = None,
) -> HealthCheck:
    """Move a health check along the status table."""
    if not is_known_status(new_status):
        raise DomainValidationError(
            code="INVALID_STATUS",
            message=f"Unknown status: {new_status}",
            details={"status": new_status},
        )

    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    current_status = health_check.status
    if not is_valid_transition(current_status, new_status):
        raise InvalidTransitionError(current_status=current_status, requested_status=new_status)
    require_capability(current_user, "change_status", health_check)

    at = resolve_now(now)
    health_check.status = new_status
    health_check.updated_at = at
    _apply_status_side_effects(db, health_check, new_status, at=at)
    append_status_history(
        db,
        health_check_id=health_check.id,
        from_status=current_status,
        to_status=new_status,
        changed_by=current_user.id,
        notes=notes,
        at=at,
    )
    commit_or_raise(db, operation="change_status")

    resolve_notifier(notifier).notify_status_changed(
        health_check, from_status=current_status, to_status=new_status, changed_by=current_user.id
    )
    return health_check


def cancel_health_check_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    notes: str | None = None,
    now: datetime | None = None,
    notifier: RealtimeNotifier | None = None,
) -> HealthCheck:
    require_capability(current_user, "cancel")
    return change_status_use_case(
        db=db,
        health_check_id=health_check_id,
        current_user=current_user,
        new_status="cancelled",
        notes=notes,
        now=now,
        notifier=notifier,
    )


def _require_awaiting_arrival(health_check: HealthCheck, *, action: str) -> None:
    if health_check.status != "awaiting_arrival":
        raise InvalidStateError(
            code="HEALTH_CHECK_NOT_AWAITING_ARRIVAL",
            message=f"Can only {action} a health check that is awaiting arrival",
            details={"currentStatus": health_check.status},
        )


def mark_arrived_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    mileage_in: int | None = None,
    now: datetime | None = None,
    notifier: RealtimeNotifier | None = None,
) -> HealthCheck:
    """Pre-booked vehicle turned up: awaiting_arrival -> created."""
    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(current_user, "mark_arrived", health_check)
    _require_awaiting_arrival(health_check, action="mark arrived")

    at = resolve_now(now)
    health_check.status = "created"
    health_check.arrived_at = at
    health_check.updated_at = at
    if mileage_in is not None:
        health_check.mileage_in = mileage_in
    append_status_history(
        db,
        health_check_id=health_check.id,
        from_status="awaiting_arrival",
        to_status="created",
        changed_by=current_user.id,
        notes=ARRIVED_NOTES,
        at=at,
    )
    commit_or_raise(db, operation="mark_arrived")

    resolve_notifier(notifier).notify_status_changed(
        health_check, from_status="awaiting_arrival", to_status="created", changed_by=current_user.id
    )
    return health_check


def mark_no_show_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    notes: str | None = None,
    now: datetime | None = None,
    notifier: RealtimeNotifier | None = None,
) -> HealthCheck:
    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(current_user, "mark_no_show", health_check)
    _require_awaiting_arrival(health_check, action="mark no-show for")

    at = resolve_now(now)
    health_check.status = "no_show"
    health_check.updated_at = at
    append_status_history(
        db,
        health_check_id=health_check.id,
        from_status="awaiting_arrival",
        to_status="no_show",
        changed_by=current_user.id,
        notes=(notes or "").strip() or NO_SHOW_DEFAULT_NOTES,
        at=at,
    )
    commit_or_raise(db, operation="mark_no_show")

    resolve_notifier(notifier).notify_status_changed(
        health_check, from_status="awaiting_arrival", to_status="no_show", changed_by=current_user.id
    )
    return health_check


def assign_technician_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    technician_id: UUID,
    now: datetime | None = None,
    notifier: RealtimeNotifier | None = None,
) -> HealthCheck:
    """Assign a technician. Only `created` jobs move to `assigned`; others keep their status."""
    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(current_user, "assign_technician", health_check, technician_id=technician_id)
    get_org_user_or_404(db=db, user_id=technician_id, org_id=current_user.org_id)

    at = resolve_now(now)
    previous_status = health_check.status
    health_check.technician_id = technician_id
    health_check.updated_at = at

    status_changed = previous_status == "created"
    if status_changed:
        health_check.status = "assigned"
        append_status_history(
            db,
            health_check_id=health_check.id,
            from_status=previous_status,
            to_status="assigned",
            changed_by=current_user.id,
            notes="Technician assigned",
            at=at,
        )
    commit_or_raise(db, operation="assign_technician")

    if status_changed:
        resolve_notifier(notifier).notify_status_changed(
            health_check, from_status=previous_status, to_status="assigned", changed_by=current_user.id
        )
    return health_check


def close_health_check_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    now: datetime | None = None,
    notifier: RealtimeNotifier | None = None,
) -> HealthCheck:
    """Close the job once every approved repair item has its work marked complete."""
    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(current_user, "close", health_check)

    if health_check.status in TERMINAL_STATUSES:
        raise InvalidStateError(
            code="HEALTH_CHECK_ALREADY_FINAL",
            message=f"Cannot close a health check with status {health_check.status}",
            details={"currentStatus": health_check.status},
        )

    incomplete = (
        db.query(RepairItem)
        .filter(
            RepairItem.health_check_id == health_check.id,
            RepairItem.is_approved.is_(True),
            RepairItem.work_completed_at.is_(None),
        )
        .order_by(RepairItem.sort_order.asc())
        .all()
    )
    if incomplete:
        raise IncompleteWorkError(
            incomplete_items=[{"id": str(item.id), "title": item.title} for item in incomplete]
        )

    at = resolve_now(now)
    previous_status = health_check.status
    health_check.status = "completed"
    health_check.closed_at = at
    health_check.closed_by = current_user.id
    health_check.updated_at = at
    append_status_history(
        db,
        health_check_id=health_check.id,
        from_status=previous_status,
        to_status="completed",
        changed_by=current_user.id,
        notes=CLOSE_NOTES,
        at=at,
    )
    commit_or_raise(db, operation="close_health_check")

    resolve_notifier(notifier).notify_status_changed(
        health_check, from_status=previous_status, to_status="completed", changed_by=current_user.id
    )
    return health_check


@dataclass
class HealthCheckDetail:
    health_check: HealthCheck
    check_results: list[CheckResult] = field(default_factory=list)
    repair_items: list[RepairItem] = field(default_factory=list)
    authorizations: list[Authorization] = field(default_factory=list)
    time_entries: list[TimeEntry] = field(default_factory=list)
    summary: AuthorizationSummary | None = None


def get_health_check_detail_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    now: datetime | None = None,
) -> HealthCheckDetail:
    """Full read. Older jobs with red/amber findings but no repair items get them generated here."""
    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(current_user, "view", health_check)

    has_items = (
        db.query(RepairItem.id).filter(RepairItem.health_check_id == health_check.id).first() is not None
    )
    stale_counts = (health_check.red_count, health_check.amber_count, health_check.green_count)
    counts = recompute_rag_counts(db, health_check=health_check)
    created = 0
    if not has_items and has_repairable_findings(db, health_check_id=health_check.id):
        created = generate_repair_items(db, health_check=health_check)
        if created:
            recompute_health_check_totals(db, health_check=health_check, at=resolve_now(now))
    if created or stale_counts != (counts["red"], counts["amber"], counts["green"]):
        commit_or_raise(db, operation="lazy_generate_repair_items")

    check_results = (
        db.query(CheckResult)
        .filter(CheckResult.health_check_id == health_check.id)
        .order_by(CheckResult.created_at.asc(), CheckResult.id.asc())
        .all()
    )
    repair_items = (
        db.query(RepairItem)
        .filter(RepairItem.health_check_id == health_check.id)
        .order_by(RepairItem.sort_order.asc())
        .all()
    )
    item_ids = [item.id for item in repair_items]
    authorizations = []
    if item_ids:
        authorizations = (
            db.query(Authorization)
            .filter(Authorization.repair_item_id.in_(item_ids))
            .order_by(Authorization.decided_at.asc())
            .all()
        )
    time_entries = (
        db.query(TimeEntry)
        .filter(TimeEntry.health_check_id == health_check.id)
        .order_by(TimeEntry.clock_in_at.asc())
        .all()
    )

    return HealthCheckDetail(
        health_check=health_check,
        check_results=check_results,
        repair_items=repair_items,
        authorizations=authorizations,
        time_entries=time_entries,
        summary=summarize_authorizations(
            check_results=check_results,
            repair_items=repair_items,
            authorizations=authorizations,
        ),
    )


def list_status_history_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
) -> list[StatusHistory]:
    health_check = get_health_check_or_404(
        db=db,
        health_check_id=health_check_id,
        org_id=current_user.org_id,
        lock=False,
    )
    require_capability(current_user, "view", health_check)
    return list_status_history(db, health_check_id=health_check.id)


def expire_public_links_use_case(*, db: Session, now: datetime | None = None) -> int:
    """System sweep: links past token_expires_at move their job to `expired`."""
    at = resolve_now(now)
    candidates = (
        db.query(HealthCheck)
        .filter(
            HealthCheck.deleted_at.is_(None),
            HealthCheck.status.in_(LINK_EXPIRABLE_STATUSES),
            HealthCheck.token_expires_at.isnot(None),
            HealthCheck.token_expires_at <= at,
        )
        .with_for_update(skip_locked=True)
        .all()
    )

    expired = 0
    for health_check in candidates:
        if not is_valid_transition(health_check.status, "expired"):
            continue
        previous_status = health_check.status
        health_check.status = "expired"
        health_check.updated_at = at
        append_status_history(
            db,
            health_check_id=health_check.id,
            from_status=previous_status,
            to_status="expired",
            changed_by=None,
            change_source="system",
            notes=LINK_EXPIRED_NOTES,
            at=at,
        )
        expired += 1

    if expired:
        commit_or_raise(db, operation="expire_public_links")
        logger.info("health_check.links_expired count=%s", expired)
    return expired
