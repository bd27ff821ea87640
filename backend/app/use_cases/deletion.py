"""Soft delete and restore use-cases. Health checks are never physically removed."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from ..config import get_settings
from ..domain_errors import (
    AlreadyDeletedError,
    DomainValidationError,
    InvalidStateError,
    NotDeletedError,
    NotFoundError,
)
from ..models import HealthCheck, StatusHistory, User
from ..security import require_capability
from ..services.status_history import append_status_history, append_status_history_batch
from ..services.status_rules import (
    DELETABLE_STATUSES,
    DELETED_AUDIT_TAG,
    DELETION_REASONS,
    deletion_notes_required,
)
from .common import commit_or_raise, get_health_check_or_404, resolve_now

logger = logging.getLogger(__name__)


@dataclass
class BulkDeleteResult:
    deleted: int
    skipped: int
    deleted_ids: list[UUID] = field(default_factory=list)


def _validate_reason(reason: str, notes: str | None) -> str | None:
    """Return cleaned notes."""
    if reason not in DELETION_REASONS:
        raise DomainValidationError(
            code="INVALID_DELETION_REASON",
            message="Invalid deletion reason",
            details={"validReasons": list(DELETION_REASONS)},
        )
    cleaned = (notes or "").strip() or None
    if deletion_notes_required(reason) and cleaned is None:
        raise DomainValidationError(
            code="DELETION_NOTES_REQUIRED",
            message='Notes are required when reason is "other"',
        )
    return cleaned


def _audit_note(prefix: str, reason: str, notes: str | None) -> str:
    return f"{prefix}: {reason}" + (f" - {notes}" if notes else "")


def _is_deletable(health_check: HealthCheck) -> bool:
    return health_check.deleted_at is None and health_check.status in DELETABLE_STATUSES


def soft_delete_health_check_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    reason: str,
    notes: str | None = None,
    now: datetime | None = None,
) -> HealthCheck:
    require_capability(current_user, "soft_delete")
    cleaned_notes = _validate_reason(reason, notes)

    health_check = get_health_check_or_404(
        db=db,
        health_check_id=health_check_id,
        org_id=current_user.org_id,
        include_deleted=True,
    )
    if health_check.deleted_at is not None:
        raise AlreadyDeletedError()
    if health_check.status not in DELETABLE_STATUSES:
        raise InvalidStateError(
            code="HEALTH_CHECK_NOT_DELETABLE",
            message=f'Cannot delete health check in "{health_check.status}" status',
            details={
                "currentStatus": health_check.status,
                "allowedStatuses": sorted(DELETABLE_STATUSES),
            },
        )

    at = resolve_now(now)
    health_check.deleted_at = at
    health_check.deleted_by = current_user.id
    health_check.deletion_reason = reason
    health_check.deletion_notes = cleaned_notes
    health_check.updated_at = at
    append_status_history(
        db,
        health_check_id=health_check.id,
        from_status=health_check.status,
        to_status=DELETED_AUDIT_TAG,
        changed_by=current_user.id,
        notes=_audit_note("Deleted", reason, cleaned_notes),
        at=at,
    )
    commit_or_raise(db, operation="soft_delete_health_check")
    logger.info("health_check.deleted id=%s reason=%s", health_check.id, reason)
    return health_check


def bulk_soft_delete_use_case(
    *,
    db: Session,
    health_check_ids: list[UUID],
    current_user: User,
    reason: str,
    notes: str | None = None,
    now: datetime | None = None,
) -> BulkDeleteResult:
    """Delete every eligible job in the batch; ineligible ones are reported as skipped."""
    require_capability(current_user, "soft_delete")

    max_ids = get_settings().BULK_DELETE_MAX_IDS
    unique_ids = list(dict.fromkeys(health_check_ids))
    if not unique_ids:
        raise DomainValidationError(code="IDS_REQUIRED", message="ids array is required")
    if len(unique_ids) > max_ids:
        raise DomainValidationError(
            code="BULK_DELETE_LIMIT_EXCEEDED",
            message=f"Maximum {max_ids} health checks per bulk delete",
            details={"max": max_ids, "received": len(unique_ids)},
        )
    cleaned_notes = _validate_reason(reason, notes)

    found = (
        db.query(HealthCheck)
        .filter(
            HealthCheck.id.in_(unique_ids),
            HealthCheck.org_id == current_user.org_id,
        )
        .with_for_update()
        .all()
    )
    if not found:
        raise NotFoundError(code="HEALTH_CHECKS_NOT_FOUND", message="No health checks found")

    deletable = [health_check for health_check in found if _is_deletable(health_check)]
    skipped = len(found) - len(deletable)
    if not deletable:
        raise InvalidStateError(
            code="NO_DELETABLE_HEALTH_CHECKS",
            message="No health checks can be deleted",
            details={"skipped": skipped},
        )

    at = resolve_now(now)
    deleted_ids = [health_check.id for health_check in deletable]
    db.query(HealthCheck).filter(HealthCheck.id.in_(deleted_ids)).update(
        {
            HealthCheck.deleted_at: at,
            HealthCheck.deleted_by: current_user.id,
            HealthCheck.deletion_reason: reason,
            HealthCheck.deletion_notes: cleaned_notes,
            HealthCheck.updated_at: at,
        },
        synchronize_session="fetch",
    )
    append_status_history_batch(
        db,
        (
            StatusHistory(
                health_check_id=health_check.id,
                from_status=health_check.status,
                to_status=DELETED_AUDIT_TAG,
                changed_by=current_user.id,
                change_source="user",
                notes=_audit_note("Bulk deleted", reason, cleaned_notes),
                changed_at=at,
            )
            for health_check in deletable
        ),
    )
    commit_or_raise(db, operation="bulk_soft_delete")
    logger.info("health_check.bulk_deleted deleted=%s skipped=%s", len(deleted_ids), skipped)
    return BulkDeleteResult(deleted=len(deleted_ids), skipped=skipped, deleted_ids=deleted_ids)


def restore_health_check_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    now: datetime | None = None,
) -> HealthCheck:
    """Undo a soft delete. Status always restarts at `created`."""
    require_capability(current_user, "restore")
    health_check = get_health_check_or_404(
        db=db,
        health_check_id=health_check_id,
        org_id=current_user.org_id,
        include_deleted=True,
    )
    if health_check.deleted_at is None:
        raise NotDeletedError()

    at = resolve_now(now)
    health_check.deleted_at = None
    health_check.deleted_by = None
    health_check.deletion_reason = None
    health_check.deletion_notes = None
    health_check.status = "created"
    health_check.updated_at = at
    append_status_history(
        db,
        health_check_id=health_check.id,
        from_status=DELETED_AUDIT_TAG,
        to_status="created",
        changed_by=current_user.id,
        notes="Health check restored",
        at=at,
    )
    commit_or_raise(db, operation="restore_health_check")
    logger.info("health_check.restored id=%s", health_check.id)
    return health_check
