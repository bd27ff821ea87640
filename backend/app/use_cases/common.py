"""Helpers shared by health check use cases."""
from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain_errors import NotFoundError, PersistenceError
from ..models import HealthCheck, User
from ..services.realtime import RealtimeNotifier, get_realtime_notifier
from ..services.status_rules import as_utc, now_utc

logger = logging.getLogger(__name__)


def resolve_now(now: datetime | None) -> datetime:
    return as_utc(now) if now is not None else now_utc()


def resolve_notifier(notifier: RealtimeNotifier | None) -> RealtimeNotifier:
    return notifier if notifier is not None else get_realtime_notifier()


def get_health_check_or_404(
    *,
    db: Session,
    health_check_id: UUID,
    org_id: UUID,
    include_deleted: bool = False,
    lock: bool = True,
) -> HealthCheck:
    """Load a tenant-scoped health check, row-locked for the rest of the transaction."""
    query = db.query(HealthCheck).filter(
        HealthCheck.id == health_check_id,
        HealthCheck.org_id == org_id,
    )
    if not include_deleted:
        query = query.filter(HealthCheck.deleted_at.is_(None))
    if lock:
        query = query.with_for_update()
    health_check = query.first()
    if not health_check:
        raise NotFoundError(
            code="HEALTH_CHECK_NOT_FOUND",
            message="Health check not found",
            details={"healthCheckId": str(health_check_id)},
        )
    return health_check


def get_org_user_or_404(*, db: Session, user_id: UUID, org_id: UUID) -> User:
    user = db.query(User).filter(
        User.id == user_id,
        User.org_id == org_id,
        User.is_active.is_(True),
    ).first()
    if not user:
        raise NotFoundError(
            code="TECHNICIAN_NOT_FOUND",
            message="Technician not found",
            details={"technicianId": str(user_id)},
        )
    return user


def commit_or_raise(db: Session, *, operation: str) -> None:
    """Commit, or roll back and surface an opaque PersistenceError."""
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Commit failed during %s", operation)
        raise PersistenceError()
