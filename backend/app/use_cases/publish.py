"""Publish a health check report to the customer."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from ..config import get_settings
from ..domain_errors import DomainValidationError, InvalidStateError
from ..models import HealthCheck, Organization, User
from ..security import require_capability
from ..services.notification_scheduler import (
    cancel_pending_reminders,
    queue_customer_notification,
    schedule_reminders,
)
from ..services.public_tokens import build_public_url, generate_public_token
from ..services.realtime import RealtimeNotifier
from ..services.status_history import append_status_history
from ..services.status_rules import PUBLISHABLE_STATUSES
from .common import commit_or_raise, get_health_check_or_404, resolve_notifier, resolve_now

logger = logging.getLogger(__name__)


@dataclass
class PublishOptions:
    send_email: bool = True
    send_sms: bool = False
    expires_in_days: int | None = None
    message: str | None = None

    @property
    def channels(self) -> list[str]:
        channels = []
        if self.send_email:
            channels.append("email")
        if self.send_sms:
            channels.append("sms")
        return channels


@dataclass
class PublishResult:
    health_check: HealthCheck
    public_token: str
    public_url: str
    expires_at: datetime
    channels: list[str]


def _channels_note(channels: list[str]) -> str:
    labels = ["email" if channel == "email" else "SMS" for channel in channels]
    return "Sent to customer via " + " and ".join(labels)


def _validate_options(options: PublishOptions) -> int:
    if not options.channels:
        raise DomainValidationError(
            code="NO_CHANNEL_SELECTED",
            message="At least one of email or SMS must be selected",
        )

    settings = get_settings()
    expires_in_days = options.expires_in_days
    if expires_in_days is None:
        expires_in_days = settings.PUBLIC_LINK_DEFAULT_EXPIRY_DAYS
    if not 1 <= expires_in_days <= settings.PUBLIC_LINK_MAX_EXPIRY_DAYS:
        raise DomainValidationError(
            code="INVALID_EXPIRY",
            message=f"expires_in_days must be between 1 and {settings.PUBLIC_LINK_MAX_EXPIRY_DAYS}",
            details={"expiresInDays": expires_in_days},
        )
    return expires_in_days


def publish_health_check_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    options: PublishOptions | None = None,
    now: datetime | None = None,
    notifier: RealtimeNotifier | None = None,
) -> PublishResult:
    """Issue a fresh public link and queue customer notifications.

    Every call replaces the previous token, so earlier links stop working.
    """
    options = options or PublishOptions()
    expires_in_days = _validate_options(options)

    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(current_user, "publish", health_check)
    if health_check.status not in PUBLISHABLE_STATUSES:
        raise InvalidStateError(
            code="HEALTH_CHECK_NOT_PUBLISHABLE",
            message=f"Cannot send health check with status {health_check.status}",
            details={
                "currentStatus": health_check.status,
                "allowedStatuses": sorted(PUBLISHABLE_STATUSES),
            },
        )

    at = resolve_now(now)
    token = generate_public_token()
    public_url = build_public_url(token)
    expires_at = at + timedelta(days=expires_in_days)
    channels = options.channels

    previous_status = health_check.status
    health_check.public_token = token
    health_check.token_expires_at = expires_at
    health_check.sent_at = at
    health_check.status = "sent"
    health_check.updated_at = at
    append_status_history(
        db,
        health_check_id=health_check.id,
        from_status=previous_status,
        to_status="sent",
        changed_by=current_user.id,
        notes=_channels_note(channels),
        at=at,
    )

    organization = db.query(Organization).filter(Organization.id == health_check.org_id).first()
    cancel_pending_reminders(db, health_check_id=health_check.id)
    queue_customer_notification(
        db,
        health_check=health_check,
        token=token,
        public_url=public_url,
        channels=channels,
        message=options.message,
    )
    schedule_reminders(
        db,
        health_check=health_check,
        sent_at=at,
        expires_at=expires_at,
        org_settings=organization.settings if organization else None,
        token=token,
        public_url=public_url,
        channels=channels,
        reminders_enabled=organization.reminders_enabled if organization else True,
        now=at,
    )
    commit_or_raise(db, operation="publish_health_check")
    logger.info("health_check.published id=%s channels=%s expires_at=%s", health_check.id, channels, expires_at)

    resolve_notifier(notifier).notify_status_changed(
        health_check, from_status=previous_status, to_status="sent", changed_by=current_user.id
    )
    return PublishResult(
        health_check=health_check,
        public_token=token,
        public_url=public_url,
        expires_at=expires_at,
        channels=channels,
    )
