"""Transactional outbox writers for customer notifications and reminders.

Rows are added to the caller's session so they commit (or roll back) together with
the publish that produced them. Delivery happens later in the Celery worker.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..models import HealthCheck, NotificationOutbox
from .status_rules import as_utc, now_utc

logger = logging.getLogger(__name__)

NOTIFICATION_CHANNELS: tuple[str, ...] = ("email", "sms")
TYPE_READY = "customer_health_check_ready"
TYPE_REMINDER = "customer_reminder"

DEFAULT_REMINDER_SCHEDULE: tuple[dict[str, int], ...] = (
    {"hours": 4, "reminder_number": 1},
    {"hours": 24, "reminder_number": 2},
    {"hours": 48, "reminder_number": 3},
)


def build_idempotency_key(
    notification_type: str,
    health_check_id: UUID,
    token: str,
    channel: str,
    reminder_number: Optional[int] = None,
) -> str:
    key = f"{notification_type}:{health_check_id}:{token[:12]}:{channel}"
    if reminder_number is not None:
        key = f"{key}:{reminder_number}"
    return key


def queue_customer_notification(
    db: Session,
    *,
    health_check: HealthCheck,
    token: str,
    public_url: str,
    channels: Iterable[str],
    message: Optional[str] = None,
) -> list[NotificationOutbox]:
    """One outbox row per channel."""
    rows = [
        NotificationOutbox(
            org_id=health_check.org_id,
            health_check_id=health_check.id,
            type=TYPE_READY,
            channel=channel,
            public_url=public_url,
            message=message,
            meta_data={"customer_id": str(health_check.customer_id) if health_check.customer_id else None},
            status="pending",
            attempts=0,
            idempotency_key=build_idempotency_key(TYPE_READY, health_check.id, token, channel),
        )
        for channel in channels
    ]
    db.add_all(rows)
    logger.info("notification.queued health_check=%s channels=%s", health_check.id, [row.channel for row in rows])
    return rows


def cancel_pending_reminders(db: Session, *, health_check_id: UUID) -> int:
    """Cancel reminders still pending for earlier links of this health check."""
    cancelled = (
        db.query(NotificationOutbox)
        .filter(
            NotificationOutbox.health_check_id == health_check_id,
            NotificationOutbox.type == TYPE_REMINDER,
            NotificationOutbox.status == "pending",
        )
        .update({NotificationOutbox.status: "cancelled"}, synchronize_session="fetch")
    )
    if cancelled:
        logger.info("notification.reminders_cancelled health_check=%s count=%s", health_check_id, cancelled)
    return cancelled


def _reminder_schedule(org_settings: Optional[Mapping[str, Any]]) -> list[dict[str, int]]:
    schedule = (org_settings or {}).get("reminder_schedule") or DEFAULT_REMINDER_SCHEDULE
    normalized = []
    for index, entry in enumerate(schedule, start=1):
        normalized.append(
            {
                "hours": int(entry["hours"]),
                "reminder_number": int(entry.get("reminder_number") or entry.get("reminderNumber") or index),
            }
        )
    return normalized


def schedule_reminders(
    db: Session,
    *,
    health_check: HealthCheck,
    sent_at: datetime,
    expires_at: Optional[datetime],
    org_settings: Optional[Mapping[str, Any]],
    token: str,
    public_url: str,
    channels: Iterable[str],
    reminders_enabled: bool = True,
    now: Optional[datetime] = None,
) -> list[NotificationOutbox]:
    """Queue reminder rows at sent_at + N hours.

    Reminders at or after link expiry, or already in the past, are skipped.
    """
    if not reminders_enabled:
        logger.info("notification.reminders_disabled health_check=%s", health_check.id)
        return []

    current_time = as_utc(now) if now is not None else now_utc()
    sent_at = as_utc(sent_at)
    expires_at = as_utc(expires_at) if expires_at is not None else None
    channel_list = list(channels)

    rows: list[NotificationOutbox] = []
    for reminder in _reminder_schedule(org_settings):
        send_at = sent_at + timedelta(hours=reminder["hours"])
        if expires_at is not None and send_at >= expires_at:
            logger.info("notification.reminder_skipped_after_expiry number=%s", reminder["reminder_number"])
            continue
        if send_at <= current_time:
            logger.info("notification.reminder_skipped_past number=%s", reminder["reminder_number"])
            continue

        for channel in channel_list:
            rows.append(
                NotificationOutbox(
                    org_id=health_check.org_id,
                    health_check_id=health_check.id,
                    type=TYPE_REMINDER,
                    channel=channel,
                    public_url=public_url,
                    meta_data={"reminder_number": reminder["reminder_number"]},
                    status="pending",
                    attempts=0,
                    scheduled_for=send_at,
                    idempotency_key=build_idempotency_key(
                        TYPE_REMINDER, health_check.id, token, channel, reminder["reminder_number"]
                    ),
                )
            )

    db.add_all(rows)
    return rows
