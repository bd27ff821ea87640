"""
Celery worker draining the customer notification outbox with SELECT FOR UPDATE SKIP LOCKED,
plus the periodic sweep that expires stale customer links.
"""
from celery import Celery
from sqlalchemy import or_
from datetime import datetime, timedelta
import requests
import logging
from .config import settings
from .database import SessionLocal
from .models import NotificationOutbox
from .services.status_rules import now_utc
from .use_cases.health_check_lifecycle import expire_public_links_use_case

logger = logging.getLogger(__name__)

celery_app = Celery(
    "vhc_workflow",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
)


def deliver_notification(notification: NotificationOutbox) -> tuple[bool, str | None]:
    """POST one outbox row to the delivery gateway."""
    if not settings.NOTIFICATION_DELIVERY_URL:
        return False, "NOTIFICATION_DELIVERY_URL not configured"

    try:
        response = requests.post(
            settings.NOTIFICATION_DELIVERY_URL,
            json={
                "id": str(notification.id),
                "type": notification.type,
                "channel": notification.channel,
                "health_check_id": str(notification.health_check_id),
                "public_url": notification.public_url,
                "message": notification.message,
                "metadata": notification.meta_data or {},
            },
            headers={"Idempotency-Key": notification.idempotency_key},
            timeout=10
        )
    except requests.RequestException as e:
        return False, f"EXCEPTION: {e}"

    if 200 <= response.status_code < 300:
        return True, None
    if response.status_code == 429:
        # Rate limit - honour Retry-After when present
        retry_after = response.headers.get("Retry-After", "60")
        return False, f"RATE_LIMIT:{retry_after if retry_after.isdigit() else 60}"
    return False, f"HTTP_{response.status_code}: {response.text[:200]}"


def apply_delivery_result(
    notification: NotificationOutbox,
    success: bool,
    error: str | None,
    *,
    now: datetime,
    max_attempts: int,
) -> None:
    """Update an outbox row after a delivery attempt (sent / retry with backoff / failed)."""
    if success:
        notification.status = 'sent'
        notification.sent_at = now
        notification.last_error = None
        notification.next_retry_at = None
        return

    notification.attempts = (notification.attempts or 0) + 1
    notification.last_error = error

    if error and error.startswith("RATE_LIMIT:"):
        retry_after = int(error.split(":")[1])
        notification.next_retry_at = now + timedelta(seconds=retry_after)
        logger.warning("Rate limited for %ss: %s", retry_after, notification.id)
    elif notification.attempts >= max_attempts:
        notification.status = 'failed'
        notification.failed_at = now
        logger.error("Failed after %s attempts: %s, error: %s", notification.attempts, notification.id, error)
    else:
        # Retry with exponential backoff: 2min, 4min, 8min...
        backoff_seconds = 2 ** notification.attempts * 60
        notification.next_retry_at = now + timedelta(seconds=backoff_seconds)
        logger.warning(
            "Retry %s/%s in %ss: %s", notification.attempts, max_attempts, backoff_seconds, notification.id
        )


@celery_app.task(name="process_notification_outbox")
def process_notification_outbox(batch_size: int = 100):
    """
    Process due notifications using SELECT FOR UPDATE SKIP LOCKED.

    Concurrent workers never pick up the same row. Reminders are due once scheduled_for passes.
    """
    db = SessionLocal()
    processed_count = 0
    notifications = []

    try:
        now = now_utc()
        notifications = (
            db.query(NotificationOutbox)
            .filter(
                NotificationOutbox.status == 'pending',
                or_(NotificationOutbox.scheduled_for.is_(None), NotificationOutbox.scheduled_for <= now),
                or_(NotificationOutbox.next_retry_at.is_(None), NotificationOutbox.next_retry_at <= now),
            )
            .order_by(NotificationOutbox.created_at)
            .limit(batch_size)
            .with_for_update(skip_locked=True)
            .all()
        )
        logger.info("Locked %s notifications for processing", len(notifications))

        for notification in notifications:
            success, error = deliver_notification(notification)
            apply_delivery_result(
                notification,
                success,
                error,
                now=now,
                max_attempts=settings.NOTIFICATION_MAX_ATTEMPTS,
            )
            if success:
                processed_count += 1

        db.commit()
        logger.info("Processed %s/%s notifications", processed_count, len(notifications))

    except Exception:
        db.rollback()
        logger.exception("Error processing outbox")
        raise

    finally:
        db.close()

    return {"processed": processed_count, "total_locked": len(notifications)}


@celery_app.task(name="expire_public_links")
def expire_public_links():
    """Move jobs whose customer link has passed token_expires_at to `expired`."""
    db = SessionLocal()
    try:
        expired = expire_public_links_use_case(db=db)
    finally:
        db.close()
    return {"expired": expired}


# Schedule periodic processing
celery_app.conf.beat_schedule = {
    'process-outbox-every-30s': {
        'task': 'process_notification_outbox',
        'schedule': 30.0,  # Every 30 seconds
    },
    'expire-public-links-every-5m': {
        'task': 'expire_public_links',
        'schedule': 300.0,
    },
}
