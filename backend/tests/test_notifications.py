from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest
import requests
from redis.exceptions import ConnectionError as RedisConnectionError

from app import celery_app as outbox_worker
from app.services.realtime import EVENT_STATUS_CHANGED, RealtimeNotifier
from app.use_cases.health_check_lifecycle import change_status_use_case

from conftest import BASE_TIME


def _notification(**overrides):
    values = {
        "id": uuid4(),
        "type": "customer_health_check_ready",
        "channel": "email",
        "health_check_id": uuid4(),
        "public_url": "http://localhost:5183/view/abc",
        "message": None,
        "meta_data": {},
        "idempotency_key": "customer_health_check_ready:x:abc:email",
        "status": "pending",
        "attempts": 0,
        "last_error": None,
        "next_retry_at": None,
        "sent_at": None,
        "failed_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_successful_delivery_marks_row_sent() -> None:
    notification = _notification(last_error="HTTP_500: boom", next_retry_at=BASE_TIME)

    outbox_worker.apply_delivery_result(notification, True, None, now=BASE_TIME, max_attempts=3)

    assert notification.status == "sent"
    assert notification.sent_at == BASE_TIME
    assert notification.last_error is None
    assert notification.next_retry_at is None


def test_failed_delivery_backs_off_exponentially() -> None:
    notification = _notification(attempts=1)

    outbox_worker.apply_delivery_result(notification, False, "HTTP_502: bad gateway", now=BASE_TIME, max_attempts=3)

    assert notification.status == "pending"
    assert notification.attempts == 2
    assert notification.next_retry_at == BASE_TIME + timedelta(minutes=4)


def test_delivery_gives_up_after_max_attempts() -> None:
    notification = _notification(attempts=2)

    outbox_worker.apply_delivery_result(notification, False, "HTTP_500: boom", now=BASE_TIME, max_attempts=3)

    assert notification.status == "failed"
    assert notification.failed_at == BASE_TIME


def test_rate_limit_honours_retry_after() -> None:
    notification = _notification()

    outbox_worker.apply_delivery_result(notification, False, "RATE_LIMIT:120", now=BASE_TIME, max_attempts=3)

    assert notification.status == "pending"
    assert notification.next_retry_at == BASE_TIME + timedelta(seconds=120)


def test_deliver_without_gateway_configured(monkeypatch) -> None:
    monkeypatch.setattr(outbox_worker.settings, "NOTIFICATION_DELIVERY_URL", None)

    assert outbox_worker.deliver_notification(_notification()) == (False, "NOTIFICATION_DELIVERY_URL not configured")


@pytest.mark.parametrize(
    ("status_code", "response_headers", "expected"),
    [
        (202, {}, (True, None)),
        (429, {"Retry-After": "30"}, (False, "RATE_LIMIT:30")),
        (429, {"Retry-After": "soon"}, (False, "RATE_LIMIT:60")),
        (503, {}, (False, "HTTP_503: unavailable")),
    ],
)
def test_deliver_maps_gateway_responses(monkeypatch, status_code, response_headers, expected) -> None:
    captured = {}

    def _fake_post(url, json, headers, timeout):
        captured.update(url=url, json=json, headers=headers)
        return SimpleNamespace(status_code=status_code, headers=response_headers, text="unavailable")

    monkeypatch.setattr(outbox_worker.settings, "NOTIFICATION_DELIVERY_URL", "http://gateway.test/send")
    monkeypatch.setattr(outbox_worker.requests, "post", _fake_post)
    notification = _notification()

    assert outbox_worker.deliver_notification(notification) == expected
    assert captured["headers"] == {"Idempotency-Key": notification.idempotency_key}
    assert captured["json"]["channel"] == "email"


def test_deliver_network_error_is_retryable(monkeypatch) -> None:
    def _fake_post(*_args, **_kwargs):
        raise requests.ConnectionError("gateway down")

    monkeypatch.setattr(outbox_worker.settings, "NOTIFICATION_DELIVERY_URL", "http://gateway.test/send")
    monkeypatch.setattr(outbox_worker.requests, "post", _fake_post)

    success, error = outbox_worker.deliver_notification(_notification())

    assert success is False
    assert error.startswith("EXCEPTION:")


class _RecordingRedis:
    def __init__(self):
        self.published = []

    def publish(self, channel, message):
        self.published.append((channel, message))
        return 1


class _BrokenRedis:
    def publish(self, channel, message):
        raise RedisConnectionError("redis unavailable")


def test_realtime_publishes_to_site_channel() -> None:
    client = _RecordingRedis()
    notifier = RealtimeNotifier(client=client, channel_prefix="vhc")
    site_id = uuid4()
    health_check = SimpleNamespace(id=uuid4(), site_id=site_id)

    assert notifier.notify_status_changed(health_check, from_status="created", to_status="assigned", changed_by=None)

    channel, message = client.published[0]
    assert channel == f"vhc:site:{site_id}"
    assert EVENT_STATUS_CHANGED in message
    assert str(health_check.id) in message


def test_realtime_skips_jobs_without_site() -> None:
    client = _RecordingRedis()
    notifier = RealtimeNotifier(client=client, channel_prefix="vhc")

    assert notifier.notify_clocked_in(SimpleNamespace(id=uuid4(), site_id=None), technician_id=uuid4(), at=BASE_TIME) is False
    assert client.published == []


def test_realtime_failure_is_logged_not_raised(caplog) -> None:
    notifier = RealtimeNotifier(client=_BrokenRedis(), channel_prefix="vhc")
    health_check = SimpleNamespace(id=uuid4(), site_id=uuid4())

    result = notifier.notify_clocked_out(
        health_check, technician_id=uuid4(), at=BASE_TIME, duration_minutes=5, completed=True
    )

    assert result is False
    assert "realtime.publish_failed" in caplog.text


def test_broken_realtime_does_not_fail_status_change(db_session, factory, org, advisor) -> None:
    health_check = factory.health_check(org, status="created", site_id=uuid4())

    result = change_status_use_case(
        db=db_session,
        health_check_id=health_check.id,
        current_user=advisor,
        new_status="cancelled",
        notifier=RealtimeNotifier(client=_BrokenRedis(), channel_prefix="vhc"),
    )

    assert result.status == "cancelled"
