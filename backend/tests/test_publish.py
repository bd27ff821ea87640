from __future__ import annotations

from datetime import timedelta

import pytest

from app.config import get_settings
from app.domain_errors import DomainValidationError, ForbiddenError, InvalidStateError
from app.models import NotificationOutbox, StatusHistory
from app.services.notification_scheduler import (
    TYPE_READY,
    TYPE_REMINDER,
    build_idempotency_key,
    schedule_reminders,
)
from app.services.public_tokens import build_public_url, generate_public_token
from app.use_cases.publish import PublishOptions, publish_health_check_use_case

from conftest import BASE_TIME


def _outbox(db, health_check, *, type_=None):
    query = db.query(NotificationOutbox).filter(NotificationOutbox.health_check_id == health_check.id)
    if type_ is not None:
        query = query.filter(NotificationOutbox.type == type_)
    return query.all()


def test_publish_issues_link_and_moves_to_sent(db_session, factory, org, advisor, notifier) -> None:
    health_check = factory.health_check(org, status="ready_to_send")

    result = publish_health_check_use_case(
        db=db_session,
        health_check_id=health_check.id,
        current_user=advisor,
        options=PublishOptions(send_email=True, send_sms=True, message="Your report is ready"),
        now=BASE_TIME,
    )

    assert len(result.public_token) == 64
    assert result.public_url.endswith(f"/view/{result.public_token}")
    assert result.expires_at == BASE_TIME + timedelta(days=7)
    assert health_check.status == "sent"
    assert health_check.sent_at == BASE_TIME
    assert health_check.public_token == result.public_token

    history = db_session.query(StatusHistory).filter(StatusHistory.health_check_id == health_check.id).all()
    assert [(row.from_status, row.to_status, row.notes) for row in history] == [
        ("ready_to_send", "sent", "Sent to customer via email and SMS")
    ]
    assert notifier.of_kind("status_changed") == [("status_changed", health_check.id, "ready_to_send", "sent")]


def test_publish_queues_one_row_per_channel_and_reminders(db_session, factory, org, advisor) -> None:
    health_check = factory.health_check(org, status="ready_to_send")

    result = publish_health_check_use_case(
        db=db_session,
        health_check_id=health_check.id,
        current_user=advisor,
        options=PublishOptions(send_email=True, send_sms=True),
        now=BASE_TIME,
    )

    ready = _outbox(db_session, health_check, type_=TYPE_READY)
    assert sorted(row.channel for row in ready) == ["email", "sms"]
    assert all(row.status == "pending" and row.public_url == result.public_url for row in ready)

    reminders = _outbox(db_session, health_check, type_=TYPE_REMINDER)
    assert len(reminders) == 6
    email_reminders = sorted((row for row in reminders if row.channel == "email"), key=lambda row: row.meta_data["reminder_number"])
    assert [row.meta_data["reminder_number"] for row in email_reminders] == [1, 2, 3]
    assert email_reminders[0].idempotency_key == build_idempotency_key(
        TYPE_REMINDER, health_check.id, result.public_token, "email", 1
    )


def test_republish_cancels_earlier_reminders(db_session, factory, org, advisor) -> None:
    health_check = factory.health_check(org, status="ready_to_send")
    first = publish_health_check_use_case(
        db=db_session, health_check_id=health_check.id, current_user=advisor, now=BASE_TIME
    )

    second = publish_health_check_use_case(
        db=db_session,
        health_check_id=health_check.id,
        current_user=advisor,
        now=BASE_TIME + timedelta(hours=1),
    )

    assert second.public_token != first.public_token
    reminders = _outbox(db_session, health_check, type_=TYPE_REMINDER)
    stale = [row for row in reminders if first.public_token[:12] in row.idempotency_key]
    fresh = [row for row in reminders if second.public_token[:12] in row.idempotency_key]
    assert {row.status for row in stale} == {"cancelled"}
    assert {row.status for row in fresh} == {"pending"}


def test_short_expiry_drops_reminders_past_the_link(db_session, factory, org, advisor) -> None:
    health_check = factory.health_check(org, status="ready_to_send")

    publish_health_check_use_case(
        db=db_session,
        health_check_id=health_check.id,
        current_user=advisor,
        options=PublishOptions(expires_in_days=1),
        now=BASE_TIME,
    )

    reminders = _outbox(db_session, health_check, type_=TYPE_REMINDER)
    assert [row.meta_data["reminder_number"] for row in reminders] == [1]


def test_reminders_disabled_for_org(db_session, factory) -> None:
    quiet_org = factory.org(name="Quiet Garage", reminders_enabled=False)
    quiet_advisor = factory.user(quiet_org)
    health_check = factory.health_check(quiet_org, status="ready_to_send")

    publish_health_check_use_case(
        db=db_session, health_check_id=health_check.id, current_user=quiet_advisor, now=BASE_TIME
    )

    assert _outbox(db_session, health_check, type_=TYPE_REMINDER) == []
    assert len(_outbox(db_session, health_check, type_=TYPE_READY)) == 1


def test_org_reminder_schedule_overrides_default(db_session, factory, org) -> None:
    health_check = factory.health_check(org, status="sent")

    rows = schedule_reminders(
        db_session,
        health_check=health_check,
        sent_at=BASE_TIME,
        expires_at=BASE_TIME + timedelta(days=7),
        org_settings={"reminder_schedule": [{"hours": 2}, {"hours": 200}]},
        token="a" * 64,
        public_url="http://localhost/view/abc",
        channels=["sms"],
        now=BASE_TIME,
    )

    assert [(row.scheduled_for, row.meta_data["reminder_number"]) for row in rows] == [
        (BASE_TIME + timedelta(hours=2), 1)
    ]


def test_reminders_already_due_are_skipped(db_session, factory, org) -> None:
    health_check = factory.health_check(org, status="sent")

    rows = schedule_reminders(
        db_session,
        health_check=health_check,
        sent_at=BASE_TIME,
        expires_at=None,
        org_settings=None,
        token="b" * 64,
        public_url="http://localhost/view/abc",
        channels=["email"],
        now=BASE_TIME + timedelta(hours=5),
    )

    assert [row.meta_data["reminder_number"] for row in rows] == [2, 3]


def test_publish_without_channel_is_rejected(db_session, factory, org, advisor) -> None:
    health_check = factory.health_check(org, status="ready_to_send")

    with pytest.raises(DomainValidationError) as exc_info:
        publish_health_check_use_case(
            db=db_session,
            health_check_id=health_check.id,
            current_user=advisor,
            options=PublishOptions(send_email=False, send_sms=False),
        )

    assert exc_info.value.code == "NO_CHANNEL_SELECTED"
    assert health_check.status == "ready_to_send"


@pytest.mark.parametrize("days", [0, 91])
def test_publish_rejects_out_of_range_expiry(db_session, factory, org, advisor, days) -> None:
    health_check = factory.health_check(org, status="ready_to_send")

    with pytest.raises(DomainValidationError) as exc_info:
        publish_health_check_use_case(
            db=db_session,
            health_check_id=health_check.id,
            current_user=advisor,
            options=PublishOptions(expires_in_days=days),
        )

    assert exc_info.value.code == "INVALID_EXPIRY"


@pytest.mark.parametrize("status", ["created", "in_progress", "awaiting_pricing", "authorized"])
def test_publish_requires_publishable_status(db_session, factory, org, advisor, status) -> None:
    health_check = factory.health_check(org, status=status)

    with pytest.raises(InvalidStateError):
        publish_health_check_use_case(db=db_session, health_check_id=health_check.id, current_user=advisor)

    assert health_check.public_token is None
    assert _outbox(db_session, health_check) == []


def test_technician_cannot_publish(db_session, factory, org, technician) -> None:
    health_check = factory.health_check(org, status="ready_to_send", technician_id=technician.id)

    with pytest.raises(ForbiddenError):
        publish_health_check_use_case(db=db_session, health_check_id=health_check.id, current_user=technician)


def test_public_tokens_are_unique_lowercase_hex() -> None:
    tokens = {generate_public_token() for _ in range(50)}

    assert len(tokens) == 50
    assert all(len(token) == 64 and token == token.lower() for token in tokens)
    assert all(set(token) <= set("0123456789abcdef") for token in tokens)


def test_public_url_joins_app_url_without_double_slash(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "PUBLIC_APP_URL", "https://reports.garage.test/")

    assert build_public_url("abc123") == "https://reports.garage.test/view/abc123"
