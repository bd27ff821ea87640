from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.database import Base
from app.models import (
    Authorization,
    CheckResult,
    HealthCheck,
    Organization,
    RepairItem,
    TemplateItem,
    User,
)
from app.services import realtime

BASE_TIME = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    """Stands in for the Redis notifier and remembers every broadcast."""

    def __init__(self):
        self.events = []

    def notify_status_changed(self, health_check, *, from_status, to_status, changed_by):
        self.events.append(("status_changed", health_check.id, from_status, to_status))
        return True

    def notify_clocked_in(self, health_check, *, technician_id, at):
        self.events.append(("clocked_in", health_check.id, technician_id))
        return True

    def notify_clocked_out(self, health_check, *, technician_id, at, duration_minutes, completed):
        self.events.append(("clocked_out", health_check.id, technician_id, duration_minutes, completed))
        return True

    def of_kind(self, kind):
        return [event for event in self.events if event[0] == kind]


@pytest.fixture(autouse=True)
def notifier(monkeypatch):
    recording = RecordingNotifier()
    monkeypatch.setattr(realtime, "_notifier", recording)
    return recording


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


class Factory:
    def __init__(self, db):
        self.db = db
        self._tick = 0

    def _next_time(self) -> datetime:
        self._tick += 1
        return BASE_TIME + timedelta(seconds=self._tick)

    def org(self, **overrides) -> Organization:
        org = Organization(name=overrides.pop("name", "Main Garage"), settings=overrides.pop("settings", {}), **overrides)
        self.db.add(org)
        self.db.commit()
        return org

    def user(self, org, *, role="service_advisor", **overrides) -> User:
        user = User(
            org_id=org.id,
            site_id=overrides.pop("site_id", None),
            email=overrides.pop("email", f"{uuid4().hex[:10]}@garage.test"),
            first_name=overrides.pop("first_name", "Sam"),
            last_name=overrides.pop("last_name", "Jones"),
            role=role,
            is_active=overrides.pop("is_active", True),
            **overrides,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def health_check(self, org, *, status="created", **overrides) -> HealthCheck:
        health_check = HealthCheck(
            org_id=org.id,
            vehicle_id=overrides.pop("vehicle_id", uuid4()),
            template_id=overrides.pop("template_id", uuid4()),
            status=status,
            created_at=overrides.pop("created_at", BASE_TIME),
            updated_at=overrides.pop("updated_at", BASE_TIME),
            **overrides,
        )
        self.db.add(health_check)
        self.db.commit()
        return health_check

    def template_item(self, *, name="Brake pads", description=None) -> TemplateItem:
        item = TemplateItem(template_id=uuid4(), name=name, description=description)
        self.db.add(item)
        self.db.commit()
        return item

    def check_result(self, health_check, *, rag_status="red", template_item=None, **overrides) -> CheckResult:
        result = CheckResult(
            health_check_id=health_check.id,
            template_item_id=template_item.id if template_item else None,
            rag_status=rag_status,
            notes=overrides.pop("notes", None),
            is_mot_failure=overrides.pop("is_mot_failure", False),
            created_at=overrides.pop("created_at", self._next_time()),
            **overrides,
        )
        self.db.add(result)
        self.db.commit()
        return result

    def repair_item(self, health_check, *, title="Wiper blades", parts_cost="0", labour_cost="0", **overrides) -> RepairItem:
        parts = Decimal(parts_cost)
        labour = Decimal(labour_cost)
        item = RepairItem(
            health_check_id=health_check.id,
            title=title,
            parts_cost=parts,
            labour_cost=labour,
            total_price=overrides.pop("total_price", parts + labour),
            sort_order=overrides.pop("sort_order", 1),
            **overrides,
        )
        self.db.add(item)
        self.db.commit()
        return item

    def authorization(self, repair_item, *, decision="approved", decided_at=None) -> Authorization:
        authorization = Authorization(
            repair_item_id=repair_item.id,
            decision=decision,
            decided_at=decided_at or self._next_time(),
        )
        self.db.add(authorization)
        self.db.commit()
        return authorization


@pytest.fixture
def factory(db_session):
    return Factory(db_session)


@pytest.fixture
def org(factory):
    return factory.org()


@pytest.fixture
def advisor(factory, org):
    return factory.user(org, role="service_advisor")


@pytest.fixture
def technician(factory, org):
    return factory.user(org, role="technician", first_name="Tia", last_name="Tech")


@pytest.fixture
def admin(factory, org):
    return factory.user(org, role="org_admin")
