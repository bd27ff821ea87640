from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.auth import create_access_token
from app.database import get_db
from app.main import app


@pytest.fixture
def client(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth(user, **claims) -> dict[str, str]:
    token = create_access_token({"sub": str(user.id), "org": str(user.org_id), **claims})
    return {"Authorization": f"Bearer {token}"}


def test_system_health_is_public(client) -> None:
    response = client.get("/api/v1/system/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_requests_without_valid_token_are_rejected(client, factory, org, advisor) -> None:
    health_check = factory.health_check(org)

    assert client.get(f"/api/v1/health-checks/{health_check.id}").status_code in (401, 403)
    assert client.get(
        f"/api/v1/health-checks/{health_check.id}", headers={"Authorization": "Bearer not-a-jwt"}
    ).status_code == 401

    expired = create_access_token({"sub": str(advisor.id)}, expires_delta=timedelta(minutes=-10))
    response = client.get(
        f"/api/v1/health-checks/{health_check.id}", headers={"Authorization": f"Bearer {expired}"}
    )
    assert response.status_code == 401


def test_token_for_another_org_is_rejected(client, factory, org, advisor) -> None:
    health_check = factory.health_check(org)
    token = create_access_token({"sub": str(advisor.id), "org": str(uuid4())})

    response = client.get(f"/api/v1/health-checks/{health_check.id}", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_create_then_walk_the_happy_path(client, advisor, technician) -> None:
    created = client.post(
        "/api/v1/health-checks",
        json={"vehicle_id": str(uuid4()), "template_id": str(uuid4()), "technician_id": str(technician.id)},
        headers=_auth(advisor),
    )
    assert created.status_code == 201
    health_check_id = created.json()["id"]
    assert created.json()["status"] == "assigned"

    clock_in = client.post(f"/api/v1/health-checks/{health_check_id}/clock-in", headers=_auth(technician))
    assert clock_in.status_code == 200
    assert clock_in.json()["health_check_status"] == "in_progress"

    clock_out = client.post(f"/api/v1/health-checks/{health_check_id}/clock-out", headers=_auth(technician))
    assert clock_out.status_code == 200
    assert clock_out.json()["health_check_status"] == "tech_completed"
    assert clock_out.json()["repair_items_created"] == 0

    for next_status in ("awaiting_pricing", "ready_to_send"):
        response = client.post(
            f"/api/v1/health-checks/{health_check_id}/status",
            json={"status": next_status},
            headers=_auth(advisor),
        )
        assert response.status_code == 200
        assert response.json()["status"] == next_status

    published = client.post(
        f"/api/v1/health-checks/{health_check_id}/publish",
        json={"send_email": True, "send_sms": True, "expires_in_days": 3},
        headers=_auth(advisor),
    )
    assert published.status_code == 200
    assert published.json()["status"] == "sent"
    assert published.json()["channels"] == ["email", "sms"]

    history = client.get(f"/api/v1/health-checks/{health_check_id}/history", headers=_auth(advisor))
    assert [row["to_status"] for row in history.json()] == [
        "assigned",
        "in_progress",
        "tech_completed",
        "awaiting_pricing",
        "ready_to_send",
        "sent",
    ]


def test_invalid_transition_returns_problem_details(client, factory, org, advisor) -> None:
    health_check = factory.health_check(org, status="created")

    response = client.post(
        f"/api/v1/health-checks/{health_check.id}/status",
        json={"status": "sent"},
        headers=_auth(advisor),
    )

    assert response.status_code == 400
    assert response.headers["content-type"].startswith("application/problem+json")
    assert response.json()["code"] == "INVALID_STATUS_TRANSITION"
    assert response.json()["details"] == {"currentStatus": "created", "requestedStatus": "sent"}


def test_unknown_health_check_is_404(client, advisor) -> None:
    response = client.get(f"/api/v1/health-checks/{uuid4()}", headers=_auth(advisor))

    assert response.status_code == 404
    assert response.json()["code"] == "HEALTH_CHECK_NOT_FOUND"


def test_technician_forbidden_from_publishing(client, factory, org, technician) -> None:
    health_check = factory.health_check(org, status="ready_to_send", technician_id=technician.id)

    response = client.post(f"/api/v1/health-checks/{health_check.id}/publish", headers=_auth(technician))

    assert response.status_code == 403
    assert response.json()["code"] == "OPERATION_FORBIDDEN"


def test_detail_includes_generated_items_and_summary(client, factory, org, advisor) -> None:
    health_check = factory.health_check(org, status="awaiting_pricing")
    factory.check_result(health_check, rag_status="red")

    response = client.get(f"/api/v1/health-checks/{health_check.id}", headers=_auth(advisor))

    assert response.status_code == 200
    payload = response.json()
    assert len(payload["repair_items"]) == 1
    assert payload["summary"]["red_count"] == 1
    assert payload["health_check"]["id"] == str(health_check.id)


def test_bulk_delete_route_is_not_shadowed_by_id_routes(client, factory, org, advisor) -> None:
    first = factory.health_check(org, status="created")
    second = factory.health_check(org, status="sent")

    response = client.post(
        "/api/v1/health-checks/bulk-delete",
        json={"ids": [str(first.id), str(second.id)], "reason": "duplicate"},
        headers=_auth(advisor),
    )

    assert response.status_code == 200
    assert response.json() == {"deleted": 1, "skipped": 1, "deleted_ids": [str(first.id)]}


def test_soft_delete_and_restore(client, factory, org, advisor, admin) -> None:
    health_check = factory.health_check(org, status="created")

    deleted = client.request(
        "DELETE",
        f"/api/v1/health-checks/{health_check.id}",
        json={"reason": "other", "notes": "entered by mistake"},
        headers=_auth(advisor),
    )
    assert deleted.status_code == 200
    assert deleted.json()["deletion_reason"] == "other"

    forbidden = client.post(f"/api/v1/health-checks/{health_check.id}/restore", headers=_auth(advisor))
    assert forbidden.status_code == 403

    restored = client.post(f"/api/v1/health-checks/{health_check.id}/restore", headers=_auth(admin))
    assert restored.status_code == 200
    assert restored.json()["status"] == "created"


def test_close_with_outstanding_work_lists_items(client, factory, org, advisor) -> None:
    health_check = factory.health_check(org, status="authorized")
    item = factory.repair_item(health_check, title="Timing belt", is_approved=True)

    response = client.post(f"/api/v1/health-checks/{health_check.id}/close", headers=_auth(advisor))

    assert response.status_code == 400
    assert response.json()["code"] == "INCOMPLETE_WORK"
    assert response.json()["details"]["incomplete_items"] == [{"id": str(item.id), "title": "Timing belt"}]


def test_repair_item_routes(client, factory, org, advisor) -> None:
    health_check = factory.health_check(org, status="awaiting_pricing")
    base = f"/api/v1/health-checks/{health_check.id}/repair-items"

    created = client.post(base, json={"title": "Brake fluid", "labour_cost": "35.00"}, headers=_auth(advisor))
    assert created.status_code == 201
    item_id = created.json()["id"]

    updated = client.patch(f"{base}/{item_id}", json={"total_price": "50.00"}, headers=_auth(advisor))
    assert updated.status_code == 200
    assert float(updated.json()["labour_cost"]) == 50.0

    completed = client.post(f"{base}/{item_id}/complete", headers=_auth(advisor))
    assert completed.status_code == 200
    assert completed.json()["work_completed_at"] is not None

    deleted = client.delete(f"{base}/{item_id}", headers=_auth(advisor))
    assert deleted.status_code == 204

    generated = client.post(f"{base}/generate", headers=_auth(advisor))
    assert generated.json() == {"created": 0}


def test_malformed_body_is_rendered_as_problem_details(client, advisor) -> None:
    response = client.post("/api/v1/health-checks", json={"vehicle_id": "not-a-uuid"}, headers=_auth(advisor))

    assert response.status_code == 422
    assert response.headers["content-type"].startswith("application/problem+json")
    assert response.json()["code"] == "REQUEST_VALIDATION_FAILED"
    assert response.json()["details"]["errors"]


@pytest.mark.parametrize("field", ["parts_cost", "labour_cost", "is_visible", "is_approved"])
def test_repair_item_patch_with_null_leaves_field_unchanged(client, factory, org, advisor, field) -> None:
    health_check = factory.health_check(org, status="awaiting_pricing")
    item = factory.repair_item(health_check, parts_cost="10", labour_cost="5", is_visible=True, is_approved=True)

    response = client.patch(
        f"/api/v1/health-checks/{health_check.id}/repair-items/{item.id}",
        json={field: None},
        headers=_auth(advisor),
    )

    assert response.status_code == 200
    payload = response.json()
    assert float(payload["parts_cost"]) == 10.0
    assert float(payload["labour_cost"]) == 5.0
    assert payload["is_visible"] is True
    assert payload["is_approved"] is True
    assert float(health_check.total_amount) == 15.0
