from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest

from app.domain_errors import ForbiddenError
from app.security import OPERATION_ROLES, can_perform, require_capability


def _user(role: str):
    return SimpleNamespace(id=uuid4(), org_id=uuid4(), role=role)


def _health_check(*, technician_id=None):
    return SimpleNamespace(id=uuid4(), technician_id=technician_id)


@pytest.mark.parametrize("role", ["super_admin", "org_admin", "site_admin", "service_advisor"])
def test_staff_roles_can_perform_everything_except_admin_only(role: str) -> None:
    user = _user(role)
    for operation in OPERATION_ROLES:
        if operation == "restore":
            continue
        assert can_perform(user, operation, _health_check()) is True


@pytest.mark.parametrize(
    ("role", "expected"),
    [
        ("super_admin", True),
        ("org_admin", True),
        ("site_admin", True),
        ("service_advisor", False),
        ("technician", False),
    ],
)
def test_restore_is_limited_to_admins(role: str, expected: bool) -> None:
    assert can_perform(_user(role), "restore") is expected


@pytest.mark.parametrize(
    "operation",
    ["create", "cancel", "mark_arrived", "mark_no_show", "publish", "close", "soft_delete",
     "generate_repair_items", "manage_repair_items"],
)
def test_technician_excluded_from_advisor_operations(operation: str) -> None:
    technician = _user("technician")
    assert can_perform(technician, operation, _health_check(technician_id=technician.id)) is False


def test_technician_change_status_requires_assignment() -> None:
    technician = _user("technician")
    assert can_perform(technician, "change_status", _health_check(technician_id=technician.id)) is True
    assert can_perform(technician, "change_status", _health_check(technician_id=uuid4())) is False
    assert can_perform(technician, "change_status", _health_check(technician_id=None)) is False


def test_technician_can_only_assign_themselves() -> None:
    technician = _user("technician")
    assert can_perform(technician, "assign_technician", _health_check(), technician_id=technician.id) is True
    assert can_perform(technician, "assign_technician", _health_check(), technician_id=uuid4()) is False


def test_technician_clock_in_requires_self_and_assignment() -> None:
    technician = _user("technician")
    own_job = _health_check(technician_id=technician.id)

    assert can_perform(technician, "clock_in", own_job, technician_id=technician.id) is True
    assert can_perform(technician, "clock_in", own_job, technician_id=uuid4()) is False
    assert can_perform(technician, "clock_in", _health_check(technician_id=uuid4()), technician_id=technician.id) is False
    assert can_perform(technician, "clock_out", own_job, technician_id=technician.id) is True


def test_advisor_can_clock_in_on_behalf_of_technician() -> None:
    advisor = _user("service_advisor")
    assert can_perform(advisor, "clock_in", _health_check(technician_id=uuid4()), technician_id=uuid4()) is True


def test_unknown_operation_or_role_is_denied() -> None:
    assert can_perform(_user("org_admin"), "launch_rockets") is False
    assert can_perform(_user("janitor"), "view") is False


def test_require_capability_raises_forbidden_with_stable_code() -> None:
    technician = _user("technician")
    with pytest.raises(ForbiddenError) as exc_info:
        require_capability(technician, "change_status", _health_check(technician_id=uuid4()))

    assert exc_info.value.code == "OPERATION_FORBIDDEN"
    assert exc_info.value.http_status == 403
    assert "Not authorized" in exc_info.value.message
