"""Security helpers (RBAC, ownership rules and tenant-scoped access checks)."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from .domain_errors import ForbiddenError
from .services.status_rules import RESTRICTED_ROLE

_ALL_ROLES = frozenset({"super_admin", "org_admin", "site_admin", "service_advisor", "technician"})
_STAFF_ROLES = _ALL_ROLES - {RESTRICTED_ROLE}
_ADMIN_ROLES = frozenset({"super_admin", "org_admin", "site_admin"})

# Operation -> roles allowed to attempt it. Ownership rules are layered on top.
OPERATION_ROLES: dict[str, frozenset[str]] = {
    "create": _STAFF_ROLES,
    "view": _ALL_ROLES,
    "change_status": _ALL_ROLES,
    "cancel": _STAFF_ROLES,
    "mark_arrived": _STAFF_ROLES,
    "mark_no_show": _STAFF_ROLES,
    "assign_technician": _ALL_ROLES,
    "clock_in": _ALL_ROLES,
    "clock_out": _ALL_ROLES,
    "publish": _STAFF_ROLES,
    "close": _STAFF_ROLES,
    "soft_delete": _STAFF_ROLES,
    "restore": _ADMIN_ROLES,
    "generate_repair_items": _STAFF_ROLES,
    "manage_repair_items": _STAFF_ROLES,
    "complete_work": _ALL_ROLES,
}

# Operations a technician may only perform on jobs assigned to them.
_ASSIGNED_ONLY_OPERATIONS = frozenset({"change_status", "clock_in", "clock_out"})
# Operations a technician may only perform on their own behalf.
_SELF_ONLY_OPERATIONS = frozenset({"assign_technician", "clock_in", "clock_out"})


def is_assigned_technician(health_check: Any, user: Any) -> bool:
    return health_check is not None and health_check.technician_id == user.id


def can_perform(
    user: Any,
    operation: str,
    health_check: Any = None,
    *,
    technician_id: UUID | None = None,
) -> bool:
    """Single policy check evaluated once per operation."""
    allowed_roles = OPERATION_ROLES.get(operation)
    if allowed_roles is None or user.role not in allowed_roles:
        return False
    if user.role != RESTRICTED_ROLE:
        return True

    if operation in _SELF_ONLY_OPERATIONS and technician_id is not None and technician_id != user.id:
        return False
    if operation in _ASSIGNED_ONLY_OPERATIONS and not is_assigned_technician(health_check, user):
        return False
    return True


_FORBIDDEN_MESSAGES: dict[str, str] = {
    "change_status": "Not authorized to change this health check status",
    "assign_technician": "Technicians can only assign themselves to jobs",
    "clock_in": "Not authorized to clock in to this health check",
    "clock_out": "Not authorized to clock out of this health check",
}


def require_capability(
    user: Any,
    operation: str,
    health_check: Any = None,
    *,
    technician_id: UUID | None = None,
) -> None:
    """Raise ForbiddenError unless `can_perform` allows the operation."""
    if not can_perform(user, operation, health_check, technician_id=technician_id):
        raise ForbiddenError(
            code="OPERATION_FORBIDDEN",
            message=_FORBIDDEN_MESSAGES.get(operation, f"Permission denied: {operation}"),
        )
