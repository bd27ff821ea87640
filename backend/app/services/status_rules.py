"""Health check status table and workflow constants."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID


USER_ROLES: tuple[str, ...] = (
    "super_admin",
    "org_admin",
    "site_admin",
    "service_advisor",
    "technician",
)
RESTRICTED_ROLE = "technician"

RAG_STATUSES: tuple[str, ...] = ("green", "amber", "red")
REPAIRABLE_RAG_STATUSES: tuple[str, ...] = ("red", "amber")
CHANGE_SOURCES: tuple[str, ...] = ("user", "system")

_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "awaiting_arrival": frozenset({"created", "no_show", "cancelled"}),
    "no_show": frozenset({"awaiting_arrival", "cancelled"}),
    "created": frozenset({"assigned", "cancelled"}),
    "assigned": frozenset({"in_progress", "cancelled"}),
    "in_progress": frozenset({"paused", "tech_completed", "cancelled"}),
    "paused": frozenset({"in_progress", "cancelled"}),
    "tech_completed": frozenset({"awaiting_review", "awaiting_pricing"}),
    "awaiting_review": frozenset({"awaiting_pricing", "ready_to_send"}),
    "awaiting_pricing": frozenset({"awaiting_parts", "ready_to_send"}),
    "awaiting_parts": frozenset({"ready_to_send"}),
    "ready_to_send": frozenset({"sent"}),
    "sent": frozenset({"delivered", "expired"}),
    "delivered": frozenset({"opened", "expired"}),
    "opened": frozenset({"partial_response", "authorized", "declined", "expired"}),
    "partial_response": frozenset({"authorized", "declined", "expired"}),
    "authorized": frozenset({"completed"}),
    "declined": frozenset({"completed"}),
    "expired": frozenset({"completed"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

HEALTH_CHECK_STATUSES: tuple[str, ...] = tuple(_ALLOWED_TRANSITIONS)
TERMINAL_STATUSES: frozenset[str] = frozenset(
    status for status, successors in _ALLOWED_TRANSITIONS.items() if not successors
)

# Audit-only tag written to status history on soft delete/restore; never a job status.
DELETED_AUDIT_TAG = "deleted"

DELETABLE_STATUSES: frozenset[str] = frozenset({"created", "assigned", "cancelled"})
PUBLISHABLE_STATUSES: frozenset[str] = frozenset({"ready_to_send", "sent", "expired"})
CLOCK_IN_RESUMABLE_STATUSES: frozenset[str] = frozenset({"assigned", "paused"})
CLOCK_OUT_UPDATABLE_STATUSES: frozenset[str] = frozenset({"in_progress", "paused", "assigned"})
LINK_EXPIRABLE_STATUSES: frozenset[str] = frozenset({"sent", "delivered", "opened", "partial_response"})

DELETION_REASONS: tuple[str, ...] = (
    "no_show",            # Customer did not arrive
    "no_time",            # Not enough time to perform inspection
    "not_required",       # Customer declined inspection
    "customer_declined",  # Customer declined after initial contact
    "vehicle_issue",      # Vehicle has issues preventing inspection
    "duplicate",          # Duplicate booking
    "other",              # Requires notes
)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def allowed_next_statuses(status: str | None) -> frozenset[str]:
    return _ALLOWED_TRANSITIONS.get(status or "", frozenset())


def is_valid_transition(from_status: str | None, to_status: str | None) -> bool:
    """Return True iff `to_status` is a direct successor of `from_status`."""
    if to_status is None:
        return False
    return to_status in allowed_next_statuses(from_status)


def is_known_status(status: str | None) -> bool:
    return status in _ALLOWED_TRANSITIONS


def initial_health_check_status(*, technician_id: UUID | None, awaiting_arrival: bool = False) -> str:
    if technician_id is not None:
        return "assigned"
    if awaiting_arrival:
        return "awaiting_arrival"
    return "created"


def clock_out_target_status(current_status: str, *, complete: bool) -> str | None:
    """Status a clock-out moves the job to, or None when it must stay unchanged."""
    target = "tech_completed" if complete else "paused"
    if current_status not in CLOCK_OUT_UPDATABLE_STATUSES or current_status == target:
        return None
    return target


def deletion_notes_required(reason: str) -> bool:
    return reason == "other"
