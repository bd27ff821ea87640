"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class NotFoundError(DomainError):
    def __init__(self, *, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(code=code, http_status=404, message=message, details=details)


class InvalidTransitionError(DomainError):
    """Status table rejected the move."""

    def __init__(self, *, current_status: str, requested_status: str) -> None:
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            http_status=400,
            message=f"Invalid status transition from {current_status} to {requested_status}",
            details={"currentStatus": current_status, "requestedStatus": requested_status},
        )


class InvalidStateError(DomainError):
    """Operation-specific precondition on the current status failed."""

    def __init__(self, *, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(code=code, http_status=400, message=message, details=details)


class ForbiddenError(DomainError):
    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(code=code, http_status=403, message=message)


class DomainValidationError(DomainError):
    def __init__(self, *, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(code=code, http_status=422, message=message, details=details)


class NotClockedInError(DomainError):
    def __init__(self) -> None:
        super().__init__(code="NOT_CLOCKED_IN", http_status=400, message="Not clocked in")


class AlreadyDeletedError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code="HEALTH_CHECK_ALREADY_DELETED",
            http_status=400,
            message="Health check is already deleted",
        )


class NotDeletedError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code="HEALTH_CHECK_NOT_DELETED",
            http_status=400,
            message="Health check is not deleted",
        )


class IncompleteWorkError(DomainError):
    """Close-gating failure; carries the approved items still lacking completion."""

    def __init__(self, *, incomplete_items: list[dict[str, Any]]) -> None:
        super().__init__(
            code="INCOMPLETE_WORK",
            http_status=400,
            message="Cannot close health check: some authorised work is not complete",
            details={"incomplete_items": incomplete_items},
        )

    @property
    def incomplete_items(self) -> list[dict[str, Any]]:
        return list((self.details or {}).get("incomplete_items", []))


class PersistenceError(DomainError):
    """Storage failure; message intentionally generic."""

    def __init__(self, *, message: str = "Failed to save changes") -> None:
        super().__init__(code="PERSISTENCE_ERROR", http_status=500, message=message)
