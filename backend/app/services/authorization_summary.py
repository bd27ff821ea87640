"""Read-side projection of customer decisions and work completion per health check.

Nothing here is persisted; the summary is rebuilt from rows on every read.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from decimal import Decimal
from datetime import datetime, timezone
from typing import Any

from .status_rules import as_utc

ZERO = Decimal("0")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class AuthorizationSummary:
    total_items: int
    red_count: int
    amber_count: int
    green_count: int
    total_identified: Decimal
    total_authorised: Decimal
    total_declined: int
    approved_count: int
    work_completed_count: int
    work_completed_value: Decimal
    work_outstanding_count: int
    work_outstanding_value: Decimal

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _price(item: Any) -> Decimal:
    value = getattr(item, "total_price", None)
    return Decimal(str(value)) if value is not None else ZERO


def _decided_key(authorization: Any) -> datetime:
    decided_at = authorization.decided_at
    return as_utc(decided_at) if decided_at is not None else _EPOCH


def latest_decisions(authorizations: Iterable[Any]) -> dict[Any, str]:
    """Map repair_item_id -> most recent decision."""
    latest: dict[Any, Any] = {}
    for authorization in authorizations:
        current = latest.get(authorization.repair_item_id)
        if current is None or _decided_key(authorization) >= _decided_key(current):
            latest[authorization.repair_item_id] = authorization
    return {item_id: authorization.decision for item_id, authorization in latest.items()}


def is_item_authorised(item: Any, decisions: dict[Any, str]) -> bool:
    """The latest customer decision wins; the staff flag only counts when none is recorded."""
    decision = decisions.get(item.id)
    if decision is not None:
        return decision == "approved"
    return bool(item.is_approved)


def summarize_authorizations(
    *,
    check_results: Iterable[Any],
    repair_items: Iterable[Any],
    authorizations: Iterable[Any],
) -> AuthorizationSummary:
    results = list(check_results)
    items = list(repair_items)
    decisions_list = list(authorizations)
    decisions = latest_decisions(decisions_list)

    authorised = [item for item in items if is_item_authorised(item, decisions)]
    completed = [item for item in authorised if item.work_completed_at is not None]
    outstanding = [item for item in authorised if item.work_completed_at is None]

    return AuthorizationSummary(
        total_items=len(results),
        red_count=sum(1 for result in results if result.rag_status == "red"),
        amber_count=sum(1 for result in results if result.rag_status == "amber"),
        green_count=sum(1 for result in results if result.rag_status == "green"),
        total_identified=sum((_price(item) for item in items if item.is_visible), ZERO),
        total_authorised=sum((_price(item) for item in authorised), ZERO),
        total_declined=sum(1 for authorization in decisions_list if authorization.decision == "declined"),
        approved_count=len(authorised),
        work_completed_count=len(completed),
        work_completed_value=sum((_price(item) for item in completed), ZERO),
        work_outstanding_count=len(outstanding),
        work_outstanding_value=sum((_price(item) for item in outstanding), ZERO),
    )
