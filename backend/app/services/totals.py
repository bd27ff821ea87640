"""Keep HealthCheck financial and RAG rollups consistent with their line items."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import CheckResult, HealthCheck, RepairItem
from .status_rules import RAG_STATUSES, now_utc

ZERO = Decimal("0")


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value))


def recompute_health_check_totals(
    db: Session,
    *,
    health_check: HealthCheck,
    at: Optional[datetime] = None,
) -> HealthCheck:
    """Recalculate total_parts/total_labour/total_amount from visible repair items.

    Hidden items never contribute. Callers invoke this after any repair item
    create/update/delete that can affect visible totals.
    """
    row = (
        db.query(
            func.coalesce(func.sum(RepairItem.parts_cost), 0).label("parts"),
            func.coalesce(func.sum(RepairItem.labour_cost), 0).label("labour"),
        )
        .filter(
            RepairItem.health_check_id == health_check.id,
            RepairItem.is_visible.is_(True),
        )
        .one()
    )
    total_parts = _money(row.parts)
    total_labour = _money(row.labour)

    health_check.total_parts = total_parts
    health_check.total_labour = total_labour
    health_check.total_amount = total_parts + total_labour
    health_check.updated_at = at or now_utc()
    return health_check


def recompute_rag_counts(db: Session, *, health_check: HealthCheck) -> dict[str, int]:
    rows = (
        db.query(CheckResult.rag_status, func.count(CheckResult.id))
        .filter(CheckResult.health_check_id == health_check.id)
        .group_by(CheckResult.rag_status)
        .all()
    )
    counts = {status: 0 for status in RAG_STATUSES}
    for rag_status, count in rows:
        if rag_status in counts:
            counts[rag_status] = int(count or 0)

    health_check.green_count = counts["green"]
    health_check.amber_count = counts["amber"]
    health_check.red_count = counts["red"]
    return counts


def reconcile_price_breakdown(
    *,
    parts_cost: Decimal,
    labour_cost: Decimal,
    total_price: Optional[Decimal] = None,
) -> tuple[Decimal, Decimal, Decimal]:
    """Return (parts, labour, total) with total == parts + labour.

    A direct total-price override is folded into the breakdown: labour absorbs the
    difference; when the override is below the parts cost, parts take the whole
    amount and labour drops to zero.
    """
    parts = _money(parts_cost)
    labour = _money(labour_cost)
    if total_price is None:
        return parts, labour, parts + labour

    total = _money(total_price)
    if total >= parts:
        return parts, total - parts, total
    return total, ZERO, total
