"""Derive billable repair items from red/amber inspection findings."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import CheckResult, HealthCheck, RepairItem, TemplateItem
from .status_rules import REPAIRABLE_RAG_STATUSES

logger = logging.getLogger(__name__)

DEFAULT_REPAIR_ITEM_TITLE = "Repair Item"
ZERO = Decimal("0")


def next_sort_order(db: Session, *, health_check_id: UUID) -> int:
    current_max = (
        db.query(func.max(RepairItem.sort_order))
        .filter(RepairItem.health_check_id == health_check_id)
        .scalar()
    )
    return int(current_max or 0) + 1


def has_repairable_findings(db: Session, *, health_check_id: UUID) -> bool:
    return (
        db.query(CheckResult.id)
        .filter(
            CheckResult.health_check_id == health_check_id,
            CheckResult.rag_status.in_(REPAIRABLE_RAG_STATUSES),
        )
        .first()
        is not None
    )


def generate_repair_items(db: Session, *, health_check: HealthCheck) -> int:
    """Create one repair item per red/amber finding that has none yet.

    Idempotent: findings already linked to a repair item are skipped, so repeated
    calls (tech completion, lazy detail read, explicit staff action) create nothing new.
    Returns the number of items created. Does not commit.
    """
    rows = (
        db.query(CheckResult, TemplateItem)
        .outerjoin(TemplateItem, CheckResult.template_item_id == TemplateItem.id)
        .filter(
            CheckResult.health_check_id == health_check.id,
            CheckResult.rag_status.in_(REPAIRABLE_RAG_STATUSES),
        )
        .order_by(CheckResult.created_at.asc(), CheckResult.id.asc())
        .all()
    )
    if not rows:
        return 0

    existing_result_ids = {
        row[0]
        for row in db.query(RepairItem.check_result_id).filter(
            RepairItem.health_check_id == health_check.id,
            RepairItem.check_result_id.isnot(None),
        ).all()
    }
    to_create = [(result, template_item) for result, template_item in rows if result.id not in existing_result_ids]
    if not to_create:
        return 0

    sort_order = next_sort_order(db, health_check_id=health_check.id)
    for result, template_item in to_create:
        title = (template_item.name if template_item else None) or DEFAULT_REPAIR_ITEM_TITLE
        description = result.notes or (template_item.description if template_item else None) or None
        db.add(
            RepairItem(
                health_check_id=health_check.id,
                check_result_id=result.id,
                title=title,
                description=description,
                rag_status=result.rag_status,
                parts_cost=ZERO,
                labour_cost=ZERO,
                total_price=ZERO,
                is_visible=True,
                is_approved=False,
                is_mot_failure=bool(result.is_mot_failure),
                sort_order=sort_order,
            )
        )
        sort_order += 1

    db.flush()
    logger.info("repair_items.generated health_check=%s created=%s", health_check.id, len(to_create))
    return len(to_create)
