"""Staff repair item management use-cases."""
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ..domain_errors import DomainValidationError, NotFoundError
from ..models import Authorization, HealthCheck, RepairItem, User
from ..security import require_capability
from ..services.repair_items import generate_repair_items, next_sort_order
from ..services.status_rules import RAG_STATUSES
from ..services.totals import reconcile_price_breakdown, recompute_health_check_totals, recompute_rag_counts
from .common import commit_or_raise, get_health_check_or_404, resolve_now

logger = logging.getLogger(__name__)

_UNSET = object()


def _get_repair_item_or_404(*, db: Session, health_check: HealthCheck, repair_item_id: UUID) -> RepairItem:
    item = db.query(RepairItem).filter(
        RepairItem.id == repair_item_id,
        RepairItem.health_check_id == health_check.id,
    ).first()
    if not item:
        raise NotFoundError(
            code="REPAIR_ITEM_NOT_FOUND",
            message="Repair item not found",
            details={"repairItemId": str(repair_item_id)},
        )
    return item


def _validate_money(field_name: str, value) -> Decimal:
    amount = Decimal(str(value))
    if amount < 0:
        raise DomainValidationError(
            code="NEGATIVE_AMOUNT",
            message=f"{field_name} must not be negative",
            details={"field": field_name},
        )
    return amount


def _validate_rag_status(rag_status: str | None) -> None:
    if rag_status is not None and rag_status not in RAG_STATUSES:
        raise DomainValidationError(
            code="INVALID_RAG_STATUS",
            message=f"Invalid RAG status: {rag_status}",
            details={"validStatuses": list(RAG_STATUSES)},
        )


def generate_repair_items_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    now: datetime | None = None,
) -> int:
    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(current_user, "generate_repair_items", health_check)

    recompute_rag_counts(db, health_check=health_check)
    created = generate_repair_items(db, health_check=health_check)
    if created:
        recompute_health_check_totals(db, health_check=health_check, at=resolve_now(now))
    commit_or_raise(db, operation="generate_repair_items")
    return created


def create_repair_item_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    current_user: User,
    title: str,
    description: str | None = None,
    rag_status: str | None = None,
    parts_cost=0,
    labour_cost=0,
    is_visible: bool = True,
    is_mot_failure: bool = False,
    follow_up_date: date | None = None,
    now: datetime | None = None,
) -> RepairItem:
    """Manual repair item, not linked to a finding."""
    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(current_user, "manage_repair_items", health_check)

    title = (title or "").strip()
    if not title:
        raise DomainValidationError(code="TITLE_REQUIRED", message="Title is required")
    _validate_rag_status(rag_status)
    parts, labour, total = reconcile_price_breakdown(
        parts_cost=_validate_money("parts_cost", parts_cost),
        labour_cost=_validate_money("labour_cost", labour_cost),
    )

    at = resolve_now(now)
    item = RepairItem(
        health_check_id=health_check.id,
        title=title,
        description=description,
        rag_status=rag_status,
        parts_cost=parts,
        labour_cost=labour,
        total_price=total,
        is_visible=is_visible,
        is_mot_failure=is_mot_failure,
        follow_up_date=follow_up_date,
        sort_order=next_sort_order(db, health_check_id=health_check.id),
        created_at=at,
        updated_at=at,
    )
    db.add(item)
    db.flush()
    recompute_health_check_totals(db, health_check=health_check, at=at)
    commit_or_raise(db, operation="create_repair_item")
    return item


def update_repair_item_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    repair_item_id: UUID,
    current_user: User,
    title=_UNSET,
    description=_UNSET,
    parts_cost=_UNSET,
    labour_cost=_UNSET,
    total_price=_UNSET,
    is_visible=_UNSET,
    is_approved=_UNSET,
    follow_up_date=_UNSET,
    now: datetime | None = None,
) -> RepairItem:
    """Partial update. A total_price override is folded into parts/labour so totals stay consistent.

    An explicit None for a cost or flag means "leave unchanged"; those columns are not nullable.
    """
    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(current_user, "manage_repair_items", health_check)
    item = _get_repair_item_or_404(db=db, health_check=health_check, repair_item_id=repair_item_id)

    if title is not _UNSET:
        title = (title or "").strip()
        if not title:
            raise DomainValidationError(code="TITLE_REQUIRED", message="Title is required")
    parts = item.parts_cost if parts_cost in (_UNSET, None) else _validate_money("parts_cost", parts_cost)
    labour = item.labour_cost if labour_cost in (_UNSET, None) else _validate_money("labour_cost", labour_cost)
    override = None if total_price is _UNSET or total_price is None else _validate_money("total_price", total_price)

    if title is not _UNSET:
        item.title = title
    if description is not _UNSET:
        item.description = description
    if is_visible not in (_UNSET, None):
        item.is_visible = bool(is_visible)
    if is_approved not in (_UNSET, None):
        item.is_approved = bool(is_approved)
    if follow_up_date is not _UNSET:
        item.follow_up_date = follow_up_date
    item.parts_cost, item.labour_cost, item.total_price = reconcile_price_breakdown(
        parts_cost=parts,
        labour_cost=labour,
        total_price=override,
    )

    at = resolve_now(now)
    item.updated_at = at
    db.flush()
    recompute_health_check_totals(db, health_check=health_check, at=at)
    commit_or_raise(db, operation="update_repair_item")
    return item


def delete_repair_item_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    repair_item_id: UUID,
    current_user: User,
    now: datetime | None = None,
) -> None:
    """Hard delete; customer decisions recorded against the item go with it."""
    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(current_user, "manage_repair_items", health_check)
    item = _get_repair_item_or_404(db=db, health_check=health_check, repair_item_id=repair_item_id)

    db.query(Authorization).filter(Authorization.repair_item_id == item.id).delete(synchronize_session=False)
    db.delete(item)
    db.flush()
    recompute_health_check_totals(db, health_check=health_check, at=resolve_now(now))
    commit_or_raise(db, operation="delete_repair_item")
    logger.info("repair_item.deleted id=%s health_check=%s", repair_item_id, health_check.id)


def mark_work_complete_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    repair_item_id: UUID,
    current_user: User,
    now: datetime | None = None,
) -> RepairItem:
    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(current_user, "complete_work", health_check)
    item = _get_repair_item_or_404(db=db, health_check=health_check, repair_item_id=repair_item_id)

    # Idempotent.
    if item.work_completed_at is not None:
        return item

    at = resolve_now(now)
    item.work_completed_at = at
    item.work_completed_by = current_user.id
    item.updated_at = at
    commit_or_raise(db, operation="mark_work_complete")
    return item


def unmark_work_complete_use_case(
    *,
    db: Session,
    health_check_id: UUID,
    repair_item_id: UUID,
    current_user: User,
    now: datetime | None = None,
) -> RepairItem:
    health_check = get_health_check_or_404(db=db, health_check_id=health_check_id, org_id=current_user.org_id)
    require_capability(current_user, "complete_work", health_check)
    item = _get_repair_item_or_404(db=db, health_check=health_check, repair_item_id=repair_item_id)

    if item.work_completed_at is None:
        return item

    item.work_completed_at = None
    item.work_completed_by = None
    item.updated_at = resolve_now(now)
    commit_or_raise(db, operation="unmark_work_complete")
    return item
