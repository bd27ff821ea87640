"""Repair item endpoints (nested under a health check)."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import User
from ..schemas import (
    GenerateRepairItemsResponse,
    RepairItemCreate,
    RepairItemResponse,
    RepairItemUpdate,
)
from ..use_cases.repair_items import (
    create_repair_item_use_case,
    delete_repair_item_use_case,
    generate_repair_items_use_case,
    mark_work_complete_use_case,
    unmark_work_complete_use_case,
    update_repair_item_use_case,
)

router = APIRouter(prefix="/health-checks/{health_check_id}/repair-items", tags=["repair-items"])


@router.post("/generate", response_model=GenerateRepairItemsResponse)
def generate_repair_items(
    health_check_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create repair items for red/amber findings that do not have one yet."""
    created = generate_repair_items_use_case(db=db, health_check_id=health_check_id, current_user=current_user)
    return GenerateRepairItemsResponse(created=created)


@router.post("", response_model=RepairItemResponse, status_code=201)
def create_repair_item(
    health_check_id: UUID,
    data: RepairItemCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return create_repair_item_use_case(
        db=db,
        health_check_id=health_check_id,
        current_user=current_user,
        **data.model_dump(),
    )


@router.patch("/{repair_item_id}", response_model=RepairItemResponse)
def update_repair_item(
    health_check_id: UUID,
    repair_item_id: UUID,
    data: RepairItemUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    # Only fields present in the request body are applied.
    return update_repair_item_use_case(
        db=db,
        health_check_id=health_check_id,
        repair_item_id=repair_item_id,
        current_user=current_user,
        **data.model_dump(exclude_unset=True),
    )


@router.delete("/{repair_item_id}", status_code=204)
def delete_repair_item(
    health_check_id: UUID,
    repair_item_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    delete_repair_item_use_case(
        db=db,
        health_check_id=health_check_id,
        repair_item_id=repair_item_id,
        current_user=current_user,
    )
    return Response(status_code=204)


@router.post("/{repair_item_id}/complete", response_model=RepairItemResponse)
def mark_work_complete(
    health_check_id: UUID,
    repair_item_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return mark_work_complete_use_case(
        db=db,
        health_check_id=health_check_id,
        repair_item_id=repair_item_id,
        current_user=current_user,
    )


@router.delete("/{repair_item_id}/complete", response_model=RepairItemResponse)
def unmark_work_complete(
    health_check_id: UUID,
    repair_item_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return unmark_work_complete_use_case(
        db=db,
        health_check_id=health_check_id,
        repair_item_id=repair_item_id,
        current_user=current_user,
    )
