"""Health check workflow endpoints."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import User
from ..schemas import (
    AssignTechnicianRequest,
    AuthorizationSummaryResponse,
    BulkDeleteRequest,
    BulkDeleteResponse,
    ClockInRequest,
    ClockInResponse,
    ClockOutRequest,
    ClockOutResponse,
    HealthCheckCreate,
    HealthCheckDetailResponse,
    HealthCheckResponse,
    MarkArrivedRequest,
    NotesRequest,
    PublishRequest,
    PublishResponse,
    SoftDeleteRequest,
    StatusChangeRequest,
    StatusHistoryResponse,
    TimeEntryListResponse,
    TimeEntryResponse,
)
from ..use_cases.deletion import (
    bulk_soft_delete_use_case,
    restore_health_check_use_case,
    soft_delete_health_check_use_case,
)
from ..use_cases.health_check_lifecycle import (
    assign_technician_use_case,
    cancel_health_check_use_case,
    change_status_use_case,
    close_health_check_use_case,
    create_health_check_use_case,
    get_health_check_detail_use_case,
    list_status_history_use_case,
    mark_arrived_use_case,
    mark_no_show_use_case,
)
from ..use_cases.publish import PublishOptions, publish_health_check_use_case
from ..use_cases.time_tracking import clock_in_use_case, clock_out_use_case, list_time_entries_use_case

router = APIRouter(prefix="/health-checks", tags=["health-checks"])


@router.post("", response_model=HealthCheckResponse, status_code=201)
def create_health_check(
    data: HealthCheckCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create health check."""
    return create_health_check_use_case(
        db=db,
        current_user=current_user,
        vehicle_id=data.vehicle_id,
        template_id=data.template_id,
        customer_id=data.customer_id,
        technician_id=data.technician_id,
        advisor_id=data.advisor_id,
        site_id=data.site_id,
        mileage_in=data.mileage_in,
        awaiting_arrival=data.awaiting_arrival,
    )


# Declared before /{health_check_id} routes so "bulk-delete" is not parsed as an id.
@router.post("/bulk-delete", response_model=BulkDeleteResponse)
def bulk_delete_health_checks(
    data: BulkDeleteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    result = bulk_soft_delete_use_case(
        db=db,
        health_check_ids=data.ids,
        current_user=current_user,
        reason=data.reason,
        notes=data.notes,
    )
    return BulkDeleteResponse(deleted=result.deleted, skipped=result.skipped, deleted_ids=result.deleted_ids)


@router.get("/{health_check_id}", response_model=HealthCheckDetailResponse)
def get_health_check(
    health_check_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Full health check detail with repair items and authorization summary."""
    detail = get_health_check_detail_use_case(db=db, health_check_id=health_check_id, current_user=current_user)
    return HealthCheckDetailResponse(
        health_check=HealthCheckResponse.model_validate(detail.health_check),
        check_results=detail.check_results,
        repair_items=detail.repair_items,
        authorizations=detail.authorizations,
        time_entries=detail.time_entries,
        summary=AuthorizationSummaryResponse(**detail.summary.as_dict()),
    )


@router.post("/{health_check_id}/status", response_model=HealthCheckResponse)
def change_status(
    health_check_id: UUID,
    data: StatusChangeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return change_status_use_case(
        db=db,
        health_check_id=health_check_id,
        current_user=current_user,
        new_status=data.status,
        notes=data.notes,
    )


@router.post("/{health_check_id}/cancel", response_model=HealthCheckResponse)
def cancel_health_check(
    health_check_id: UUID,
    data: NotesRequest | None = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return cancel_health_check_use_case(
        db=db,
        health_check_id=health_check_id,
        current_user=current_user,
        notes=data.notes if data else None,
    )


@router.post("/{health_check_id}/mark-arrived", response_model=HealthCheckResponse)
def mark_arrived(
    health_check_id: UUID,
    data: MarkArrivedRequest | None = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return mark_arrived_use_case(
        db=db,
        health_check_id=health_check_id,
        current_user=current_user,
        mileage_in=data.mileage_in if data else None,
    )


@router.post("/{health_check_id}/mark-no-show", response_model=HealthCheckResponse)
def mark_no_show(
    health_check_id: UUID,
    data: NotesRequest | None = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return mark_no_show_use_case(
        db=db,
        health_check_id=health_check_id,
        current_user=current_user,
        notes=data.notes if data else None,
    )


@router.post("/{health_check_id}/assign", response_model=HealthCheckResponse)
def assign_technician(
    health_check_id: UUID,
    data: AssignTechnicianRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return assign_technician_use_case(
        db=db,
        health_check_id=health_check_id,
        current_user=current_user,
        technician_id=data.technician_id,
    )


@router.post("/{health_check_id}/clock-in", response_model=ClockInResponse)
def clock_in(
    health_check_id: UUID,
    data: ClockInRequest | None = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    result = clock_in_use_case(
        db=db,
        health_check_id=health_check_id,
        current_user=current_user,
        technician_id=data.technician_id if data else None,
    )
    return ClockInResponse(
        time_entry=TimeEntryResponse.model_validate(result.time_entry),
        auto_closed_entry=(
            TimeEntryResponse.model_validate(result.auto_closed_entry) if result.auto_closed_entry else None
        ),
        health_check_status=result.health_check.status,
    )


@router.post("/{health_check_id}/clock-out", response_model=ClockOutResponse)
def clock_out(
    health_check_id: UUID,
    data: ClockOutRequest | None = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Clock out; `complete` defaults to true when the body is omitted."""
    data = data or ClockOutRequest()
    result = clock_out_use_case(
        db=db,
        health_check_id=health_check_id,
        current_user=current_user,
        technician_id=data.technician_id,
        complete=data.complete,
    )
    return ClockOutResponse(
        time_entry=TimeEntryResponse.model_validate(result.time_entry),
        health_check_status=result.health_check.status,
        repair_items_created=result.repair_items_created,
    )


@router.get("/{health_check_id}/time-entries", response_model=TimeEntryListResponse)
def get_time_entries(
    health_check_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    listing = list_time_entries_use_case(db=db, health_check_id=health_check_id, current_user=current_user)
    return TimeEntryListResponse(
        entries=[TimeEntryResponse.model_validate(entry) for entry in listing.entries],
        total_minutes=listing.total_minutes,
    )


@router.get("/{health_check_id}/history", response_model=list[StatusHistoryResponse])
def get_status_history(
    health_check_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return list_status_history_use_case(db=db, health_check_id=health_check_id, current_user=current_user)


@router.post("/{health_check_id}/publish", response_model=PublishResponse)
def publish_health_check(
    health_check_id: UUID,
    data: PublishRequest | None = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Send the report link to the customer."""
    data = data or PublishRequest()
    result = publish_health_check_use_case(
        db=db,
        health_check_id=health_check_id,
        current_user=current_user,
        options=PublishOptions(
            send_email=data.send_email,
            send_sms=data.send_sms,
            expires_in_days=data.expires_in_days,
            message=data.message,
        ),
    )
    return PublishResponse(
        id=result.health_check.id,
        status=result.health_check.status,
        public_url=result.public_url,
        expires_at=result.expires_at,
        channels=result.channels,
    )


@router.post("/{health_check_id}/close", response_model=HealthCheckResponse)
def close_health_check(
    health_check_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return close_health_check_use_case(db=db, health_check_id=health_check_id, current_user=current_user)


@router.delete("/{health_check_id}", response_model=HealthCheckResponse)
def soft_delete_health_check(
    health_check_id: UUID,
    data: SoftDeleteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return soft_delete_health_check_use_case(
        db=db,
        health_check_id=health_check_id,
        current_user=current_user,
        reason=data.reason,
        notes=data.notes,
    )


@router.post("/{health_check_id}/restore", response_model=HealthCheckResponse)
def restore_health_check(
    health_check_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return restore_health_check_use_case(db=db, health_check_id=health_check_id, current_user=current_user)
