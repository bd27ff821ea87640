"""Pydantic schemas for API."""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID


# Health check schemas
class HealthCheckCreate(BaseModel):
    vehicle_id: UUID
    template_id: UUID
    customer_id: Optional[UUID] = None
    technician_id: Optional[UUID] = None
    advisor_id: Optional[UUID] = None
    site_id: Optional[UUID] = None
    mileage_in: Optional[int] = Field(None, ge=0)
    awaiting_arrival: bool = False


class HealthCheckResponse(BaseModel):
    id: UUID
    org_id: UUID
    site_id: Optional[UUID] = None
    vehicle_id: UUID
    customer_id: Optional[UUID] = None
    template_id: UUID
    technician_id: Optional[UUID] = None
    advisor_id: Optional[UUID] = None
    status: str
    green_count: int
    amber_count: int
    red_count: int
    total_parts: Decimal
    total_labour: Decimal
    total_amount: Decimal
    mileage_in: Optional[int] = None
    mileage_out: Optional[int] = None
    token_expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    first_opened_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    tech_started_at: Optional[datetime] = None
    tech_completed_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    closed_by: Optional[UUID] = None
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[UUID] = None
    deletion_reason: Optional[str] = None
    deletion_notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class StatusChangeRequest(BaseModel):
    status: str
    notes: Optional[str] = None


class NotesRequest(BaseModel):
    notes: Optional[str] = None


class MarkArrivedRequest(BaseModel):
    mileage_in: Optional[int] = Field(None, ge=0)


class AssignTechnicianRequest(BaseModel):
    technician_id: UUID


class ClockInRequest(BaseModel):
    technician_id: Optional[UUID] = None


class ClockOutRequest(BaseModel):
    technician_id: Optional[UUID] = None
    complete: bool = True


class PublishRequest(BaseModel):
    send_email: bool = True
    send_sms: bool = False
    expires_in_days: Optional[int] = None
    message: Optional[str] = None


class PublishResponse(BaseModel):
    id: UUID
    status: str
    public_url: str
    expires_at: datetime
    channels: list[str]


class SoftDeleteRequest(BaseModel):
    reason: str
    notes: Optional[str] = None


class BulkDeleteRequest(SoftDeleteRequest):
    ids: list[UUID]


class BulkDeleteResponse(BaseModel):
    deleted: int
    skipped: int
    deleted_ids: list[UUID]


# Audit / time tracking
class StatusHistoryResponse(BaseModel):
    id: UUID
    from_status: Optional[str] = None
    to_status: str
    changed_by: Optional[UUID] = None
    change_source: str
    notes: Optional[str] = None
    changed_at: datetime
    model_config = ConfigDict(from_attributes=True)


class TimeEntryResponse(BaseModel):
    id: UUID
    technician_id: UUID
    clock_in_at: datetime
    clock_out_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class TimeEntryListResponse(BaseModel):
    entries: list[TimeEntryResponse]
    total_minutes: int


class ClockInResponse(BaseModel):
    time_entry: TimeEntryResponse
    auto_closed_entry: Optional[TimeEntryResponse] = None
    health_check_status: str


class ClockOutResponse(BaseModel):
    time_entry: TimeEntryResponse
    health_check_status: str
    repair_items_created: int


# Repair items
class RepairItemCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    rag_status: Optional[str] = Field(default=None, pattern="^(green|amber|red)$")
    parts_cost: Decimal = Field(default=Decimal("0"), ge=0)
    labour_cost: Decimal = Field(default=Decimal("0"), ge=0)
    is_visible: bool = True
    is_mot_failure: bool = False
    follow_up_date: Optional[date] = None


class RepairItemUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    parts_cost: Optional[Decimal] = Field(None, ge=0)
    labour_cost: Optional[Decimal] = Field(None, ge=0)
    total_price: Optional[Decimal] = Field(None, ge=0)
    is_visible: Optional[bool] = None
    is_approved: Optional[bool] = None
    follow_up_date: Optional[date] = None


class RepairItemResponse(BaseModel):
    id: UUID
    health_check_id: UUID
    check_result_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    rag_status: Optional[str] = None
    parts_cost: Decimal
    labour_cost: Decimal
    total_price: Decimal
    is_visible: bool
    is_approved: bool
    is_mot_failure: bool
    follow_up_date: Optional[date] = None
    work_completed_at: Optional[datetime] = None
    work_completed_by: Optional[UUID] = None
    sort_order: int
    model_config = ConfigDict(from_attributes=True)


class GenerateRepairItemsResponse(BaseModel):
    created: int


class AuthorizationResponse(BaseModel):
    id: UUID
    repair_item_id: UUID
    decision: str
    has_signature: bool
    decided_at: datetime
    customer_notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class CheckResultResponse(BaseModel):
    id: UUID
    template_item_id: Optional[UUID] = None
    rag_status: Optional[str] = None
    notes: Optional[str] = None
    is_mot_failure: bool
    model_config = ConfigDict(from_attributes=True)


class AuthorizationSummaryResponse(BaseModel):
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
    model_config = ConfigDict(from_attributes=True)


class HealthCheckDetailResponse(BaseModel):
    health_check: HealthCheckResponse
    check_results: list[CheckResultResponse]
    repair_items: list[RepairItemResponse]
    authorizations: list[AuthorizationResponse]
    time_entries: list[TimeEntryResponse]
    summary: AuthorizationSummaryResponse
