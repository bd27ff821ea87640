"""SQLAlchemy models for the health check workflow.

Column types are kept portable (Uuid/JSON instead of postgres-only types) so the
same metadata backs PostgreSQL in production and SQLite in tests.
"""
from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Index,
    Integer, Numeric, String, Text, UniqueConstraint, Uuid
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from .database import Base
from .services.status_rules import (
    CHANGE_SOURCES,
    DELETION_REASONS,
    HEALTH_CHECK_STATUSES,
    RAG_STATUSES,
    USER_ROLES,
)

MONEY = Numeric(10, 2)


class Organization(Base):
    """Organization model (tenant)."""
    __tablename__ = "organizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    # Free-form org settings; `reminder_schedule` overrides the default reminder cadence.
    settings = Column(JSON, nullable=False, default=dict)
    reminders_enabled = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    users = relationship("User", back_populates="organization")


class User(Base):
    """Staff user model."""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id = Column(Uuid, ForeignKey("organizations.id"), index=True, nullable=False)
    site_id = Column(Uuid, nullable=True, index=True)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(String(50), nullable=False, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(role.in_(USER_ROLES), name="chk_user_role"),
    )

    organization = relationship("Organization", back_populates="users")

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class HealthCheck(Base):
    """One vehicle inspection job tracked end-to-end."""
    __tablename__ = "health_checks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id = Column(Uuid, ForeignKey("organizations.id"), index=True, nullable=False)
    site_id = Column(Uuid, nullable=True, index=True)
    vehicle_id = Column(Uuid, nullable=False, index=True)
    customer_id = Column(Uuid, nullable=True, index=True)
    template_id = Column(Uuid, nullable=False)
    technician_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    advisor_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    status = Column(String(30), nullable=False, default="created", index=True)

    green_count = Column(Integer, nullable=False, default=0)
    amber_count = Column(Integer, nullable=False, default=0)
    red_count = Column(Integer, nullable=False, default=0)
    total_parts = Column(MONEY, nullable=False, default=0)
    total_labour = Column(MONEY, nullable=False, default=0)
    total_amount = Column(MONEY, nullable=False, default=0)

    mileage_in = Column(Integer, nullable=True)
    mileage_out = Column(Integer, nullable=True)

    public_token = Column(String(64), nullable=True, unique=True, index=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    sent_at = Column(DateTime(timezone=True), nullable=True)
    first_opened_at = Column(DateTime(timezone=True), nullable=True)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    tech_started_at = Column(DateTime(timezone=True), nullable=True)
    tech_completed_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    closed_by = Column(Uuid, ForeignKey("users.id"), nullable=True)

    # Soft delete; rows are never physically removed.
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    deleted_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    deletion_reason = Column(String(30), nullable=True)
    deletion_notes = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(status.in_(HEALTH_CHECK_STATUSES), name="chk_health_check_status"),
        CheckConstraint(
            (deletion_reason == None) | deletion_reason.in_(DELETION_REASONS),  # noqa: E711
            name="chk_health_check_deletion_reason",
        ),
        Index("idx_health_checks_org_status", "org_id", "status"),
    )

    check_results = relationship("CheckResult", back_populates="health_check")
    repair_items = relationship("RepairItem", back_populates="health_check")
    time_entries = relationship("TimeEntry", back_populates="health_check")


class TemplateItem(Base):
    """Inspection template line the technician checks."""
    __tablename__ = "template_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    template_id = Column(Uuid, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)


class CheckResult(Base):
    """One inspection finding against a template item."""
    __tablename__ = "check_results"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    health_check_id = Column(Uuid, ForeignKey("health_checks.id"), nullable=False, index=True)
    template_item_id = Column(Uuid, ForeignKey("template_items.id"), nullable=True, index=True)
    rag_status = Column(String(10), nullable=True)
    value = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    is_mot_failure = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            (rag_status == None) | rag_status.in_(RAG_STATUSES),  # noqa: E711
            name="chk_check_result_rag_status",
        ),
    )

    health_check = relationship("HealthCheck", back_populates="check_results")
    template_item = relationship("TemplateItem")


class RepairItem(Base):
    """Billable line derived from a finding or created manually."""
    __tablename__ = "repair_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    health_check_id = Column(Uuid, ForeignKey("health_checks.id"), nullable=False, index=True)
    check_result_id = Column(Uuid, ForeignKey("check_results.id"), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    rag_status = Column(String(10), nullable=True)
    parts_cost = Column(MONEY, nullable=False, default=0)
    labour_cost = Column(MONEY, nullable=False, default=0)
    total_price = Column(MONEY, nullable=False, default=0)
    is_visible = Column(Boolean, nullable=False, default=True)
    is_approved = Column(Boolean, nullable=False, default=False)
    is_mot_failure = Column(Boolean, nullable=False, default=False)
    follow_up_date = Column(Date, nullable=True)
    work_completed_at = Column(DateTime(timezone=True), nullable=True)
    work_completed_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        # At most one generated item per finding; manual items carry NULL.
        UniqueConstraint("check_result_id", name="uq_repair_item_check_result"),
        CheckConstraint(parts_cost >= 0, name="chk_repair_item_parts_non_negative"),
        CheckConstraint(labour_cost >= 0, name="chk_repair_item_labour_non_negative"),
        Index("idx_repair_items_health_check_sort", "health_check_id", "sort_order"),
    )

    health_check = relationship("HealthCheck", back_populates="repair_items")
    authorizations = relationship("Authorization", back_populates="repair_item")


class Authorization(Base):
    """Customer decision against a repair item (written by the customer portal)."""
    __tablename__ = "authorizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    repair_item_id = Column(Uuid, ForeignKey("repair_items.id"), nullable=False, index=True)
    decision = Column(String(20), nullable=False)
    has_signature = Column(Boolean, nullable=False, default=False)
    decided_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    customer_notes = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(decision.in_(["approved", "declined"]), name="chk_authorization_decision"),
    )

    repair_item = relationship("RepairItem", back_populates="authorizations")


class TimeEntry(Base):
    """Technician work session against a health check."""
    __tablename__ = "time_entries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    health_check_id = Column(Uuid, ForeignKey("health_checks.id"), nullable=False, index=True)
    technician_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    clock_in_at = Column(DateTime(timezone=True), nullable=False)
    clock_out_at = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        # At most one open session per technician per job.
        Index(
            "uq_time_entries_open_session",
            "health_check_id",
            "technician_id",
            unique=True,
            postgresql_where=(clock_out_at == None),  # noqa: E711
            sqlite_where=(clock_out_at == None),  # noqa: E711
        ),
    )

    health_check = relationship("HealthCheck", back_populates="time_entries")
    technician = relationship("User")


class StatusHistory(Base):
    """Append-only audit trail of status changes."""
    __tablename__ = "health_check_status_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    health_check_id = Column(Uuid, ForeignKey("health_checks.id"), nullable=False, index=True)
    from_status = Column(String(30), nullable=True)
    to_status = Column(String(30), nullable=False)
    changed_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    change_source = Column(String(20), nullable=False, default="user")
    notes = Column(Text, nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    __table_args__ = (
        CheckConstraint(change_source.in_(CHANGE_SOURCES), name="chk_status_history_source"),
    )


class NotificationOutbox(Base):
    """
    Customer notification outbox - ONE ROW PER MESSAGE (channel or reminder).
    Supports concurrent processing with SELECT FOR UPDATE SKIP LOCKED.
    """
    __tablename__ = "notification_outbox"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id = Column(Uuid, ForeignKey("organizations.id"), index=True, nullable=False)
    health_check_id = Column(Uuid, ForeignKey("health_checks.id"), index=True, nullable=False)
    type = Column(String(50), nullable=False)
    channel = Column(String(10), nullable=True)
    public_url = Column(Text, nullable=True)
    message = Column(Text, nullable=True)
    meta_data = Column(JSON, default=dict)  # Renamed from 'metadata' (SQLAlchemy reserved)

    status = Column(String(20), default="pending", index=True)  # pending/sent/failed/cancelled
    attempts = Column(Integer, default=0)
    scheduled_for = Column(DateTime(timezone=True), nullable=True, index=True)
    next_retry_at = Column(DateTime(timezone=True), nullable=True, index=True)
    last_error = Column(Text, nullable=True)

    # Format: type:health_check_id:token_prefix:channel[:reminder_number]
    idempotency_key = Column(String(255), unique=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            type.in_(["customer_health_check_ready", "customer_reminder"]),
            name="chk_outbox_type",
        ),
        CheckConstraint(
            status.in_(["pending", "sent", "failed", "cancelled"]),
            name="chk_outbox_status",
        ),
    )
