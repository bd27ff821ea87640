"""health check workflow schema

Revision ID: 001_health_check_workflow
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001_health_check_workflow"
down_revision = None
branch_labels = None
depends_on = None

HEALTH_CHECK_STATUSES = (
    "awaiting_arrival", "no_show", "created", "assigned", "in_progress", "paused",
    "tech_completed", "awaiting_review", "awaiting_pricing", "awaiting_parts",
    "ready_to_send", "sent", "delivered", "opened", "partial_response",
    "authorized", "declined", "expired", "completed", "cancelled",
)
DELETION_REASONS = (
    "no_show", "no_time", "not_required", "customer_declined", "vehicle_issue", "duplicate", "other",
)
USER_ROLES = ("super_admin", "org_admin", "site_admin", "service_advisor", "technician")


def _in(column: str, values) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("reminders_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("org_id", sa.Uuid(), sa.ForeignKey("organizations.id"), nullable=False, index=True),
        sa.Column("site_id", sa.Uuid(), nullable=True, index=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("role", sa.String(50), nullable=False, index=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint(_in("role", USER_ROLES), name="chk_user_role"),
    )

    op.create_table(
        "health_checks",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("org_id", sa.Uuid(), sa.ForeignKey("organizations.id"), nullable=False, index=True),
        sa.Column("site_id", sa.Uuid(), nullable=True, index=True),
        sa.Column("vehicle_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("customer_id", sa.Uuid(), nullable=True, index=True),
        sa.Column("template_id", sa.Uuid(), nullable=False),
        sa.Column("technician_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True, index=True),
        sa.Column("advisor_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True, index=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="created", index=True),
        sa.Column("green_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("amber_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("red_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_parts", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_labour", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("mileage_in", sa.Integer(), nullable=True),
        sa.Column("mileage_out", sa.Integer(), nullable=True),
        sa.Column("public_token", sa.String(64), nullable=True, unique=True, index=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("first_opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("arrived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tech_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tech_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column("deleted_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("deletion_reason", sa.String(30), nullable=True),
        sa.Column("deletion_notes", sa.Text(), nullable=True),
        sa.CheckConstraint(_in("status", HEALTH_CHECK_STATUSES), name="chk_health_check_status"),
        sa.CheckConstraint(
            "deletion_reason IS NULL OR " + _in("deletion_reason", DELETION_REASONS),
            name="chk_health_check_deletion_reason",
        ),
    )
    op.create_index("idx_health_checks_org_status", "health_checks", ["org_id", "status"])

    op.create_table(
        "template_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("template_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "check_results",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("health_check_id", sa.Uuid(), sa.ForeignKey("health_checks.id"), nullable=False, index=True),
        sa.Column("template_item_id", sa.Uuid(), sa.ForeignKey("template_items.id"), nullable=True, index=True),
        sa.Column("rag_status", sa.String(10), nullable=True),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_mot_failure", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "rag_status IS NULL OR rag_status IN ('green', 'amber', 'red')",
            name="chk_check_result_rag_status",
        ),
    )

    op.create_table(
        "repair_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("health_check_id", sa.Uuid(), sa.ForeignKey("health_checks.id"), nullable=False, index=True),
        sa.Column("check_result_id", sa.Uuid(), sa.ForeignKey("check_results.id"), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("rag_status", sa.String(10), nullable=True),
        sa.Column("parts_cost", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("labour_cost", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("is_visible", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_mot_failure", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("follow_up_date", sa.Date(), nullable=True),
        sa.Column("work_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("work_completed_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("check_result_id", name="uq_repair_item_check_result"),
        sa.CheckConstraint("parts_cost >= 0", name="chk_repair_item_parts_non_negative"),
        sa.CheckConstraint("labour_cost >= 0", name="chk_repair_item_labour_non_negative"),
    )
    op.create_index("idx_repair_items_health_check_sort", "repair_items", ["health_check_id", "sort_order"])

    op.create_table(
        "authorizations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("repair_item_id", sa.Uuid(), sa.ForeignKey("repair_items.id"), nullable=False, index=True),
        sa.Column("decision", sa.String(20), nullable=False),
        sa.Column("has_signature", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("customer_notes", sa.Text(), nullable=True),
        sa.CheckConstraint("decision IN ('approved', 'declined')", name="chk_authorization_decision"),
    )

    op.create_table(
        "time_entries",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("health_check_id", sa.Uuid(), sa.ForeignKey("health_checks.id"), nullable=False, index=True),
        sa.Column("technician_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("clock_in_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("clock_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    # At most one open session per technician per job.
    op.create_index(
        "uq_time_entries_open_session",
        "time_entries",
        ["health_check_id", "technician_id"],
        unique=True,
        postgresql_where=sa.text("clock_out_at IS NULL"),
        sqlite_where=sa.text("clock_out_at IS NULL"),
    )

    op.create_table(
        "health_check_status_history",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("health_check_id", sa.Uuid(), sa.ForeignKey("health_checks.id"), nullable=False, index=True),
        sa.Column("from_status", sa.String(30), nullable=True),
        sa.Column("to_status", sa.String(30), nullable=False),
        sa.Column("changed_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("change_source", sa.String(20), nullable=False, server_default="user"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True),
        sa.CheckConstraint("change_source IN ('user', 'system')", name="chk_status_history_source"),
    )

    op.create_table(
        "notification_outbox",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("org_id", sa.Uuid(), sa.ForeignKey("organizations.id"), nullable=False, index=True),
        sa.Column("health_check_id", sa.Uuid(), sa.ForeignKey("health_checks.id"), nullable=False, index=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("channel", sa.String(10), nullable=True),
        sa.Column("public_url", sa.Text(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("meta_data", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), server_default="pending", index=True),
        sa.Column("attempts", sa.Integer(), server_default="0"),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "type IN ('customer_health_check_ready', 'customer_reminder')",
            name="chk_outbox_type",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'sent', 'failed', 'cancelled')",
            name="chk_outbox_status",
        ),
    )


def downgrade() -> None:
    op.drop_table("notification_outbox")
    op.drop_table("health_check_status_history")
    op.drop_index("uq_time_entries_open_session", table_name="time_entries")
    op.drop_table("time_entries")
    op.drop_table("authorizations")
    op.drop_index("idx_repair_items_health_check_sort", table_name="repair_items")
    op.drop_table("repair_items")
    op.drop_table("check_results")
    op.drop_table("template_items")
    op.drop_index("idx_health_checks_org_status", table_name="health_checks")
    op.drop_table("health_checks")
    op.drop_table("users")
    op.drop_table("organizations")
