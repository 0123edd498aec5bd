"""Initial schema - escrow, milestones, check-ins, applications, disputes, reviews

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True)


def _fk(name: str, table: str, nullable: bool = False, index: bool = True) -> sa.Column:
    return sa.Column(
        name, postgresql.UUID(as_uuid=True), sa.ForeignKey(f"{table}.id"), nullable=nullable, index=index
    )


def _bookkeeping() -> list[sa.Column]:
    return [
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="homeowner"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("preferences", postgresql.JSONB, nullable=True),
        sa.Column("stripe_account_id", sa.String(255), nullable=True),
        sa.Column("payouts_enabled", sa.Boolean, nullable=False, server_default=sa.text("false")),
        *_bookkeeping(),
    )

    # Projects
    op.create_table(
        "projects",
        _id(),
        _fk("owner_id", "users"),
        _fk("assigned_contractor_id", "users", nullable=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("project_type", sa.String(100), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("estimated_budget", sa.Numeric(14, 2), nullable=True),
        sa.Column("timeline", sa.String(255), nullable=False, server_default=""),
        sa.Column("address", sa.String(500), nullable=False, server_default=""),
        sa.Column("location_lat", sa.Float, nullable=True),
        sa.Column("location_lng", sa.Float, nullable=True),
        sa.Column("checkin_radius_m", sa.Float, nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        *_bookkeeping(),
    )

    op.create_table(
        "project_media",
        _id(),
        _fk("project_id", "projects"),
        sa.Column("url", sa.String(1000), nullable=False),
        sa.Column("label", sa.String(255), nullable=False, server_default=""),
        *_bookkeeping(),
    )

    op.create_table(
        "project_members",
        _id(),
        _fk("project_id", "projects"),
        _fk("user_id", "users"),
        sa.Column("role", sa.String(20), nullable=False),
        _fk("added_by_id", "users", nullable=True, index=False),
        *_bookkeeping(),
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )

    # Milestones
    op.create_table(
        "milestones",
        _id(),
        _fk("project_id", "projects"),
        sa.Column("position", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("submission", postgresql.JSONB, nullable=True),
        sa.Column("history", postgresql.JSONB, nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        *_bookkeeping(),
    )

    # Escrow
    op.create_table(
        "escrow_accounts",
        _id(),
        sa.Column(
            "project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"),
            nullable=False, unique=True,
        ),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("funded", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("released", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("version", sa.Integer, nullable=False),
        *_bookkeeping(),
        sa.CheckConstraint("released >= 0 AND released <= funded", name="ck_escrow_released_within_funded"),
    )

    op.create_table(
        "escrow_transactions",
        _id(),
        _fk("account_id", "escrow_accounts"),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("platform_fee", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("processing_fee", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_charged", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_method", sa.String(20), nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        _fk("milestone_id", "milestones", nullable=True, index=False),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        _fk("actor_id", "users", nullable=True, index=False),
        *_bookkeeping(),
        sa.UniqueConstraint("account_id", "idempotency_key", name="uq_escrow_idempotency"),
    )

    # Check-ins
    op.create_table(
        "check_ins",
        _id(),
        _fk("project_id", "projects"),
        _fk("user_id", "users"),
        sa.Column("user_type", sa.String(20), nullable=False),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("check_out_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("distance", sa.Float, nullable=False),
        sa.Column("duration_seconds", sa.Integer, nullable=True),
        sa.Column("auto_closed", sa.Boolean, nullable=False, server_default=sa.text("false")),
        *_bookkeeping(),
    )
    op.create_index(
        "uq_check_ins_open_session",
        "check_ins",
        ["project_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("check_out_time IS NULL"),
    )

    # Gigs and applications
    op.create_table(
        "gigs",
        _id(),
        _fk("project_id", "projects"),
        _fk("posted_by_id", "users"),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("pay_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        *_bookkeeping(),
    )

    op.create_table(
        "applications",
        _id(),
        sa.Column("target_type", sa.String(20), nullable=False),
        _fk("project_id", "projects"),
        _fk("gig_id", "gigs", nullable=True),
        _fk("applicant_id", "users"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("message", sa.Text, nullable=False, server_default=""),
        _fk("decided_by_id", "users", nullable=True, index=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        *_bookkeeping(),
    )
    op.create_index(
        "uq_applications_live_project",
        "applications",
        ["applicant_id", "project_id"],
        unique=True,
        postgresql_where=sa.text("target_type = 'project' AND status <> 'withdrawn' AND is_deleted = false"),
    )
    op.create_index(
        "uq_applications_live_gig",
        "applications",
        ["applicant_id", "gig_id"],
        unique=True,
        postgresql_where=sa.text("target_type = 'gig' AND status <> 'withdrawn' AND is_deleted = false"),
    )

    # Contracts
    op.create_table(
        "contracts",
        _id(),
        _fk("project_id", "projects"),
        _fk("created_by_id", "users", index=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("terms", sa.Text, nullable=False),
        sa.Column("total_budget", sa.Numeric(14, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("signatures", postgresql.JSONB, nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        *_bookkeeping(),
    )

    # Disputes
    op.create_table(
        "disputes",
        _id(),
        _fk("project_id", "projects"),
        _fk("milestone_id", "milestones", nullable=True, index=False),
        _fk("filed_by_id", "users", index=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("resolution_notes", sa.Text, nullable=True),
        _fk("resolved_by_id", "users", nullable=True, index=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("history", postgresql.JSONB, nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        *_bookkeeping(),
    )

    # Contractor reviews
    op.create_table(
        "reviews",
        _id(),
        _fk("project_id", "projects"),
        _fk("contractor_id", "users"),
        _fk("reviewer_id", "users", index=False),
        sa.Column("rating_overall", sa.Integer, nullable=False),
        sa.Column("rating_quality", sa.Integer, nullable=True),
        sa.Column("rating_timeliness", sa.Integer, nullable=True),
        sa.Column("rating_communication", sa.Integer, nullable=True),
        sa.Column("rating_budget", sa.Integer, nullable=True),
        sa.Column("comment", sa.Text, nullable=False, server_default=""),
        sa.Column("response_text", sa.Text, nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_flagged", sa.Boolean, nullable=False, server_default=sa.text("false")),
        _fk("flagged_by_id", "users", nullable=True, index=False),
        sa.Column("flag_reason", sa.Text, nullable=True),
        *_bookkeeping(),
        sa.UniqueConstraint("project_id", "reviewer_id", name="uq_review_per_project"),
        sa.CheckConstraint("rating_overall BETWEEN 1 AND 5", name="ck_review_rating_overall"),
    )

    # Notifications
    op.create_table(
        "notifications",
        _id(),
        _fk("user_id", "users"),
        _fk("project_id", "projects", nullable=True),
        sa.Column("channel", sa.String(20), nullable=False, server_default="in_app"),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("is_read", sa.Boolean, server_default=sa.text("false")),
        sa.Column("action_url", sa.String(1000), nullable=True),
        sa.Column("data", postgresql.JSONB, nullable=True),
        *_bookkeeping(),
    )

    # Audit log
    op.create_table(
        "audit_log",
        _id(),
        sa.Column("entity_type", sa.String(100), nullable=False, index=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column("diff", postgresql.JSONB, nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        *_bookkeeping(),
    )


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("notifications")
    op.drop_table("reviews")
    op.drop_table("disputes")
    op.drop_table("contracts")
    op.drop_index("uq_applications_live_gig", table_name="applications")
    op.drop_index("uq_applications_live_project", table_name="applications")
    op.drop_table("applications")
    op.drop_table("gigs")
    op.drop_index("uq_check_ins_open_session", table_name="check_ins")
    op.drop_table("check_ins")
    op.drop_table("escrow_transactions")
    op.drop_table("escrow_accounts")
    op.drop_table("milestones")
    op.drop_table("project_members")
    op.drop_table("project_media")
    op.drop_table("projects")
    op.drop_table("users")
