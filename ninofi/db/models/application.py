import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ninofi.common.enums import ApplicationStatus, GigStatus
from ninofi.db.base import BaseModel

LIVE_PROJECT_APPLICATION = "target_type = 'project' AND status <> 'withdrawn' AND is_deleted = false"
LIVE_GIG_APPLICATION = "target_type = 'gig' AND status <> 'withdrawn' AND is_deleted = false"


class Gig(BaseModel):
    __tablename__ = "gigs"

    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    posted_by_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    pay_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    status: Mapped[GigStatus] = mapped_column(String(20), nullable=False, default=GigStatus.OPEN)


class Application(BaseModel):
    __tablename__ = "applications"
    __table_args__ = (
        # One live (non-withdrawn) application per applicant and listing
        Index(
            "uq_applications_live_project",
            "applicant_id",
            "project_id",
            unique=True,
            postgresql_where=text(LIVE_PROJECT_APPLICATION),
            sqlite_where=text(LIVE_PROJECT_APPLICATION),
        ),
        Index(
            "uq_applications_live_gig",
            "applicant_id",
            "gig_id",
            unique=True,
            postgresql_where=text(LIVE_GIG_APPLICATION),
            sqlite_where=text(LIVE_GIG_APPLICATION),
        ),
    )

    target_type: Mapped[str] = mapped_column(String(20), nullable=False)  # project, gig
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    gig_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("gigs.id"), nullable=True, index=True
    )
    applicant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    status: Mapped[ApplicationStatus] = mapped_column(
        String(20), nullable=False, default=ApplicationStatus.PENDING
    )
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    decided_by_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}
