import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ninofi.db.base import BaseModel


class Review(BaseModel):
    """A homeowner's rating of the contractor who worked their project."""

    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("project_id", "reviewer_id", name="uq_review_per_project"),
        CheckConstraint("rating_overall BETWEEN 1 AND 5", name="ck_review_rating_overall"),
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    reviewer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    rating_overall: Mapped[int] = mapped_column(Integer, nullable=False)
    rating_quality: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rating_timeliness: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rating_communication: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rating_budget: Mapped[int | None] = mapped_column(Integer, nullable=True)
    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    response_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_flagged: Mapped[bool] = mapped_column(default=False, nullable=False)
    flagged_by_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    flag_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
