import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ninofi.db.base import BaseModel


class CheckIn(BaseModel):
    __tablename__ = "check_ins"
    __table_args__ = (
        # At most one open session per (project, user)
        Index(
            "uq_check_ins_open_session",
            "project_id",
            "user_id",
            unique=True,
            postgresql_where=text("check_out_time IS NULL"),
            sqlite_where=text("check_out_time IS NULL"),
        ),
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    user_type: Mapped[str] = mapped_column(String(20), nullable=False)
    check_in_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    check_out_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    distance: Mapped[float] = mapped_column(Float, nullable=False)  # meters from job site
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    auto_closed: Mapped[bool] = mapped_column(default=False, nullable=False)
