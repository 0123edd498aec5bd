import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from ninofi.common.enums import ContractStatus
from ninofi.db.base import BaseModel


class Contract(BaseModel):
    __tablename__ = "contracts"

    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    created_by_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    terms: Mapped[str] = mapped_column(Text, nullable=False)
    total_budget: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="usd", nullable=False)
    status: Mapped[ContractStatus] = mapped_column(
        String(20), nullable=False, default=ContractStatus.PENDING
    )
    signatures: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Both parties sign concurrently; a stale writer must not drop the other signature
    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}
