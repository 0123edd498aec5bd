from sqlalchemy import String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ninofi.common.enums import UserRole
from ninofi.db.base import BaseModel


class User(BaseModel):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    role: Mapped[UserRole] = mapped_column(String(20), nullable=False, default=UserRole.HOMEOWNER)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    preferences: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=dict)
    # Connected payout account; transfers go out only once onboarding completes
    stripe_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payouts_enabled: Mapped[bool] = mapped_column(default=False, nullable=False)
