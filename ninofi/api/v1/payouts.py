"""Contractor payout onboarding through Stripe Connect."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.api.deps import get_db, require_role
from ninofi.common.enums import UserRole
from ninofi.common.logging import get_logger
from ninofi.common.schemas import CamelModel
from ninofi.config import settings
from ninofi.core.audit.service import record_audit
from ninofi.db.models.user import User
from ninofi.integrations.stripe_client import StripeClient

logger = get_logger("payouts")

router = APIRouter(prefix="/payouts/connect", tags=["Payouts"])

payments = StripeClient()


class AccountLinkResponse(CamelModel):
    account_id: str
    url: str
    expires_at: int | None = None


class PayoutStatusResponse(CamelModel):
    connected: bool
    account_id: str | None = None
    payouts_enabled: bool = False
    details_submitted: bool = False


@router.post("/account-link", response_model=AccountLinkResponse)
async def create_account_link(
    current_user: User = Depends(require_role(UserRole.CONTRACTOR)),
    db: AsyncSession = Depends(get_db),
):
    if not current_user.stripe_account_id:
        account = await payments.create_connect_account(
            current_user.email, metadata={"user_id": str(current_user.id)}
        )
        current_user.stripe_account_id = account["id"]
        current_user.payouts_enabled = bool(account.get("payouts_enabled"))
        await db.flush()
        await record_audit(db, "user", current_user.id, "connect_account", current_user.id,
                           {"stripe_account_id": account["id"]})
        logger.info("Opened payout account %s for contractor %s", account["id"], current_user.id)

    link = await payments.create_account_link(
        current_user.stripe_account_id,
        return_url=settings.STRIPE_CONNECT_RETURN_URL,
        refresh_url=settings.STRIPE_CONNECT_REFRESH_URL,
    )
    return AccountLinkResponse(
        account_id=current_user.stripe_account_id, url=link["url"], expires_at=link.get("expires_at")
    )


@router.get("/status", response_model=PayoutStatusResponse)
async def payout_status(
    current_user: User = Depends(require_role(UserRole.CONTRACTOR)),
    db: AsyncSession = Depends(get_db),
):
    if not current_user.stripe_account_id:
        return PayoutStatusResponse(connected=False)

    account = await payments.retrieve_account(current_user.stripe_account_id)
    enabled = bool(account.get("payouts_enabled"))
    if enabled != current_user.payouts_enabled:
        current_user.payouts_enabled = enabled
        await db.flush()
        logger.info("Contractor %s payouts_enabled=%s", current_user.id, enabled)

    return PayoutStatusResponse(
        connected=True,
        account_id=current_user.stripe_account_id,
        payouts_enabled=enabled,
        details_submitted=bool(account.get("details_submitted")),
    )
