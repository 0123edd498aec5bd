"""Escrow ledger: per-project funded/released totals and their transaction lines."""

from __future__ import annotations

import uuid
from decimal import Decimal

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.common.enums import EscrowTransactionKind, NotificationCategory, PaymentMethod
from ninofi.common.exceptions import BadRequestError, ConflictError, InsufficientFundsError
from ninofi.common.logging import get_logger
from ninofi.config import settings
from ninofi.core.audit.service import record_audit
from ninofi.core.escrow.fees import quote
from ninofi.core.notifications.service import create_notification
from ninofi.db.base import money
from ninofi.db.models.escrow import EscrowAccount, EscrowTransaction
from ninofi.db.models.milestone import Milestone
from ninofi.db.models.project import Project
from ninofi.db.models.user import User
from ninofi.integrations.stripe_client import StripeClient

logger = get_logger("escrow.ledger")


class EscrowSummary(BaseModel):
    project_id: uuid.UUID
    currency: str
    funded: Decimal
    released: Decimal
    pending: Decimal


class EscrowLedger:
    def __init__(self, payments: StripeClient | None = None):
        self.payments = payments or StripeClient()

    async def find_account(self, db: AsyncSession, project_id: uuid.UUID) -> EscrowAccount | None:
        result = await db.execute(
            select(EscrowAccount).where(EscrowAccount.project_id == project_id)
        )
        return result.scalar_one_or_none()

    async def get_account(self, db: AsyncSession, project_id: uuid.UUID) -> EscrowAccount:
        """Return the project's escrow account, opening an empty one on first use."""
        account = await self.find_account(db, project_id)
        if account:
            return account

        account = EscrowAccount(
            project_id=project_id,
            currency=settings.ESCROW_CURRENCY,
            funded=Decimal("0.00"),
            released=Decimal("0.00"),
        )
        db.add(account)
        await db.flush()
        await db.refresh(account)
        logger.info("Opened escrow account %s for project %s", account.id, project_id)
        return account

    async def summary(self, db: AsyncSession, project_id: uuid.UUID) -> EscrowSummary:
        account = await self.find_account(db, project_id)
        if account is None:
            zero = Decimal("0.00")
            return EscrowSummary(
                project_id=project_id, currency=settings.ESCROW_CURRENCY,
                funded=zero, released=zero, pending=zero,
            )
        return EscrowSummary(
            project_id=project_id,
            currency=account.currency,
            funded=money(account.funded),
            released=money(account.released),
            pending=money(account.pending),
        )

    async def transactions(self, db: AsyncSession, project_id: uuid.UUID) -> list[EscrowTransaction]:
        account = await self.find_account(db, project_id)
        if account is None:
            return []
        result = await db.execute(
            select(EscrowTransaction)
            .where(EscrowTransaction.account_id == account.id, EscrowTransaction.is_deleted.is_(False))
            .order_by(EscrowTransaction.created_at.asc())
        )
        return list(result.scalars().all())

    async def fund(
        self,
        db: AsyncSession,
        project: Project,
        amount: Decimal,
        payment_method: PaymentMethod,
        accepted_terms: bool,
        idempotency_key: str,
        actor: User,
    ) -> tuple[EscrowTransaction, bool]:
        """Place ``amount`` in escrow. Returns (transaction, replayed).

        A repeated call with the same idempotency key and amount returns the
        original transaction and leaves the balance untouched.
        """
        if not accepted_terms:
            raise BadRequestError("Please accept the Terms of Service and Escrow Agreement")
        if not idempotency_key or not idempotency_key.strip():
            raise BadRequestError("An idempotency key is required to fund escrow")

        fees = quote(amount, payment_method)
        account = await self.get_account(db, project.id)

        result = await db.execute(
            select(EscrowTransaction).where(
                EscrowTransaction.account_id == account.id,
                EscrowTransaction.idempotency_key == idempotency_key,
            )
        )
        existing = result.scalar_one_or_none()
        if existing:
            if money(existing.amount) != fees.amount or existing.kind != EscrowTransactionKind.FUND.value:
                raise ConflictError(
                    "Idempotency key was already used for a different request",
                    extra={"transaction_id": str(existing.id)},
                )
            logger.info("Replayed fund request %s for project %s", idempotency_key, project.id)
            return existing, True

        intent = await self.payments.create_payment_intent(
            amount_cents=int(fees.total * 100),
            currency=account.currency,
            payment_method_type="card" if payment_method != PaymentMethod.BANK else "us_bank_account",
            description=f"Escrow funding for project {project.title}",
            metadata={"project_id": str(project.id), "user_id": str(actor.id)},
            idempotency_key=f"fund-{account.id}-{idempotency_key}",
        )

        account.funded = money(account.funded) + fees.amount
        txn = EscrowTransaction(
            account_id=account.id,
            kind=EscrowTransactionKind.FUND.value,
            amount=fees.amount,
            platform_fee=fees.platform_fee,
            processing_fee=fees.processing_fee,
            total_charged=fees.total,
            payment_method=fees.payment_method.value,
            idempotency_key=idempotency_key,
            payment_reference=intent.get("id"),
            actor_id=actor.id,
        )
        db.add(txn)
        await db.flush()
        await db.refresh(txn)

        logger.info(
            "Funded project %s: +%s (fees %s + %s) funded=%s",
            project.id, fees.amount, fees.platform_fee, fees.processing_fee, account.funded,
        )
        await record_audit(
            db, "escrow_account", account.id, "fund", actor.id,
            {"amount": fees.amount, "funded": account.funded, "transaction_id": txn.id},
        )
        if project.assigned_contractor_id:
            await create_notification(
                db,
                user_id=project.assigned_contractor_id,
                category=NotificationCategory.ESCROW,
                title="Project funded",
                body=f"{project.title} now has ${fees.amount:,.2f} more in escrow.",
                project_id=project.id,
                data={"projectId": str(project.id), "transactionId": str(txn.id)},
            )
        return txn, False

    async def release(
        self,
        db: AsyncSession,
        project: Project,
        milestone: Milestone,
        amount: Decimal,
        actor: User | None = None,
    ) -> EscrowTransaction:
        """Move ``amount`` from pending to released. Only the milestone engine calls this."""
        amount = money(amount)
        if amount <= 0:
            raise BadRequestError("Release amount must be greater than zero")

        account = await self.find_account(db, project.id)
        available = money(account.pending) if account else Decimal("0.00")
        if amount > available:
            raise InsufficientFundsError(amount, available)

        account.released = money(account.released) + amount
        txn = EscrowTransaction(
            account_id=account.id,
            kind=EscrowTransactionKind.RELEASE.value,
            amount=amount,
            total_charged=Decimal("0.00"),
            milestone_id=milestone.id,
            actor_id=actor.id if actor else None,
        )
        db.add(txn)
        await db.flush()
        await db.refresh(txn)
        txn.payment_reference = await self._pay_out(db, project, account, txn)
        await db.flush()

        logger.info(
            "Released %s for milestone %s on project %s (released=%s pending=%s)",
            amount, milestone.id, project.id, account.released, account.pending,
        )
        await record_audit(
            db, "escrow_account", account.id, "release", actor.id if actor else None,
            {"amount": amount, "milestone_id": milestone.id, "released": account.released},
        )
        return txn

    async def _pay_out(
        self, db: AsyncSession, project: Project, account: EscrowAccount, txn: EscrowTransaction
    ) -> str | None:
        """Transfer a release to the contractor's connected account, if onboarding is done.

        Without a payouts-enabled account the funds stay on the platform balance
        and the release is settled manually.
        """
        if not project.assigned_contractor_id:
            return None
        contractor = await db.get(User, project.assigned_contractor_id)
        if contractor is None or not contractor.stripe_account_id or not contractor.payouts_enabled:
            logger.info("No payout account for contractor on project %s; release %s held", project.id, txn.id)
            return None

        transfer = await self.payments.create_transfer(
            amount_cents=int(money(txn.amount) * 100),
            destination=contractor.stripe_account_id,
            currency=account.currency,
            description=f"Milestone payout for project {project.title}",
            metadata={"project_id": str(project.id), "transaction_id": str(txn.id)},
            idempotency_key=f"release-{txn.id}",
        )
        return transfer.get("id")

    async def find_violations(self, db: AsyncSession) -> list[EscrowAccount]:
        """Accounts breaking 0 <= released <= funded."""
        result = await db.execute(
            select(EscrowAccount).where(
                (EscrowAccount.released > EscrowAccount.funded) | (EscrowAccount.released < 0)
            )
        )
        return list(result.scalars().all())
