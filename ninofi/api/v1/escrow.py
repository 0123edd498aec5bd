import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends, Header, Query, Response
from pydantic import BaseModel as PydanticModel
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.api.access import ensure_owner, get_project_for_user
from ninofi.api.deps import get_current_user, get_db
from ninofi.common.enums import PaymentMethod
from ninofi.common.exceptions import BadRequestError
from ninofi.core.escrow.fees import FeeBreakdown, quote
from ninofi.core.escrow.ledger import EscrowLedger, EscrowSummary
from ninofi.db.models.escrow import EscrowTransaction
from ninofi.db.models.user import User

router = APIRouter(prefix="/projects/{project_id}/escrow", tags=["Escrow"])

ledger = EscrowLedger()


# ---------- Schemas ----------


class FundRequest(PydanticModel):
    amount: Decimal = Field(gt=0)
    payment_method: PaymentMethod = PaymentMethod.CARD
    accepted_terms: bool = False
    idempotency_key: str | None = None


class TransactionResponse(PydanticModel):
    id: uuid.UUID
    kind: str
    amount: Decimal
    platform_fee: Decimal
    processing_fee: Decimal
    total_charged: Decimal
    payment_method: str | None
    milestone_id: uuid.UUID | None
    payment_reference: str | None
    created_at: str


class FundResponse(PydanticModel):
    transaction: TransactionResponse
    escrow: EscrowSummary
    replayed: bool


def _txn_response(txn: EscrowTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=txn.id,
        kind=txn.kind,
        amount=txn.amount,
        platform_fee=txn.platform_fee,
        processing_fee=txn.processing_fee,
        total_charged=txn.total_charged,
        payment_method=txn.payment_method,
        milestone_id=txn.milestone_id,
        payment_reference=txn.payment_reference,
        created_at=txn.created_at.isoformat(),
    )


# ---------- Endpoints ----------


@router.get("", response_model=EscrowSummary)
async def get_escrow(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_project_for_user(db, project_id, current_user)
    return await ledger.summary(db, project_id)


@router.get("/quote", response_model=FeeBreakdown)
async def get_quote(
    project_id: uuid.UUID,
    amount: Decimal = Query(..., gt=0),
    payment_method: PaymentMethod = Query(PaymentMethod.CARD),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_project_for_user(db, project_id, current_user)
    return quote(amount, payment_method)


@router.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_project_for_user(db, project_id, current_user)
    return [_txn_response(t) for t in await ledger.transactions(db, project_id)]


@router.post("/fund", response_model=FundResponse, status_code=201)
async def fund_escrow(
    project_id: uuid.UUID,
    body: FundRequest,
    response: Response,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_user(db, project_id, current_user)
    ensure_owner(project, current_user)

    key = body.idempotency_key or idempotency_key
    if not key:
        raise BadRequestError("An idempotency key is required to fund escrow")

    txn, replayed = await ledger.fund(
        db, project, body.amount, body.payment_method, body.accepted_terms, key, current_user
    )
    if replayed:
        response.status_code = 200
    return FundResponse(
        transaction=_txn_response(txn),
        escrow=await ledger.summary(db, project_id),
        replayed=replayed,
    )
