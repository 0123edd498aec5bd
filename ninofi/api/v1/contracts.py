import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.api.access import ensure_participant, get_project_for_user, get_project_or_404, is_admin
from ninofi.api.deps import get_current_user, get_db
from ninofi.common.enums import ContractStatus
from ninofi.common.exceptions import PermissionDeniedError
from ninofi.core.contracts import service as contracts
from ninofi.db.models.contract import Contract
from ninofi.db.models.user import User

router = APIRouter(tags=["Contracts"])


# ---------- Schemas ----------


class ContractCreate(BaseModel):
    project_id: uuid.UUID
    title: str = Field(min_length=1, max_length=500)
    terms: str
    total_budget: Decimal | None = Field(default=None, gt=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)


class SignRequest(BaseModel):
    signature_data: str | None = None


class StatusUpdate(BaseModel):
    status: ContractStatus


class ContractResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    created_by_id: uuid.UUID
    title: str
    terms: str
    total_budget: Decimal | None
    currency: str
    status: str
    signatures: list
    document: str
    created_at: str


def _contract_response(c: Contract) -> ContractResponse:
    return ContractResponse(
        id=c.id, project_id=c.project_id, created_by_id=c.created_by_id, title=c.title,
        terms=c.terms, total_budget=c.total_budget, currency=c.currency, status=c.status,
        signatures=c.signatures or [], document=contracts.render_contract(c),
        created_at=c.created_at.isoformat(),
    )


def _ensure_party(project, user: User) -> None:
    if is_admin(user) or user.id in (project.owner_id, project.assigned_contractor_id):
        return
    raise PermissionDeniedError("Only the homeowner and the assigned contractor can manage contracts")


# ---------- Endpoints ----------


@router.post("/contracts", response_model=ContractResponse, status_code=201)
async def create_contract(
    body: ContractCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_or_404(db, body.project_id)
    _ensure_party(project, current_user)
    contract = await contracts.create_contract(
        db, project, current_user, body.title, body.terms, body.total_budget, body.currency
    )
    return _contract_response(contract)


@router.get("/contracts/{contract_id}", response_model=ContractResponse)
async def get_contract(
    contract_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    contract = await contracts.get_contract(db, contract_id)
    project = await get_project_or_404(db, contract.project_id)
    await ensure_participant(db, project, current_user)
    return _contract_response(contract)


@router.get("/projects/{project_id}/contracts", response_model=list[ContractResponse])
async def list_project_contracts(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_project_for_user(db, project_id, current_user)
    return [_contract_response(c) for c in await contracts.list_contracts(db, project_id)]


@router.post("/contracts/{contract_id}/sign", response_model=ContractResponse)
async def sign_contract(
    contract_id: uuid.UUID,
    body: SignRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    contract = await contracts.get_contract(db, contract_id)
    project = await get_project_or_404(db, contract.project_id)
    contract = await contracts.sign_contract(db, contract, project, current_user, body.signature_data)
    return _contract_response(contract)


@router.put("/contracts/{contract_id}/status", response_model=ContractResponse)
async def update_contract_status(
    contract_id: uuid.UUID,
    body: StatusUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    contract = await contracts.get_contract(db, contract_id)
    project = await get_project_or_404(db, contract.project_id)
    _ensure_party(project, current_user)
    contract = await contracts.update_contract_status(db, contract, body.status, current_user)
    return _contract_response(contract)
