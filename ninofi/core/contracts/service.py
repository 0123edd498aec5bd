"""Contract creation and two-party signing."""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.common.enums import ContractStatus, NotificationCategory, UserRole
from ninofi.common.exceptions import (
    BadRequestError,
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
)
from ninofi.common.logging import get_logger
from ninofi.config import settings
from ninofi.core.audit.service import record_audit
from ninofi.core.contracts.signatures import SignatureState, apply_signature, attach_signatures
from ninofi.core.notifications.service import create_notification
from ninofi.db.base import money, utcnow
from ninofi.db.models.contract import Contract
from ninofi.db.models.project import Project
from ninofi.db.models.user import User

logger = get_logger("contracts.service")

VALID_TRANSITIONS = {
    ContractStatus.PENDING.value: [ContractStatus.REJECTED.value],
    ContractStatus.SIGNED.value: [],
    ContractStatus.REJECTED.value: [],
}


def signer_role(project: Project, user: User) -> str:
    if user.id == project.owner_id:
        return UserRole.HOMEOWNER.value
    if user.id == project.assigned_contractor_id:
        return UserRole.CONTRACTOR.value
    raise PermissionDeniedError("Only the homeowner and the assigned contractor can sign this contract")


def signature_state(contract: Contract) -> SignatureState:
    state = SignatureState()
    for signature in contract.signatures or []:
        state = apply_signature(state, signature["role"], signature["name"])
    return state


def render_contract(contract: Contract) -> str:
    return attach_signatures(contract.terms, signature_state(contract))


async def get_contract(db: AsyncSession, contract_id: uuid.UUID) -> Contract:
    result = await db.execute(
        select(Contract).where(Contract.id == contract_id, Contract.is_deleted.is_(False))
    )
    contract = result.scalar_one_or_none()
    if not contract:
        raise NotFoundError("Contract", str(contract_id))
    return contract


async def list_contracts(db: AsyncSession, project_id: uuid.UUID) -> list[Contract]:
    result = await db.execute(
        select(Contract)
        .where(Contract.project_id == project_id, Contract.is_deleted.is_(False))
        .order_by(Contract.created_at.desc())
    )
    return list(result.scalars().all())


async def create_contract(
    db: AsyncSession,
    project: Project,
    creator: User,
    title: str,
    terms: str,
    total_budget: Decimal | None = None,
    currency: str | None = None,
) -> Contract:
    if not terms or not terms.strip():
        raise BadRequestError("Contract terms cannot be empty")

    contract = Contract(
        project_id=project.id,
        created_by_id=creator.id,
        title=title,
        terms=terms.strip(),
        total_budget=money(total_budget) if total_budget is not None else project.estimated_budget,
        currency=(currency or settings.ESCROW_CURRENCY).lower(),
        status=ContractStatus.PENDING.value,
        signatures=[],
    )
    db.add(contract)
    await db.flush()
    await db.refresh(contract)

    logger.info("Contract %s created for project %s by %s", contract.id, project.id, creator.id)
    await record_audit(db, "contract", contract.id, "create", creator.id, {"project_id": project.id})

    counterpart = project.assigned_contractor_id if creator.id == project.owner_id else project.owner_id
    if counterpart:
        await create_notification(
            db,
            user_id=counterpart,
            category=NotificationCategory.CONTRACT,
            title="Contract ready for review",
            body=f"{creator.full_name} sent you '{title}' to sign.",
            project_id=project.id,
            data={"contractId": str(contract.id), "projectId": str(project.id)},
        )
    return contract


async def sign_contract(
    db: AsyncSession,
    contract: Contract,
    project: Project,
    user: User,
    signature_data: str | None = None,
) -> Contract:
    if contract.status != ContractStatus.PENDING.value:
        raise InvalidStateTransitionError("contract", contract.status, "sign")

    role = signer_role(project, user)
    signatures = list(contract.signatures or [])
    if any(s["role"] == role for s in signatures):
        raise ConflictError("You have already signed this contract")

    signatures.append({
        "user_id": str(user.id),
        "role": role,
        "name": user.full_name,
        "signed_at": utcnow().isoformat(),
        "signature_data": signature_data,
    })
    contract.signatures = signatures

    roles = {s["role"] for s in signatures}
    if {UserRole.HOMEOWNER.value, UserRole.CONTRACTOR.value} <= roles:
        contract.status = ContractStatus.SIGNED.value
    await db.flush()

    logger.info("Contract %s signed by %s (%s), status=%s", contract.id, user.id, role, contract.status)
    await record_audit(db, "contract", contract.id, "sign", user.id, {"role": role, "status": contract.status})

    other = project.assigned_contractor_id if role == UserRole.HOMEOWNER.value else project.owner_id
    if other:
        fully_signed = contract.status == ContractStatus.SIGNED.value
        await create_notification(
            db,
            user_id=other,
            category=NotificationCategory.CONTRACT,
            title="Contract fully signed" if fully_signed else "Contract signed",
            body=(
                f"'{contract.title}' is now signed by both parties." if fully_signed
                else f"{user.full_name} signed '{contract.title}'. Your signature is needed."
            ),
            project_id=project.id,
            data={"contractId": str(contract.id), "projectId": str(project.id)},
        )
    return contract


async def update_contract_status(
    db: AsyncSession, contract: Contract, new_status: ContractStatus, actor: User
) -> Contract:
    allowed = VALID_TRANSITIONS.get(contract.status, [])
    if new_status.value not in allowed:
        raise InvalidStateTransitionError("contract", contract.status, new_status.value)

    old_status = contract.status
    contract.status = new_status.value
    await db.flush()

    logger.info("Contract %s: %s -> %s", contract.id, old_status, new_status.value)
    await record_audit(db, "contract", contract.id, "status", actor.id,
                       {"from": old_status, "to": new_status.value})
    return contract
