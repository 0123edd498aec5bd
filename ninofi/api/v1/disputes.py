import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.api.access import get_project_for_user
from ninofi.api.deps import get_current_user, get_db, require_role
from ninofi.common.enums import DisputeStatus, UserRole
from ninofi.common.pagination import PaginatedResponse, PaginationParams, paginate
from ninofi.core.disputes.service import DisputeService
from ninofi.db.base import as_utc
from ninofi.db.models.dispute import Dispute
from ninofi.db.models.user import User

router = APIRouter(prefix="/projects/{project_id}/disputes", tags=["Disputes"])
admin_router = APIRouter(prefix="/admin/disputes", tags=["Admin"])

disputes = DisputeService()


# ---------- Schemas ----------


class DisputeCreateRequest(BaseModel):
    title: str
    description: str
    milestone_id: uuid.UUID | None = None


class DisputeResolveRequest(BaseModel):
    status: DisputeStatus
    resolution_notes: str


class DisputeResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    milestone_id: uuid.UUID | None
    filed_by_id: uuid.UUID
    title: str
    description: str
    status: str
    resolution_notes: str | None
    resolved_by_id: uuid.UUID | None
    resolved_at: str | None
    history: list
    created_at: str


class DisputeListResponse(BaseModel):
    disputes: list[DisputeResponse]
    total: int


class AdminDisputeListResponse(PaginatedResponse[DisputeResponse]):
    pass


# ---------- Endpoints ----------


@router.post("", response_model=DisputeResponse, status_code=201)
async def file_dispute(
    project_id: uuid.UUID,
    body: DisputeCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_user(db, project_id, current_user)
    dispute = await disputes.file(
        db, project, current_user, body.title, body.description, body.milestone_id
    )
    return _dispute_to_response(dispute)


@router.get("", response_model=DisputeListResponse)
async def list_disputes(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_project_for_user(db, project_id, current_user)
    items = await disputes.list_for_project(db, project_id)
    return DisputeListResponse(disputes=[_dispute_to_response(d) for d in items], total=len(items))


@admin_router.get("", response_model=AdminDisputeListResponse)
async def admin_list_disputes(
    status: DisputeStatus | None = Query(None),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
):
    query = select(Dispute).where(Dispute.is_deleted.is_(False))
    if status:
        query = query.where(Dispute.status == status.value)
    query = query.order_by(Dispute.created_at.desc())

    items, total = await paginate(db, query, params, Dispute)
    return AdminDisputeListResponse(
        items=[_dispute_to_response(d) for d in items],
        total=total, page=params.page, page_size=params.page_size,
        total_pages=params.total_pages(total),
    )


@admin_router.get("/{dispute_id}", response_model=DisputeResponse)
async def admin_get_dispute(
    dispute_id: uuid.UUID,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    return _dispute_to_response(await disputes.get(db, dispute_id))


@admin_router.post("/{dispute_id}/resolve", response_model=DisputeResponse)
@admin_router.put("/{dispute_id}/resolve", response_model=DisputeResponse, include_in_schema=False)
async def admin_resolve_dispute(
    dispute_id: uuid.UUID,
    body: DisputeResolveRequest,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    dispute = await disputes.get(db, dispute_id)
    dispute = await disputes.resolve(db, dispute, body.status, body.resolution_notes, current_user)
    return _dispute_to_response(dispute)


def _dispute_to_response(dispute: Dispute) -> DisputeResponse:
    return DisputeResponse(
        id=dispute.id,
        project_id=dispute.project_id,
        milestone_id=dispute.milestone_id,
        filed_by_id=dispute.filed_by_id,
        title=dispute.title,
        description=dispute.description,
        status=dispute.status,
        resolution_notes=dispute.resolution_notes,
        resolved_by_id=dispute.resolved_by_id,
        resolved_at=as_utc(dispute.resolved_at).isoformat() if dispute.resolved_at else None,
        history=dispute.history or [],
        created_at=dispute.created_at.isoformat(),
    )
