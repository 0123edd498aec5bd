"""Milestone listing and the submit / approve / request-changes / reject workflow."""

from __future__ import annotations

import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.api.access import ensure_assigned_contractor, ensure_owner, get_project_for_user
from ninofi.api.deps import get_current_user, get_db
from ninofi.core.milestones.schemas import MilestoneEvidence
from ninofi.core.milestones.service import MilestoneEngine
from ninofi.core.milestones.workflow import allowed_actions
from ninofi.db.models.milestone import Milestone
from ninofi.db.models.user import User

router = APIRouter(prefix="/projects/{project_id}/milestones", tags=["Milestones"])

milestone_engine = MilestoneEngine()


# ---------- Schemas ----------


class MilestoneCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(gt=0)
    description: str = ""


class ChangeRequest(BaseModel):
    note: str


class RejectRequest(BaseModel):
    reason: str = ""


class MilestoneResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    position: int
    name: str
    amount: Decimal
    description: str
    status: str
    submission: dict | None
    history: list
    allowed_actions: list[str]
    created_at: str


def milestone_response(m: Milestone) -> MilestoneResponse:
    return MilestoneResponse(
        id=m.id,
        project_id=m.project_id,
        position=m.position,
        name=m.name,
        amount=m.amount,
        description=m.description,
        status=m.status,
        submission=m.submission,
        history=m.history or [],
        allowed_actions=[a.value for a in allowed_actions(m.status)],
        created_at=m.created_at.isoformat(),
    )


# ---------- Endpoints ----------


@router.get("", response_model=list[MilestoneResponse])
async def list_milestones(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_project_for_user(db, project_id, current_user)
    milestones = await milestone_engine.list_milestones(db, project_id)
    return [milestone_response(m) for m in milestones]


@router.post("", response_model=MilestoneResponse, status_code=201)
async def create_milestone(
    project_id: uuid.UUID,
    body: MilestoneCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_user(db, project_id, current_user)
    ensure_owner(project, current_user)
    milestone = await milestone_engine.add_milestone(
        db, project, body.name, body.amount, body.description, actor=current_user
    )
    return milestone_response(milestone)


@router.get("/{milestone_id}", response_model=MilestoneResponse)
async def get_milestone(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_project_for_user(db, project_id, current_user)
    return milestone_response(await milestone_engine.get_milestone(db, project_id, milestone_id))


@router.post("/{milestone_id}/submit", response_model=MilestoneResponse)
async def submit_milestone(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    body: MilestoneEvidence,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_user(db, project_id, current_user)
    ensure_assigned_contractor(project, current_user)
    milestone = await milestone_engine.get_milestone(db, project_id, milestone_id)
    milestone = await milestone_engine.submit(db, project, milestone, body, actor=current_user)
    return milestone_response(milestone)


@router.post("/{milestone_id}/approve", response_model=MilestoneResponse)
async def approve_milestone(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_user(db, project_id, current_user)
    ensure_owner(project, current_user)
    milestone = await milestone_engine.get_milestone(db, project_id, milestone_id)
    milestone = await milestone_engine.approve(db, project, milestone, actor=current_user)
    return milestone_response(milestone)


@router.post("/{milestone_id}/request-changes", response_model=MilestoneResponse)
async def request_changes(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    body: ChangeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_user(db, project_id, current_user)
    ensure_owner(project, current_user)
    milestone = await milestone_engine.get_milestone(db, project_id, milestone_id)
    milestone = await milestone_engine.request_changes(db, project, milestone, body.note, actor=current_user)
    return milestone_response(milestone)


@router.post("/{milestone_id}/reject", response_model=MilestoneResponse)
async def reject_milestone(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    body: RejectRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_user(db, project_id, current_user)
    ensure_owner(project, current_user)
    milestone = await milestone_engine.get_milestone(db, project_id, milestone_id)
    milestone = await milestone_engine.reject(db, project, milestone, body.reason, actor=current_user)
    return milestone_response(milestone)
