"""Contractor applications to projects, worker gigs and project personnel."""

from __future__ import annotations

import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.api.access import (
    ensure_assigned_contractor,
    ensure_owner,
    get_project_for_user,
    get_project_or_404,
    is_admin,
)
from ninofi.api.deps import get_current_user, get_db, require_role
from ninofi.common.enums import ApplicationDecision, UserRole
from ninofi.common.exceptions import BadRequestError, NotFoundError, PermissionDeniedError
from ninofi.core.applications.broker import ApplicationBroker
from ninofi.db.models.application import Application, Gig
from ninofi.db.models.project import Project, ProjectMember
from ninofi.db.models.user import User

router = APIRouter(tags=["Applications"])

broker = ApplicationBroker()


# ---------- Schemas ----------


class ApplyRequest(BaseModel):
    message: str = ""


class DecisionRequest(BaseModel):
    action: ApplicationDecision


class ApplicationResponse(BaseModel):
    id: uuid.UUID
    target_type: str
    project_id: uuid.UUID
    gig_id: uuid.UUID | None
    applicant_id: uuid.UUID
    status: str
    message: str
    decided_by_id: uuid.UUID | None
    created_at: str


class GigCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str = ""
    pay_rate: Decimal | None = Field(default=None, gt=0)


class GigResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    posted_by_id: uuid.UUID
    title: str
    description: str
    pay_rate: Decimal | None
    status: str
    created_at: str


class PersonnelAdd(BaseModel):
    user_id: uuid.UUID
    role: UserRole = UserRole.WORKER


class PersonnelResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    user_id: uuid.UUID
    role: str
    added_by_id: uuid.UUID | None
    created_at: str


def _app_response(a: Application) -> ApplicationResponse:
    return ApplicationResponse(
        id=a.id, target_type=a.target_type, project_id=a.project_id, gig_id=a.gig_id,
        applicant_id=a.applicant_id, status=a.status, message=a.message,
        decided_by_id=a.decided_by_id, created_at=a.created_at.isoformat(),
    )


def _gig_response(g: Gig) -> GigResponse:
    return GigResponse(
        id=g.id, project_id=g.project_id, posted_by_id=g.posted_by_id, title=g.title,
        description=g.description, pay_rate=g.pay_rate, status=g.status,
        created_at=g.created_at.isoformat(),
    )


def _member_response(m: ProjectMember) -> PersonnelResponse:
    return PersonnelResponse(
        id=m.id, project_id=m.project_id, user_id=m.user_id, role=m.role,
        added_by_id=m.added_by_id, created_at=m.created_at.isoformat(),
    )


def _ensure_manager(project: Project, user: User) -> None:
    """Owner or assigned contractor (or admin) manage personnel."""
    if is_admin(user) or user.id in (project.owner_id, project.assigned_contractor_id):
        return
    raise PermissionDeniedError("Only the homeowner or the assigned contractor can manage personnel")


# ---------- Project applications ----------


@router.post("/projects/{project_id}/applications", response_model=ApplicationResponse, status_code=201)
async def apply_to_project(
    project_id: uuid.UUID,
    body: ApplyRequest,
    current_user: User = Depends(require_role(UserRole.CONTRACTOR)),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_or_404(db, project_id)
    application = await broker.apply_to_project(db, project, current_user, body.message)
    return _app_response(application)


@router.get("/projects/{project_id}/applications", response_model=list[ApplicationResponse])
async def list_project_applications(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_or_404(db, project_id)
    ensure_owner(project, current_user)
    return [_app_response(a) for a in await broker.list_for_project(db, project_id)]


@router.get("/applications/mine", response_model=list[ApplicationResponse])
async def list_my_applications(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [_app_response(a) for a in await broker.list_for_applicant(db, current_user.id)]


@router.post("/applications/{application_id}/decision", response_model=ApplicationResponse)
async def decide_application(
    application_id: uuid.UUID,
    body: DecisionRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    application = await broker.get_application(db, application_id)
    application = await broker.decide(db, application, body.action, current_user)
    return _app_response(application)


@router.post("/applications/{application_id}/withdraw", response_model=ApplicationResponse)
async def withdraw_application(
    application_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    application = await broker.get_application(db, application_id)
    application = await broker.withdraw(db, application, current_user)
    return _app_response(application)


# ---------- Gigs ----------


@router.post("/projects/{project_id}/gigs", response_model=GigResponse, status_code=201)
async def post_gig(
    project_id: uuid.UUID,
    body: GigCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_or_404(db, project_id)
    ensure_assigned_contractor(project, current_user)
    gig = await broker.post_gig(db, project, current_user, body.title, body.description, body.pay_rate)
    return _gig_response(gig)


@router.get("/projects/{project_id}/gigs", response_model=list[GigResponse])
async def list_project_gigs(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_project_for_user(db, project_id, current_user)
    return [_gig_response(g) for g in await broker.list_gigs(db, project_id)]


@router.get("/gigs/open", response_model=list[GigResponse])
async def list_open_gigs(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [_gig_response(g) for g in await broker.list_open_gigs(db)]


@router.post("/gigs/{gig_id}/applications", response_model=ApplicationResponse, status_code=201)
async def apply_to_gig(
    gig_id: uuid.UUID,
    body: ApplyRequest,
    current_user: User = Depends(require_role(UserRole.WORKER)),
    db: AsyncSession = Depends(get_db),
):
    gig = await broker.get_gig(db, gig_id)
    application = await broker.apply_to_gig(db, gig, current_user, body.message)
    return _app_response(application)


@router.get("/gigs/{gig_id}/applications", response_model=list[ApplicationResponse])
async def list_gig_applications(
    gig_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    gig = await broker.get_gig(db, gig_id)
    if gig.posted_by_id != current_user.id and not is_admin(current_user):
        raise PermissionDeniedError("Only the gig poster can view its applications")
    return [_app_response(a) for a in await broker.list_for_gig(db, gig_id)]


@router.post("/gigs/{gig_id}/close", response_model=GigResponse)
async def close_gig(
    gig_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    gig = await broker.get_gig(db, gig_id)
    if gig.posted_by_id != current_user.id and not is_admin(current_user):
        raise PermissionDeniedError("Only the gig poster can close it")
    return _gig_response(await broker.close_gig(db, gig))


# ---------- Personnel ----------


@router.get("/projects/{project_id}/personnel", response_model=list[PersonnelResponse])
async def list_personnel(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_project_for_user(db, project_id, current_user)
    return [_member_response(m) for m in await broker.list_members(db, project_id)]


@router.post("/projects/{project_id}/personnel", response_model=PersonnelResponse, status_code=201)
async def add_personnel(
    project_id: uuid.UUID,
    body: PersonnelAdd,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_or_404(db, project_id)
    _ensure_manager(project, current_user)
    if body.role == UserRole.ADMIN:
        raise BadRequestError("Admins cannot be added as project personnel")

    result = await db.execute(
        select(User).where(User.id == body.user_id, User.is_deleted.is_(False))
    )
    if not result.scalar_one_or_none():
        raise NotFoundError("User", str(body.user_id))

    member = await broker.add_member(db, project, body.user_id, body.role.value, current_user)
    return _member_response(member)


@router.delete("/projects/{project_id}/personnel/{user_id}", status_code=204)
async def remove_personnel(
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_or_404(db, project_id)
    _ensure_manager(project, current_user)
    await broker.remove_member(db, project, user_id, current_user)
