import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel as PydanticModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.api.access import get_project_or_404
from ninofi.api.deps import get_db, require_role
from ninofi.api.v1.milestones import MilestoneResponse, milestone_engine, milestone_response
from ninofi.common.enums import ApplicationStatus, MilestoneStatus, TaskDecision, UserRole
from ninofi.common.exceptions import NotFoundError
from ninofi.common.pagination import PaginatedResponse, PaginationParams, paginate
from ninofi.core.audit.service import record_audit
from ninofi.core.escrow.ledger import EscrowLedger
from ninofi.db.base import money
from ninofi.db.models.application import Application
from ninofi.db.models.audit import AuditLog
from ninofi.db.models.checkin import CheckIn
from ninofi.db.models.escrow import EscrowAccount
from ninofi.db.models.milestone import Milestone
from ninofi.db.models.project import Project
from ninofi.db.models.user import User

router = APIRouter(prefix="/admin", tags=["Admin"])


# ---------- Schemas ----------


class PlatformStatsResponse(PydanticModel):
    total_users: int
    total_projects: int
    users_by_role: dict[str, int]
    projects_by_status: dict[str, int]
    escrow_funded: Decimal
    escrow_released: Decimal
    escrow_pending: Decimal
    milestones_awaiting_review: int
    pending_applications: int
    open_check_ins: int


class AuditLogResponse(PydanticModel):
    id: uuid.UUID
    entity_type: str
    entity_id: uuid.UUID
    action: str
    actor_id: uuid.UUID | None
    diff: dict | None
    ip_address: str | None
    created_at: str


class AuditLogListResponse(PaginatedResponse[AuditLogResponse]):
    pass


class UserAdminResponse(PydanticModel):
    id: uuid.UUID
    email: str
    full_name: str
    role: str
    is_active: bool
    created_at: str


async def _count(db: AsyncSession, model, *where) -> int:
    result = await db.execute(select(func.count(model.id)).where(model.is_deleted.is_(False), *where))
    return result.scalar() or 0


async def _group_count(db: AsyncSession, column, model) -> dict[str, int]:
    result = await db.execute(
        select(column, func.count(model.id)).where(model.is_deleted.is_(False)).group_by(column)
    )
    return {key: count for key, count in result.all()}


# ---------- Endpoints ----------


@router.get("/stats", response_model=PlatformStatsResponse)
async def platform_stats(
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    users_by_role = await _group_count(db, User.role, User)
    projects_by_status = await _group_count(db, Project.status, Project)

    totals = (await db.execute(
        select(
            func.coalesce(func.sum(EscrowAccount.funded), 0),
            func.coalesce(func.sum(EscrowAccount.released), 0),
        ).where(EscrowAccount.is_deleted.is_(False))
    )).one()
    funded, released = money(totals[0]), money(totals[1])

    return PlatformStatsResponse(
        total_users=sum(users_by_role.values()),
        total_projects=sum(projects_by_status.values()),
        users_by_role=users_by_role,
        projects_by_status=projects_by_status,
        escrow_funded=funded,
        escrow_released=released,
        escrow_pending=funded - released,
        milestones_awaiting_review=await _count(
            db, Milestone, Milestone.status == MilestoneStatus.SUBMITTED.value
        ),
        pending_applications=await _count(
            db, Application, Application.status == ApplicationStatus.PENDING.value
        ),
        open_check_ins=await _count(db, CheckIn, CheckIn.check_out_time.is_(None)),
    )


@router.get("/audit-log", response_model=AuditLogListResponse)
async def list_audit_log(
    entity_type: str | None = Query(None),
    entity_id: uuid.UUID | None = Query(None),
    actor_id: uuid.UUID | None = Query(None),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
):
    query = select(AuditLog).where(AuditLog.is_deleted.is_(False))
    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)
    if actor_id:
        query = query.where(AuditLog.actor_id == actor_id)
    query = query.order_by(AuditLog.created_at.desc())

    items, total = await paginate(db, query, params, AuditLog)
    return AuditLogListResponse(
        items=[
            AuditLogResponse(
                id=a.id, entity_type=a.entity_type, entity_id=a.entity_id, action=a.action,
                actor_id=a.actor_id, diff=a.diff, ip_address=a.ip_address,
                created_at=a.created_at.isoformat(),
            )
            for a in items
        ],
        total=total, page=params.page, page_size=params.page_size,
        total_pages=params.total_pages(total),
    )


@router.get("/users", response_model=list[UserAdminResponse])
async def list_all_users(
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(User).where(User.is_deleted.is_(False)).order_by(User.created_at.desc())
    )
    return [
        UserAdminResponse(
            id=u.id, email=u.email, full_name=u.full_name, role=u.role,
            is_active=u.is_active, created_at=u.created_at.isoformat(),
        )
        for u in result.scalars().all()
    ]


async def _set_active(db: AsyncSession, user_id: uuid.UUID, active: bool, actor: User) -> None:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User", str(user_id))
    previous = user.is_active
    user.is_active = active
    await db.flush()
    await record_audit(
        db, "user", user.id, "activate" if active else "deactivate", actor.id,
        {"is_active": {"from": previous, "to": active}},
    )


@router.patch("/users/{user_id}/deactivate", status_code=204)
async def deactivate_user(
    user_id: uuid.UUID,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    await _set_active(db, user_id, False, current_user)


@router.patch("/users/{user_id}/activate", status_code=204)
async def activate_user(
    user_id: uuid.UUID,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    await _set_active(db, user_id, True, current_user)


# ---------- Task review ----------


class TaskParty(PydanticModel):
    id: uuid.UUID
    full_name: str


class AdminTaskResponse(PydanticModel):
    id: uuid.UUID
    project_id: uuid.UUID
    project_title: str
    name: str
    amount: Decimal
    status: str
    description: str | None
    proof_photos: list[str]
    submitted_at: str | None
    escrow_pending: Decimal
    creator: TaskParty | None
    worker: TaskParty | None


class TaskDecisionRequest(PydanticModel):
    decision: TaskDecision
    note: str | None = None


async def _party(db: AsyncSession, user_id: uuid.UUID | None) -> TaskParty | None:
    if user_id is None:
        return None
    user = await db.get(User, user_id)
    return TaskParty(id=user.id, full_name=user.full_name) if user else None


@router.get("/tasks", response_model=list[AdminTaskResponse])
async def list_tasks_for_review(
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    """Submitted milestones awaiting a decision, oldest first."""
    result = await db.execute(
        select(Milestone, Project)
        .join(Project, Milestone.project_id == Project.id)
        .where(
            Milestone.status == MilestoneStatus.SUBMITTED.value,
            Milestone.is_deleted.is_(False),
            Project.is_deleted.is_(False),
        )
        .order_by(Milestone.updated_at.asc())
    )
    ledger = EscrowLedger()
    tasks = []
    for milestone, project in result.all():
        submission = milestone.submission or {}
        escrow = await ledger.summary(db, project.id)
        tasks.append(AdminTaskResponse(
            id=milestone.id,
            project_id=project.id,
            project_title=project.title,
            name=milestone.name,
            amount=milestone.amount,
            status=milestone.status,
            description=submission.get("description"),
            proof_photos=submission.get("photos") or [],
            submitted_at=submission.get("submitted_at"),
            escrow_pending=escrow.pending,
            creator=await _party(db, project.owner_id),
            worker=await _party(db, project.assigned_contractor_id),
        ))
    return tasks


@router.post("/tasks/{milestone_id}/decision", response_model=MilestoneResponse)
async def decide_task(
    milestone_id: uuid.UUID,
    body: TaskDecisionRequest,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    """Approve (releasing escrow) or deny a submitted milestone on the owner's behalf."""
    milestone = await db.get(Milestone, milestone_id)
    if milestone is None or milestone.is_deleted:
        raise NotFoundError("Milestone", str(milestone_id))
    project = await get_project_or_404(db, milestone.project_id)

    if body.decision == TaskDecision.APPROVE:
        milestone = await milestone_engine.approve(db, project, milestone, current_user)
    else:
        milestone = await milestone_engine.reject(db, project, milestone, (body.note or "").strip(), current_user)
    await db.refresh(milestone)
    return milestone_response(milestone)
