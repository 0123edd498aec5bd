import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.api.access import ensure_owner, get_project_for_user, get_project_or_404, is_admin
from ninofi.api.deps import get_current_user, get_db, require_role
from ninofi.api.v1.milestones import MilestoneResponse, milestone_engine, milestone_response
from ninofi.common.enums import ProjectStatus, UserRole
from ninofi.common.exceptions import BadRequestError, ConflictError
from ninofi.common.logging import get_logger
from ninofi.common.pagination import PaginatedResponse, PaginationParams, paginate
from ninofi.core.audit.service import record_audit
from ninofi.core.escrow.ledger import EscrowLedger
from ninofi.core.milestones.workflow import check_milestone_budget
from ninofi.db.base import money
from ninofi.db.models.project import Project, ProjectMedia, ProjectMember
from ninofi.db.models.user import User
from ninofi.integrations.maps import MapsClient

router = APIRouter(prefix="/projects", tags=["Projects"])

logger = get_logger("projects")

VALID_TRANSITIONS = {
    ProjectStatus.OPEN: [ProjectStatus.IN_PROGRESS, ProjectStatus.ON_HOLD, ProjectStatus.CANCELLED],
    ProjectStatus.IN_PROGRESS: [ProjectStatus.ON_HOLD, ProjectStatus.COMPLETED, ProjectStatus.CANCELLED],
    ProjectStatus.ON_HOLD: [ProjectStatus.IN_PROGRESS, ProjectStatus.CANCELLED],
    ProjectStatus.COMPLETED: [],
    ProjectStatus.CANCELLED: [],
}

maps = MapsClient()


# ---------- Schemas ----------


class MilestoneDraft(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(gt=0)
    description: str = ""


class MediaItem(BaseModel):
    url: str = Field(min_length=1)
    label: str = ""


class ProjectCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str = ""
    project_type: str = ""
    estimated_budget: Decimal | None = Field(default=None, gt=0)
    timeline: str = ""
    address: str = ""
    location_lat: float | None = Field(default=None, ge=-90, le=90)
    location_lng: float | None = Field(default=None, ge=-180, le=180)
    checkin_radius_m: float | None = Field(default=None, gt=0)
    milestones: list[MilestoneDraft] = []
    media: list[MediaItem] = []


class ProjectUpdateRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    project_type: str | None = None
    status: ProjectStatus | None = None
    estimated_budget: Decimal | None = Field(default=None, gt=0)
    timeline: str | None = None
    address: str | None = None
    location_lat: float | None = Field(default=None, ge=-90, le=90)
    location_lng: float | None = Field(default=None, ge=-180, le=180)
    checkin_radius_m: float | None = Field(default=None, gt=0)


class MediaResponse(BaseModel):
    id: uuid.UUID
    url: str
    label: str


class ProjectResponse(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    assigned_contractor_id: uuid.UUID | None
    title: str
    description: str
    project_type: str
    status: str
    estimated_budget: Decimal | None
    timeline: str
    address: str
    location_lat: float | None
    location_lng: float | None
    checkin_radius_m: float | None
    media: list[MediaResponse]
    created_at: str

    @classmethod
    def from_orm_instance(cls, project: Project) -> "ProjectResponse":
        return cls(
            id=project.id,
            owner_id=project.owner_id,
            assigned_contractor_id=project.assigned_contractor_id,
            title=project.title,
            description=project.description,
            project_type=project.project_type,
            status=project.status,
            estimated_budget=project.estimated_budget,
            timeline=project.timeline,
            address=project.address,
            location_lat=project.location_lat,
            location_lng=project.location_lng,
            checkin_radius_m=project.checkin_radius_m,
            media=[MediaResponse(id=m.id, url=m.url, label=m.label) for m in project.media if not m.is_deleted],
            created_at=project.created_at.isoformat(),
        )


class ProjectDetailResponse(ProjectResponse):
    milestones: list[MilestoneResponse] = []


class ProjectListResponse(PaginatedResponse[ProjectResponse]):
    pass


async def _geocode_site(project: Project) -> None:
    """Fill job-site coordinates from the address when the client sent none."""
    if not project.address or (project.location_lat is not None and project.location_lng is not None):
        return
    result = await maps.geocode_address(project.address)
    if result:
        project.location_lat = result["lat"]
        project.location_lng = result["lng"]
    else:
        logger.warning("Could not geocode address for project %s", project.id)


async def _detail(db: AsyncSession, project: Project) -> ProjectDetailResponse:
    milestones = await milestone_engine.list_milestones(db, project.id)
    base = ProjectResponse.from_orm_instance(project)
    return ProjectDetailResponse(
        **base.model_dump(),
        milestones=[milestone_response(m) for m in milestones],
    )


# ---------- Endpoints ----------


@router.post("", response_model=ProjectDetailResponse, status_code=201)
async def create_project(
    body: ProjectCreateRequest,
    current_user: User = Depends(require_role(UserRole.HOMEOWNER, UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    check_milestone_budget(
        money(body.estimated_budget) if body.estimated_budget is not None else None,
        [money(m.amount) for m in body.milestones],
    )

    project = Project(
        owner_id=current_user.id,
        title=body.title.strip(),
        description=body.description,
        project_type=body.project_type,
        estimated_budget=money(body.estimated_budget) if body.estimated_budget is not None else None,
        timeline=body.timeline,
        address=body.address,
        location_lat=body.location_lat,
        location_lng=body.location_lng,
        checkin_radius_m=body.checkin_radius_m,
        status=ProjectStatus.OPEN.value,
    )
    await _geocode_site(project)
    db.add(project)
    await db.flush()

    for item in body.media:
        db.add(ProjectMedia(project_id=project.id, url=item.url, label=item.label))
    for draft in body.milestones:
        await milestone_engine.add_milestone(
            db, project, draft.name, draft.amount, draft.description, actor=current_user
        )

    await db.flush()
    await db.refresh(project)
    logger.info("Project %s created by %s with %d milestones", project.id, current_user.id, len(body.milestones))
    await record_audit(db, "project", project.id, "create", current_user.id, {"title": project.title})
    return await _detail(db, project)


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
):
    query = select(Project).where(Project.is_deleted.is_(False))

    if current_user.role == UserRole.HOMEOWNER.value:
        query = query.where(Project.owner_id == current_user.id)
    elif not is_admin(current_user):
        member_of = select(ProjectMember.project_id).where(
            ProjectMember.user_id == current_user.id, ProjectMember.is_deleted.is_(False)
        )
        query = query.where(
            or_(
                Project.owner_id == current_user.id,
                Project.assigned_contractor_id == current_user.id,
                Project.id.in_(member_of),
            )
        )

    query = query.order_by(Project.created_at.desc())
    items, total = await paginate(db, query, params, Project)
    return ProjectListResponse(
        items=[ProjectResponse.from_orm_instance(p) for p in items],
        total=total, page=params.page, page_size=params.page_size,
        total_pages=params.total_pages(total),
    )


@router.get("/open", response_model=ProjectListResponse)
async def list_open_projects(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
):
    """Projects still looking for a contractor."""
    query = (
        select(Project)
        .where(
            Project.is_deleted.is_(False),
            Project.status == ProjectStatus.OPEN.value,
            Project.assigned_contractor_id.is_(None),
        )
        .order_by(Project.created_at.desc())
    )
    items, total = await paginate(db, query, params, Project)
    return ProjectListResponse(
        items=[ProjectResponse.from_orm_instance(p) for p in items],
        total=total, page=params.page, page_size=params.page_size,
        total_pages=params.total_pages(total),
    )


@router.get("/{project_id}", response_model=ProjectDetailResponse)
async def get_project(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_or_404(db, project_id)
    # Open listings are visible to prospective contractors
    if not (project.status == ProjectStatus.OPEN.value and current_user.role == UserRole.CONTRACTOR.value):
        project = await get_project_for_user(db, project_id, current_user)
    return await _detail(db, project)


@router.patch("/{project_id}", response_model=ProjectDetailResponse)
async def update_project(
    project_id: uuid.UUID,
    body: ProjectUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_user(db, project_id, current_user)
    ensure_owner(project, current_user)

    for field in ("title", "description", "project_type", "timeline", "checkin_radius_m",
                  "location_lat", "location_lng"):
        value = getattr(body, field)
        if value is not None:
            setattr(project, field, value)

    if body.estimated_budget is not None:
        budget = money(body.estimated_budget)
        milestones = await milestone_engine.list_milestones(db, project.id)
        check_milestone_budget(budget, [m.amount for m in milestones])
        project.estimated_budget = budget

    if body.address is not None and body.address != project.address:
        project.address = body.address
        if body.location_lat is None or body.location_lng is None:
            project.location_lat = None
            project.location_lng = None
            await _geocode_site(project)

    if body.status is not None:
        current_status = ProjectStatus(project.status)
        allowed = VALID_TRANSITIONS.get(current_status, [])
        if body.status not in allowed:
            raise BadRequestError(
                f"Cannot transition from '{current_status.value}' to '{body.status.value}'"
            )
        project.status = body.status.value

    await db.flush()
    await db.refresh(project)
    await record_audit(db, "project", project.id, "update", current_user.id,
                       body.model_dump(exclude_none=True))
    return await _detail(db, project)


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_user(db, project_id, current_user)
    ensure_owner(project, current_user)

    summary = await EscrowLedger().summary(db, project.id)
    if summary.pending > 0:
        raise ConflictError(
            "A project with funds held in escrow cannot be deleted",
            extra={"pending": str(summary.pending)},
        )

    project.soft_delete()
    await db.flush()
    logger.info("Project %s deleted by %s", project.id, current_user.id)
    await record_audit(db, "project", project.id, "delete", current_user.id)
