"""Project-level access checks shared by the v1 routers."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.common.enums import UserRole
from ninofi.common.exceptions import NotFoundError, PermissionDeniedError
from ninofi.db.models.project import Project, ProjectMember
from ninofi.db.models.user import User


def is_admin(user: User) -> bool:
    return user.role == UserRole.ADMIN.value


async def get_project_or_404(db: AsyncSession, project_id: uuid.UUID) -> Project:
    result = await db.execute(
        select(Project).where(Project.id == project_id, Project.is_deleted.is_(False))
    )
    project = result.scalar_one_or_none()
    if not project:
        raise NotFoundError("Project", str(project_id))
    return project


async def is_member(db: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(ProjectMember.id).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
            ProjectMember.is_deleted.is_(False),
        )
    )
    return result.first() is not None


def ensure_owner(project: Project, user: User) -> None:
    if project.owner_id != user.id and not is_admin(user):
        raise PermissionDeniedError("Only the project owner can perform this action")


def ensure_assigned_contractor(project: Project, user: User) -> None:
    if project.assigned_contractor_id != user.id and not is_admin(user):
        raise PermissionDeniedError("Only the assigned contractor can perform this action")


async def ensure_on_site_crew(db: AsyncSession, project: Project, user: User) -> None:
    """Assigned contractor, project personnel or an admin."""
    if is_admin(user) or project.assigned_contractor_id == user.id:
        return
    if not await is_member(db, project.id, user.id):
        raise PermissionDeniedError("You are not assigned to this project")


async def ensure_participant(db: AsyncSession, project: Project, user: User) -> None:
    """Owner, assigned contractor, personnel or an admin."""
    if project.owner_id == user.id:
        return
    await ensure_on_site_crew(db, project, user)


async def get_project_for_user(db: AsyncSession, project_id: uuid.UUID, user: User) -> Project:
    project = await get_project_or_404(db, project_id)
    await ensure_participant(db, project, user)
    return project
