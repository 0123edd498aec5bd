"""Application/assignment broker.

Contractors apply to open projects, workers apply to gigs posted by a
project's contractor. The project owner (or the gig poster) accepts or
denies; applicants may withdraw while their application is pending.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.common.enums import (
    ApplicationDecision,
    ApplicationStatus,
    ApplicationTarget,
    GigStatus,
    NotificationCategory,
    ProjectStatus,
    UserRole,
)
from ninofi.common.exceptions import (
    BadRequestError,
    DuplicateApplicationError,
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
)
from ninofi.common.logging import get_logger
from ninofi.config import settings
from ninofi.core.audit.service import record_audit
from ninofi.core.notifications.service import create_notification
from ninofi.db.base import utcnow
from ninofi.db.models.application import Application, Gig
from ninofi.db.models.project import Project, ProjectMember
from ninofi.db.models.user import User

logger = get_logger("applications.broker")


class ApplicationBroker:
    def __init__(self, exclusive_contractor: bool | None = None):
        if exclusive_contractor is None:
            exclusive_contractor = settings.EXCLUSIVE_CONTRACTOR_ASSIGNMENT
        self.exclusive_contractor = exclusive_contractor

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_application(self, db: AsyncSession, application_id: uuid.UUID) -> Application:
        result = await db.execute(
            select(Application).where(Application.id == application_id, Application.is_deleted.is_(False))
        )
        application = result.scalar_one_or_none()
        if not application:
            raise NotFoundError("Application", str(application_id))
        return application

    async def get_gig(self, db: AsyncSession, gig_id: uuid.UUID) -> Gig:
        result = await db.execute(select(Gig).where(Gig.id == gig_id, Gig.is_deleted.is_(False)))
        gig = result.scalar_one_or_none()
        if not gig:
            raise NotFoundError("Gig", str(gig_id))
        return gig

    async def _get_project(self, db: AsyncSession, project_id: uuid.UUID) -> Project:
        result = await db.execute(select(Project).where(Project.id == project_id))
        return result.scalar_one()

    async def list_for_project(self, db: AsyncSession, project_id: uuid.UUID) -> list[Application]:
        result = await db.execute(
            select(Application)
            .where(Application.project_id == project_id, Application.is_deleted.is_(False))
            .order_by(Application.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_for_gig(self, db: AsyncSession, gig_id: uuid.UUID) -> list[Application]:
        result = await db.execute(
            select(Application)
            .where(Application.gig_id == gig_id, Application.is_deleted.is_(False))
            .order_by(Application.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_for_applicant(self, db: AsyncSession, applicant_id: uuid.UUID) -> list[Application]:
        result = await db.execute(
            select(Application)
            .where(Application.applicant_id == applicant_id, Application.is_deleted.is_(False))
            .order_by(Application.created_at.desc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Apply / decide / withdraw
    # ------------------------------------------------------------------

    async def apply_to_project(
        self, db: AsyncSession, project: Project, applicant: User, message: str = ""
    ) -> Application:
        if applicant.role != UserRole.CONTRACTOR.value:
            raise PermissionDeniedError("Only contractors can apply to projects")
        if project.owner_id == applicant.id:
            raise BadRequestError("You cannot apply to your own project")
        if project.status != ProjectStatus.OPEN.value or project.assigned_contractor_id:
            raise BadRequestError("This project is no longer accepting applications")

        await self._ensure_no_duplicate(
            db, applicant.id, Application.project_id == project.id,
            Application.target_type == ApplicationTarget.PROJECT.value,
        )
        application = await self._create(db, ApplicationTarget.PROJECT, project, None, applicant, message)

        await create_notification(
            db,
            user_id=project.owner_id,
            category=NotificationCategory.APPLICATION,
            title="New contractor application",
            body=f"{applicant.full_name} applied to {project.title}.",
            project_id=project.id,
            data={
                "applicationId": str(application.id),
                "projectId": str(project.id),
                "contractorId": str(applicant.id),
            },
        )
        return application

    async def apply_to_gig(
        self, db: AsyncSession, gig: Gig, applicant: User, message: str = ""
    ) -> Application:
        if applicant.role != UserRole.WORKER.value:
            raise PermissionDeniedError("Only workers can apply to gigs")
        if gig.status != GigStatus.OPEN.value:
            raise BadRequestError("This gig is no longer accepting applications")

        await self._ensure_no_duplicate(db, applicant.id, Application.gig_id == gig.id)
        project = await self._get_project(db, gig.project_id)
        application = await self._create(db, ApplicationTarget.GIG, project, gig, applicant, message)

        await create_notification(
            db,
            user_id=gig.posted_by_id,
            category=NotificationCategory.APPLICATION,
            title="New gig application",
            body=f"{applicant.full_name} applied to '{gig.title}'.",
            project_id=project.id,
            data={
                "applicationId": str(application.id),
                "gigId": str(gig.id),
                "projectId": str(project.id),
                "workerId": str(applicant.id),
            },
        )
        return application

    async def _ensure_no_duplicate(self, db: AsyncSession, applicant_id: uuid.UUID, *target) -> None:
        result = await db.execute(
            select(Application).where(
                Application.applicant_id == applicant_id,
                Application.status != ApplicationStatus.WITHDRAWN.value,
                Application.is_deleted.is_(False),
                *target,
            )
        )
        existing = result.scalars().first()
        if existing:
            raise DuplicateApplicationError(str(existing.id))

    async def _create(
        self,
        db: AsyncSession,
        target: ApplicationTarget,
        project: Project,
        gig: Gig | None,
        applicant: User,
        message: str,
    ) -> Application:
        application = Application(
            target_type=target.value,
            project_id=project.id,
            gig_id=gig.id if gig else None,
            applicant_id=applicant.id,
            status=ApplicationStatus.PENDING.value,
            message=message or "",
        )
        db.add(application)
        await db.flush()
        await db.refresh(application)

        logger.info("Application %s: %s %s -> %s", application.id, applicant.id, target.value,
                    gig.id if gig else project.id)
        await record_audit(db, "application", application.id, "apply", applicant.id,
                           {"target_type": target.value, "project_id": project.id})
        return application

    async def decide(
        self,
        db: AsyncSession,
        application: Application,
        action: ApplicationDecision,
        decider: User,
    ) -> Application:
        if application.status != ApplicationStatus.PENDING.value:
            raise InvalidStateTransitionError("application", application.status, action.value)

        project = await self._get_project(db, application.project_id)
        gig = await self.get_gig(db, application.gig_id) if application.gig_id else None

        if decider.role != UserRole.ADMIN.value:
            owner_id = gig.posted_by_id if gig else project.owner_id
            if decider.id != owner_id:
                raise PermissionDeniedError("Only the listing owner can decide on this application")

        if action == ApplicationDecision.ACCEPT:
            if gig is None and project.assigned_contractor_id and project.assigned_contractor_id != application.applicant_id:
                raise BadRequestError("This project already has an assigned contractor")
            self._settle(application, ApplicationStatus.ACCEPTED, decider)
            if gig is None:
                await self._assign_contractor(db, project, application, decider)
            else:
                await self.add_member(db, project, application.applicant_id, UserRole.WORKER.value, decider)
        else:
            self._settle(application, ApplicationStatus.DENIED, decider)

        await db.flush()
        await record_audit(db, "application", application.id, action.value, decider.id,
                           {"status": application.status})
        await self._notify_decision(db, application, project, gig)
        return application

    def _settle(self, application: Application, status: ApplicationStatus, decider: User) -> None:
        application.status = status.value
        application.decided_by_id = decider.id
        application.decided_at = utcnow()
        logger.info("Application %s %s by %s", application.id, status.value, decider.id)

    async def _assign_contractor(
        self, db: AsyncSession, project: Project, application: Application, decider: User
    ) -> None:
        project.assigned_contractor_id = application.applicant_id
        if project.status == ProjectStatus.OPEN.value:
            project.status = ProjectStatus.IN_PROGRESS.value
        await record_audit(db, "project", project.id, "assign_contractor", decider.id,
                           {"contractor_id": application.applicant_id})

        if not self.exclusive_contractor:
            return

        result = await db.execute(
            select(Application).where(
                Application.project_id == project.id,
                Application.target_type == ApplicationTarget.PROJECT.value,
                Application.status == ApplicationStatus.PENDING.value,
                Application.id != application.id,
                Application.is_deleted.is_(False),
            )
        )
        for other in result.scalars().all():
            self._settle(other, ApplicationStatus.DENIED, decider)
            await self._notify_decision(db, other, project, None)

    async def _notify_decision(
        self, db: AsyncSession, application: Application, project: Project, gig: Gig | None
    ) -> None:
        accepted = application.status == ApplicationStatus.ACCEPTED.value
        listing = f"'{gig.title}'" if gig else project.title
        data = {"applicationId": str(application.id), "projectId": str(project.id)}
        if gig:
            data["gigId"] = str(gig.id)
        await create_notification(
            db,
            user_id=application.applicant_id,
            category=NotificationCategory.APPLICATION,
            title="Application accepted" if accepted else "Application not selected",
            body=(
                f"You were hired for {listing}." if accepted
                else f"Your application for {listing} was not selected."
            ),
            project_id=project.id,
            data=data,
        )

    async def withdraw(self, db: AsyncSession, application: Application, applicant: User) -> Application:
        if application.applicant_id != applicant.id:
            raise PermissionDeniedError("You can only withdraw your own applications")
        if application.status != ApplicationStatus.PENDING.value:
            raise InvalidStateTransitionError("application", application.status, "withdraw")

        application.status = ApplicationStatus.WITHDRAWN.value
        await db.flush()
        logger.info("Application %s withdrawn", application.id)
        await record_audit(db, "application", application.id, "withdraw", applicant.id)
        return application

    # ------------------------------------------------------------------
    # Gigs and personnel
    # ------------------------------------------------------------------

    async def post_gig(
        self,
        db: AsyncSession,
        project: Project,
        poster: User,
        title: str,
        description: str = "",
        pay_rate: Decimal | None = None,
    ) -> Gig:
        gig = Gig(
            project_id=project.id,
            posted_by_id=poster.id,
            title=title,
            description=description,
            pay_rate=pay_rate,
            status=GigStatus.OPEN.value,
        )
        db.add(gig)
        await db.flush()
        await db.refresh(gig)
        logger.info("Gig %s posted on project %s", gig.id, project.id)
        return gig

    async def close_gig(self, db: AsyncSession, gig: Gig) -> Gig:
        gig.status = GigStatus.CLOSED.value
        await db.flush()
        return gig

    async def list_open_gigs(self, db: AsyncSession) -> list[Gig]:
        result = await db.execute(
            select(Gig)
            .where(Gig.status == GigStatus.OPEN.value, Gig.is_deleted.is_(False))
            .order_by(Gig.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_gigs(self, db: AsyncSession, project_id: uuid.UUID) -> list[Gig]:
        result = await db.execute(
            select(Gig)
            .where(Gig.project_id == project_id, Gig.is_deleted.is_(False))
            .order_by(Gig.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_members(self, db: AsyncSession, project_id: uuid.UUID) -> list[ProjectMember]:
        result = await db.execute(
            select(ProjectMember)
            .where(ProjectMember.project_id == project_id, ProjectMember.is_deleted.is_(False))
            .order_by(ProjectMember.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_member(
        self, db: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID
    ) -> ProjectMember | None:
        result = await db.execute(
            select(ProjectMember).where(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def add_member(
        self, db: AsyncSession, project: Project, user_id: uuid.UUID, role: str, added_by: User
    ) -> ProjectMember:
        member = await self.get_member(db, project.id, user_id)
        if member:
            # Re-adding someone who left revives the row
            member.is_deleted = False
            member.deleted_at = None
            member.role = role
        else:
            member = ProjectMember(project_id=project.id, user_id=user_id, role=role, added_by_id=added_by.id)
            db.add(member)
        await db.flush()
        await db.refresh(member)

        await record_audit(db, "project", project.id, "add_member", added_by.id,
                           {"user_id": user_id, "role": role})
        await create_notification(
            db,
            user_id=user_id,
            category=NotificationCategory.PERSONNEL,
            title="Added to project",
            body=f"You were added to {project.title}.",
            project_id=project.id,
            data={"projectId": str(project.id)},
        )
        return member

    async def remove_member(
        self, db: AsyncSession, project: Project, user_id: uuid.UUID, removed_by: User
    ) -> None:
        member = await self.get_member(db, project.id, user_id)
        if not member or member.is_deleted:
            raise NotFoundError("Project member", str(user_id))
        member.soft_delete()
        await db.flush()
        await record_audit(db, "project", project.id, "remove_member", removed_by.id, {"user_id": user_id})
