import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.common.enums import DisputeStatus, NotificationCategory
from ninofi.common.exceptions import BadRequestError, NotFoundError
from ninofi.common.logging import get_logger
from ninofi.core.audit.service import record_audit
from ninofi.core.disputes.workflow import check_resolution
from ninofi.core.notifications.service import create_notification
from ninofi.db.base import utcnow
from ninofi.db.models.dispute import Dispute
from ninofi.db.models.milestone import Milestone
from ninofi.db.models.project import Project
from ninofi.db.models.user import User

logger = get_logger("disputes.service")


def _parties(project: Project) -> list[uuid.UUID]:
    return [uid for uid in (project.owner_id, project.assigned_contractor_id) if uid]


class DisputeService:
    async def file(
        self,
        db: AsyncSession,
        project: Project,
        actor: User,
        title: str,
        description: str,
        milestone_id: uuid.UUID | None = None,
    ) -> Dispute:
        if not title.strip() or not description.strip():
            raise BadRequestError("A dispute needs a title and a description")
        if milestone_id is not None:
            milestone = await db.get(Milestone, milestone_id)
            if milestone is None or milestone.project_id != project.id or milestone.is_deleted:
                raise NotFoundError("Milestone", str(milestone_id))

        dispute = Dispute(
            project_id=project.id,
            milestone_id=milestone_id,
            filed_by_id=actor.id,
            title=title.strip(),
            description=description.strip(),
            status=DisputeStatus.OPEN.value,
            history=[{"action": "filed", "by": str(actor.id), "at": utcnow().isoformat()}],
        )
        db.add(dispute)
        await db.flush()
        await db.refresh(dispute)

        logger.info("Dispute %s filed on project %s by %s", dispute.id, project.id, actor.id)
        await record_audit(db, "dispute", dispute.id, "file", actor.id,
                           {"project_id": project.id, "milestone_id": milestone_id, "title": dispute.title})
        for user_id in _parties(project):
            if user_id == actor.id:
                continue
            await create_notification(
                db,
                user_id=user_id,
                category=NotificationCategory.DISPUTE,
                title="Dispute filed",
                body=f"A dispute was filed on {project.title}: {dispute.title}",
                project_id=project.id,
                data={"projectId": str(project.id), "disputeId": str(dispute.id)},
            )
        return dispute

    async def list_for_project(self, db: AsyncSession, project_id: uuid.UUID) -> list[Dispute]:
        result = await db.execute(
            select(Dispute)
            .where(Dispute.project_id == project_id, Dispute.is_deleted.is_(False))
            .order_by(Dispute.created_at.desc())
        )
        return list(result.scalars().all())

    async def get(self, db: AsyncSession, dispute_id: uuid.UUID) -> Dispute:
        result = await db.execute(
            select(Dispute).where(Dispute.id == dispute_id, Dispute.is_deleted.is_(False))
        )
        dispute = result.scalar_one_or_none()
        if not dispute:
            raise NotFoundError("Dispute", str(dispute_id))
        return dispute

    async def resolve(
        self,
        db: AsyncSession,
        dispute: Dispute,
        status: DisputeStatus | str,
        resolution_notes: str,
        actor: User,
    ) -> Dispute:
        """Close an open dispute as resolved or rejected and tell both parties."""
        old_status = DisputeStatus(dispute.status).value
        target = check_resolution(old_status, status, resolution_notes)

        dispute.status = target.value
        dispute.resolution_notes = resolution_notes.strip()
        dispute.resolved_by_id = actor.id
        dispute.resolved_at = utcnow()
        dispute.history = [
            *(dispute.history or []),
            {
                "action": target.value,
                "from": old_status,
                "to": target.value,
                "by": str(actor.id),
                "at": dispute.resolved_at.isoformat(),
                "notes": dispute.resolution_notes,
            },
        ]
        await db.flush()
        logger.info("Dispute %s: %s -> %s by %s", dispute.id, old_status, target.value, actor.id)

        await record_audit(db, "dispute", dispute.id, target.value, actor.id,
                           {"from": old_status, "to": target.value, "notes": dispute.resolution_notes})

        project = await db.get(Project, dispute.project_id)
        recipients = {dispute.filed_by_id}
        if project is not None:
            recipients.update(_parties(project))
        for user_id in recipients:
            await create_notification(
                db,
                user_id=user_id,
                category=NotificationCategory.DISPUTE,
                title=f"Dispute {target.value}",
                body=f"'{dispute.title}' was {target.value}: {dispute.resolution_notes}",
                project_id=dispute.project_id,
                data={"projectId": str(dispute.project_id), "disputeId": str(dispute.id), "status": target.value},
            )
        return dispute
