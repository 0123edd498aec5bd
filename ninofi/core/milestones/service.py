import uuid
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.common.enums import MilestoneAction, MilestoneStatus, NotificationCategory
from ninofi.common.exceptions import BadRequestError, NotFoundError
from ninofi.common.logging import get_logger
from ninofi.core.audit.service import record_audit
from ninofi.core.escrow.ledger import EscrowLedger
from ninofi.core.milestones.schemas import MilestoneEvidence
from ninofi.core.milestones.workflow import check_milestone_budget, next_status, validate_evidence
from ninofi.core.notifications.service import create_notification
from ninofi.db.base import money, utcnow
from ninofi.db.models.milestone import Milestone
from ninofi.db.models.project import Project
from ninofi.db.models.user import User

logger = get_logger("milestones.service")


class MilestoneEngine:
    def __init__(self, ledger: EscrowLedger | None = None):
        self.ledger = ledger or EscrowLedger()

    async def list_milestones(self, db: AsyncSession, project_id: uuid.UUID) -> list[Milestone]:
        result = await db.execute(
            select(Milestone)
            .where(Milestone.project_id == project_id, Milestone.is_deleted.is_(False))
            .order_by(Milestone.position.asc(), Milestone.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_milestone(
        self, db: AsyncSession, project_id: uuid.UUID, milestone_id: uuid.UUID
    ) -> Milestone:
        result = await db.execute(
            select(Milestone).where(
                Milestone.id == milestone_id,
                Milestone.project_id == project_id,
                Milestone.is_deleted.is_(False),
            )
        )
        milestone = result.scalar_one_or_none()
        if not milestone:
            raise NotFoundError("Milestone", str(milestone_id))
        return milestone

    async def add_milestone(
        self,
        db: AsyncSession,
        project: Project,
        name: str,
        amount: Decimal,
        description: str = "",
        actor: User | None = None,
    ) -> Milestone:
        amount = money(amount)
        if amount <= 0:
            raise BadRequestError("Milestone amount must be greater than zero")

        existing = await self.list_milestones(db, project.id)
        check_milestone_budget(project.estimated_budget, [m.amount for m in existing] + [amount])

        max_pos = await db.execute(
            select(func.max(Milestone.position)).where(Milestone.project_id == project.id)
        )
        position = (max_pos.scalar() or 0) + 1 if existing else 0

        milestone = Milestone(
            project_id=project.id,
            position=position,
            name=name,
            amount=amount,
            description=description,
            status=MilestoneStatus.PENDING.value,
            history=[{
                "action": "created",
                "by": str(actor.id) if actor else None,
                "at": utcnow().isoformat(),
            }],
        )
        db.add(milestone)
        await db.flush()
        await db.refresh(milestone)
        logger.info("Added milestone '%s' (%s) to project %s", name, amount, project.id)
        return milestone

    def _transition(
        self, milestone: Milestone, action: MilestoneAction, actor: User | None, **details
    ) -> tuple[str, str]:
        old_status = MilestoneStatus(milestone.status).value
        new_status = next_status(old_status, action).value
        milestone.status = new_status
        milestone.history = [
            *(milestone.history or []),
            {
                "action": action.value,
                "from": old_status,
                "to": new_status,
                "by": str(actor.id) if actor else None,
                "at": utcnow().isoformat(),
                **details,
            },
        ]
        logger.info("Milestone %s: %s -> %s (%s)", milestone.id, old_status, new_status, action.value)
        return old_status, new_status

    async def submit(
        self,
        db: AsyncSession,
        project: Project,
        milestone: Milestone,
        evidence: MilestoneEvidence,
        actor: User | None = None,
    ) -> Milestone:
        next_status(milestone.status, MilestoneAction.SUBMIT)
        validate_evidence(evidence.description, evidence.photos)

        photos = [p.strip() for p in evidence.photos if p and p.strip()]
        milestone.submission = {
            "description": evidence.description.strip(),
            "photos": photos,
            "location": evidence.location.model_dump() if evidence.location else None,
            "submitted_by": str(actor.id) if actor else None,
            "submitted_at": utcnow().isoformat(),
        }
        old, new = self._transition(milestone, MilestoneAction.SUBMIT, actor, photo_count=len(photos))
        await db.flush()

        await record_audit(db, "milestone", milestone.id, "submit", actor.id if actor else None,
                           {"from": old, "to": new, "photos": photos})
        await create_notification(
            db,
            user_id=project.owner_id,
            category=NotificationCategory.MILESTONE,
            title="Milestone submitted for review",
            body=f"'{milestone.name}' on {project.title} is ready for your approval.",
            project_id=project.id,
            data={"projectId": str(project.id), "milestoneId": str(milestone.id)},
        )
        return milestone

    async def approve(
        self, db: AsyncSession, project: Project, milestone: Milestone, actor: User | None = None
    ) -> Milestone:
        next_status(milestone.status, MilestoneAction.APPROVE)

        # Release first: insufficient funds leaves the milestone submitted
        txn = await self.ledger.release(db, project, milestone, milestone.amount, actor)
        old, new = self._transition(milestone, MilestoneAction.APPROVE, actor, transaction_id=str(txn.id))
        await db.flush()

        await record_audit(db, "milestone", milestone.id, "approve", actor.id if actor else None,
                           {"from": old, "to": new, "released": milestone.amount})
        if project.assigned_contractor_id:
            await create_notification(
                db,
                user_id=project.assigned_contractor_id,
                category=NotificationCategory.MILESTONE,
                title="Payment released",
                body=f"'{milestone.name}' was approved and ${money(milestone.amount):,.2f} was released.",
                project_id=project.id,
                data={
                    "projectId": str(project.id),
                    "milestoneId": str(milestone.id),
                    "transactionId": str(txn.id),
                },
            )
        return milestone

    async def request_changes(
        self,
        db: AsyncSession,
        project: Project,
        milestone: Milestone,
        note: str,
        actor: User | None = None,
    ) -> Milestone:
        next_status(milestone.status, MilestoneAction.REQUEST_CHANGES)
        if not note or not note.strip():
            raise BadRequestError("Please describe the changes you need")

        old, new = self._transition(milestone, MilestoneAction.REQUEST_CHANGES, actor, note=note.strip())
        await db.flush()

        await record_audit(db, "milestone", milestone.id, "request_changes", actor.id if actor else None,
                           {"from": old, "to": new, "note": note.strip()})
        if project.assigned_contractor_id:
            await create_notification(
                db,
                user_id=project.assigned_contractor_id,
                category=NotificationCategory.MILESTONE,
                title="Changes requested",
                body=f"The homeowner requested changes on '{milestone.name}': {note.strip()}",
                project_id=project.id,
                data={"projectId": str(project.id), "milestoneId": str(milestone.id), "note": note.strip()},
            )
        return milestone

    async def reject(
        self,
        db: AsyncSession,
        project: Project,
        milestone: Milestone,
        reason: str = "",
        actor: User | None = None,
    ) -> Milestone:
        old, new = self._transition(milestone, MilestoneAction.REJECT, actor, reason=reason)
        await db.flush()

        await record_audit(db, "milestone", milestone.id, "reject", actor.id if actor else None,
                           {"from": old, "to": new, "reason": reason})
        if project.assigned_contractor_id:
            await create_notification(
                db,
                user_id=project.assigned_contractor_id,
                category=NotificationCategory.MILESTONE,
                title="Milestone rejected",
                body=f"'{milestone.name}' was rejected." + (f" Reason: {reason}" if reason else ""),
                project_id=project.id,
                data={"projectId": str(project.id), "milestoneId": str(milestone.id)},
            )
        return milestone
