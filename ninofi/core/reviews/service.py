"""Contractor reviews: one per homeowner and project, one reply, moderation flags."""

from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.common.enums import NotificationCategory, ProjectStatus
from ninofi.common.exceptions import BadRequestError, ConflictError, NotFoundError, PermissionDeniedError
from ninofi.common.logging import get_logger
from ninofi.core.audit.service import record_audit
from ninofi.core.notifications.service import create_notification
from ninofi.db.base import utcnow
from ninofi.db.models.project import Project
from ninofi.db.models.review import Review
from ninofi.db.models.user import User

logger = get_logger("reviews.service")

REVIEWABLE_STATUSES = {ProjectStatus.IN_PROGRESS.value, ProjectStatus.COMPLETED.value}


class ReviewService:
    async def submit(
        self,
        db: AsyncSession,
        project: Project,
        reviewer: User,
        ratings: dict[str, int | None],
        comment: str = "",
        contractor_id: uuid.UUID | None = None,
    ) -> Review:
        if project.owner_id != reviewer.id:
            raise PermissionDeniedError("Only the project owner can review its contractor")
        if not project.assigned_contractor_id or project.status not in REVIEWABLE_STATUSES:
            raise BadRequestError("Reviews open once a contractor has been hired")
        if contractor_id is not None and contractor_id != project.assigned_contractor_id:
            raise BadRequestError("That contractor did not work on this project")

        existing = await db.execute(
            select(Review.id).where(
                Review.project_id == project.id,
                Review.reviewer_id == reviewer.id,
                Review.is_deleted.is_(False),
            )
        )
        review_id = existing.scalar_one_or_none()
        if review_id is not None:
            raise ConflictError("You already reviewed this project", extra={"review_id": str(review_id)})

        review = Review(
            project_id=project.id,
            contractor_id=project.assigned_contractor_id,
            reviewer_id=reviewer.id,
            comment=(comment or "").strip(),
            **ratings,
        )
        db.add(review)
        await db.flush()
        await db.refresh(review)

        logger.info("Review %s (%d/5) for contractor %s", review.id, review.rating_overall, review.contractor_id)
        await record_audit(db, "review", review.id, "submit", reviewer.id,
                           {"project_id": project.id, "rating_overall": review.rating_overall})
        await create_notification(
            db,
            user_id=review.contractor_id,
            category=NotificationCategory.REVIEW,
            title="New review",
            body=f"{reviewer.full_name} rated your work on {project.title} {review.rating_overall}/5.",
            project_id=project.id,
            data={"projectId": str(project.id), "reviewId": str(review.id)},
        )
        return review

    async def get(self, db: AsyncSession, review_id: uuid.UUID) -> Review:
        result = await db.execute(
            select(Review).where(Review.id == review_id, Review.is_deleted.is_(False))
        )
        review = result.scalar_one_or_none()
        if not review:
            raise NotFoundError("Review", str(review_id))
        return review

    async def for_contractor(
        self, db: AsyncSession, contractor_id: uuid.UUID, include_flagged: bool = False
    ) -> tuple[list[Review], float | None]:
        """Reviews newest first, and the average overall rating over the same set."""
        where = [Review.contractor_id == contractor_id, Review.is_deleted.is_(False)]
        if not include_flagged:
            where.append(Review.is_flagged.is_(False))

        result = await db.execute(select(Review).where(*where).order_by(Review.created_at.desc()))
        average = (await db.execute(select(func.avg(Review.rating_overall)).where(*where))).scalar()
        return list(result.scalars().all()), round(float(average), 2) if average is not None else None

    async def respond(self, db: AsyncSession, review: Review, actor: User, text: str) -> Review:
        if review.contractor_id != actor.id:
            raise PermissionDeniedError("Only the reviewed contractor can respond")
        if review.response_text:
            raise ConflictError("You already responded to this review")
        if not text or not text.strip():
            raise BadRequestError("Response text is required")

        review.response_text = text.strip()
        review.responded_at = utcnow()
        await db.flush()
        await record_audit(db, "review", review.id, "respond", actor.id)
        await create_notification(
            db,
            user_id=review.reviewer_id,
            category=NotificationCategory.REVIEW,
            title="The contractor replied to your review",
            body=review.response_text,
            project_id=review.project_id,
            data={"reviewId": str(review.id)},
        )
        return review

    async def flag(self, db: AsyncSession, review: Review, actor: User, reason: str | None = None) -> Review:
        """Hide a review from public listings until an admin looks at it."""
        if review.is_flagged:
            return review
        review.is_flagged = True
        review.flagged_by_id = actor.id
        review.flag_reason = (reason or "").strip() or None
        await db.flush()
        logger.info("Review %s flagged by %s", review.id, actor.id)
        await record_audit(db, "review", review.id, "flag", actor.id, {"reason": review.flag_reason})
        return review
