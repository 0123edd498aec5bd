"""GPS-verified attendance: check-in, check-out and session status."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.common.enums import NotificationCategory
from ninofi.common.exceptions import (
    AlreadyCheckedInError,
    BadRequestError,
    InvalidStateTransitionError,
    LocationUnavailableError,
    NotFoundError,
    OutOfRangeError,
)
from ninofi.common.logging import get_logger
from ninofi.config import settings
from ninofi.core.audit.service import record_audit
from ninofi.core.checkins.geo import format_duration, haversine_m
from ninofi.core.checkins.schemas import CheckInStatus
from ninofi.core.notifications.service import create_notification
from ninofi.db.base import as_utc, utcnow
from ninofi.db.models.checkin import CheckIn
from ninofi.db.models.project import Project
from ninofi.db.models.user import User

logger = get_logger("checkins.tracker")


def allowed_radius(project: Project) -> float:
    return project.checkin_radius_m or settings.CHECKIN_RADIUS_METERS


def _elapsed(check_in: CheckIn, now: datetime) -> int:
    end = as_utc(check_in.check_out_time) if check_in.check_out_time else now
    return max(0, int((end - as_utc(check_in.check_in_time)).total_seconds()))


class CheckInTracker:
    async def open_session(
        self, db: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID
    ) -> CheckIn | None:
        result = await db.execute(
            select(CheckIn).where(
                CheckIn.project_id == project_id,
                CheckIn.user_id == user_id,
                CheckIn.check_out_time.is_(None),
                CheckIn.is_deleted.is_(False),
            )
        )
        return result.scalar_one_or_none()

    async def check_in(
        self,
        db: AsyncSession,
        project: Project,
        user: User,
        latitude: float | None,
        longitude: float | None,
        now: datetime | None = None,
    ) -> CheckIn:
        if latitude is None or longitude is None:
            raise LocationUnavailableError()
        if project.location_lat is None or project.location_lng is None:
            raise BadRequestError("This project has no job-site location to check in against")

        open_session = await self.open_session(db, project.id, user.id)
        if open_session:
            raise AlreadyCheckedInError(str(open_session.id))

        distance = haversine_m(project.location_lat, project.location_lng, latitude, longitude)
        radius = allowed_radius(project)
        if distance > radius:
            logger.info(
                "Check-in rejected: user=%s project=%s distance=%.1fm radius=%.1fm",
                user.id, project.id, distance, radius,
            )
            raise OutOfRangeError(distance, radius)

        check_in = CheckIn(
            project_id=project.id,
            user_id=user.id,
            user_type=user.role,
            check_in_time=now or utcnow(),
            latitude=latitude,
            longitude=longitude,
            distance=round(distance, 1),
        )
        db.add(check_in)
        await db.flush()
        await db.refresh(check_in)

        logger.info("Checked in: user=%s project=%s distance=%.1fm", user.id, project.id, distance)
        await record_audit(db, "check_in", check_in.id, "check_in", user.id,
                           {"project_id": project.id, "distance": check_in.distance})
        if project.owner_id != user.id:
            await create_notification(
                db,
                user_id=project.owner_id,
                category=NotificationCategory.CHECK_IN,
                title="Crew on site",
                body=f"{user.full_name} checked in at {project.title}.",
                project_id=project.id,
                data={"projectId": str(project.id), "checkInId": str(check_in.id), "userId": str(user.id)},
            )
        return check_in

    async def check_out(
        self,
        db: AsyncSession,
        project: Project,
        user: User,
        check_in_id: uuid.UUID,
        now: datetime | None = None,
    ) -> CheckIn:
        result = await db.execute(
            select(CheckIn).where(
                CheckIn.id == check_in_id,
                CheckIn.project_id == project.id,
                CheckIn.user_id == user.id,
                CheckIn.is_deleted.is_(False),
            )
        )
        check_in = result.scalar_one_or_none()
        if not check_in:
            raise NotFoundError("Check-in", str(check_in_id))
        if check_in.check_out_time is not None:
            raise InvalidStateTransitionError("check-in", "closed", "check_out")

        self._close(check_in, now or utcnow())
        await db.flush()

        logger.info("Checked out: user=%s project=%s duration=%ss", user.id, project.id, check_in.duration_seconds)
        await record_audit(db, "check_in", check_in.id, "check_out", user.id,
                           {"duration_seconds": check_in.duration_seconds})
        return check_in

    def _close(self, check_in: CheckIn, when: datetime) -> None:
        check_in.check_out_time = when
        check_in.duration_seconds = _elapsed(check_in, when)

    async def status(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        user_id: uuid.UUID,
        now: datetime | None = None,
    ) -> CheckInStatus:
        """Current session for (project, user), or the most recent closed one."""
        now = now or utcnow()
        current = await self.open_session(db, project_id, user_id)
        if current is None:
            result = await db.execute(
                select(CheckIn)
                .where(
                    CheckIn.project_id == project_id,
                    CheckIn.user_id == user_id,
                    CheckIn.is_deleted.is_(False),
                )
                .order_by(CheckIn.check_in_time.desc())
                .limit(1)
            )
            current = result.scalar_one_or_none()

        if current is None:
            return CheckInStatus(project_id=project_id, user_id=user_id, checked_in=False)

        elapsed = _elapsed(current, now)
        return CheckInStatus(
            project_id=project_id,
            user_id=user_id,
            checked_in=current.check_out_time is None,
            check_in_id=current.id,
            check_in_time=as_utc(current.check_in_time),
            check_out_time=as_utc(current.check_out_time) if current.check_out_time else None,
            distance=current.distance,
            elapsed_seconds=elapsed,
            elapsed=format_duration(elapsed),
        )

    async def history(
        self, db: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID | None = None
    ) -> list[CheckIn]:
        query = select(CheckIn).where(CheckIn.project_id == project_id, CheckIn.is_deleted.is_(False))
        if user_id:
            query = query.where(CheckIn.user_id == user_id)
        result = await db.execute(query.order_by(CheckIn.check_in_time.desc()))
        return list(result.scalars().all())

    async def close_stale_sessions(
        self, db: AsyncSession, max_hours: int | None = None, now: datetime | None = None
    ) -> list[str]:
        """Close sessions left open longer than ``max_hours``; duration is capped at the limit."""
        now = now or utcnow()
        limit = timedelta(hours=max_hours or settings.CHECKIN_MAX_SESSION_HOURS)
        result = await db.execute(
            select(CheckIn).where(
                CheckIn.check_out_time.is_(None),
                CheckIn.check_in_time < now - limit,
                CheckIn.is_deleted.is_(False),
            )
        )
        closed = []
        for check_in in result.scalars().all():
            self._close(check_in, as_utc(check_in.check_in_time) + limit)
            check_in.auto_closed = True
            closed.append(str(check_in.id))
            logger.info("Auto-closed stale check-in %s for user %s", check_in.id, check_in.user_id)

        if closed:
            await db.flush()
        return closed
