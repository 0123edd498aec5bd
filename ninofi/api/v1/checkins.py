"""GPS-verified check-in / check-out for contractors and project personnel."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.api.access import ensure_on_site_crew, get_project_for_user, get_project_or_404
from ninofi.api.deps import get_current_user, get_db
from ninofi.common.schemas import CamelModel
from ninofi.core.checkins.geo import format_duration
from ninofi.core.checkins.schemas import CheckInStatus
from ninofi.core.checkins.tracker import CheckInTracker, allowed_radius
from ninofi.db.base import as_utc
from ninofi.db.models.checkin import CheckIn
from ninofi.db.models.user import User

router = APIRouter(tags=["Check-ins"])

tracker = CheckInTracker()


# ---------- Schemas ----------


class CheckInRequest(CamelModel):
    project_id: uuid.UUID
    # Null when the device could not provide a fix
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class CheckOutRequest(CamelModel):
    project_id: uuid.UUID
    check_in_id: uuid.UUID


class CheckInResponse(CamelModel):
    id: uuid.UUID
    project_id: uuid.UUID
    user_id: uuid.UUID
    user_type: str
    check_in_time: str
    check_out_time: str | None
    latitude: float
    longitude: float
    distance: float
    allowed_radius: float | None = None
    duration_seconds: int | None
    duration: str | None
    auto_closed: bool


def _checkin_response(c: CheckIn, radius: float | None = None) -> CheckInResponse:
    return CheckInResponse(
        id=c.id,
        project_id=c.project_id,
        user_id=c.user_id,
        user_type=c.user_type,
        check_in_time=as_utc(c.check_in_time).isoformat(),
        check_out_time=as_utc(c.check_out_time).isoformat() if c.check_out_time else None,
        latitude=c.latitude,
        longitude=c.longitude,
        distance=c.distance,
        allowed_radius=radius,
        duration_seconds=c.duration_seconds,
        duration=format_duration(c.duration_seconds) if c.duration_seconds is not None else None,
        auto_closed=c.auto_closed,
    )


# ---------- Endpoints ----------


@router.post("/check-in", response_model=CheckInResponse, status_code=201)
async def check_in(
    body: CheckInRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_or_404(db, body.project_id)
    await ensure_on_site_crew(db, project, current_user)
    record = await tracker.check_in(db, project, current_user, body.latitude, body.longitude)
    return _checkin_response(record, allowed_radius(project))


@router.post("/check-out", response_model=CheckInResponse)
async def check_out(
    body: CheckOutRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_or_404(db, body.project_id)
    record = await tracker.check_out(db, project, current_user, body.check_in_id)
    return _checkin_response(record)


@router.get("/check-in", response_model=list[CheckInResponse])
async def list_check_ins(
    project_id: uuid.UUID = Query(...),
    user_id: uuid.UUID | None = Query(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_project_for_user(db, project_id, current_user)
    return [_checkin_response(c) for c in await tracker.history(db, project_id, user_id)]


@router.get("/check-in-status/{project_id}/{user_id}", response_model=CheckInStatus)
async def check_in_status(
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if user_id == current_user.id:
        await get_project_or_404(db, project_id)
    else:
        await get_project_for_user(db, project_id, current_user)
    return await tracker.status(db, project_id, user_id)
