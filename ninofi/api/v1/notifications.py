"""In-app notifications and delivery preferences."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.api.access import is_admin
from ninofi.api.deps import get_current_user, get_db
from ninofi.common.exceptions import NotFoundError, PermissionDeniedError
from ninofi.common.pagination import PaginatedResponse, PaginationParams, paginate
from ninofi.core.notifications import service as notifications
from ninofi.db.models.notification import Notification
from ninofi.db.models.user import User

router = APIRouter(prefix="/notifications", tags=["Notifications"])


# ---------- Schemas ----------

class NotificationResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID | None
    channel: str
    category: str
    title: str
    body: str
    data: dict
    is_read: bool
    action_url: str | None
    created_at: str


class NotificationListResponse(PaginatedResponse[NotificationResponse]):
    unread_count: int


class MarkReadRequest(BaseModel):
    notification_ids: list[uuid.UUID]


class NotificationPreferences(BaseModel):
    in_app_enabled: bool = True
    push_enabled: bool = True
    categories: dict[str, bool] = {
        "milestone": True,
        "escrow": True,
        "application": True,
        "contract": True,
        "check_in": True,
        "personnel": True,
        "dispute": True,
        "review": True,
        "system": True,
    }


# ---------- Endpoints ----------

async def _list_for(
    db: AsyncSession, user_id: uuid.UUID, params: PaginationParams, unread_only: bool
) -> NotificationListResponse:
    query = select(Notification).where(
        Notification.user_id == user_id,
        Notification.is_deleted.is_(False),
    )
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    query = query.order_by(Notification.created_at.desc())

    items, total = await paginate(db, query, params, Notification)

    return NotificationListResponse(
        items=[_notif_response(n) for n in items],
        total=total, page=params.page, page_size=params.page_size,
        total_pages=params.total_pages(total), unread_count=await notifications.unread_count(db, user_id),
    )


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
    unread_only: bool = False,
):
    return await _list_for(db, current_user.id, params, unread_only)


@router.get("/preferences", response_model=NotificationPreferences)
async def get_preferences(current_user: User = Depends(get_current_user)):
    prefs = current_user.preferences or {}
    notif_prefs = prefs.get("notifications", {})
    return NotificationPreferences(**notif_prefs) if notif_prefs else NotificationPreferences()


@router.put("/preferences", response_model=NotificationPreferences)
async def update_preferences(
    body: NotificationPreferences,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    current_user.preferences = {**(current_user.preferences or {}), "notifications": body.model_dump()}
    await db.flush()
    return body


@router.get("/{user_id}", response_model=NotificationListResponse)
async def list_user_notifications(
    user_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
    unread_only: bool = False,
):
    if user_id != current_user.id and not is_admin(current_user):
        raise PermissionDeniedError("You can only view your own notifications")
    return await _list_for(db, user_id, params, unread_only)


@router.post("/mark-read")
async def mark_many_read(
    body: MarkReadRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await notifications.mark_read(db, current_user.id, body.notification_ids)
    return {"updated": updated}


@router.post("/read-all")
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await notifications.mark_read(db, current_user.id)
    return {"message": "All notifications marked as read", "updated": updated}


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == current_user.id,
        )
    )
    notif = result.scalar_one_or_none()
    if not notif:
        raise NotFoundError("Notification", str(notification_id))

    notif.is_read = True
    await db.flush()
    await db.refresh(notif)
    return _notif_response(notif)


def _notif_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=n.id, project_id=n.project_id, channel=n.channel,
        category=n.category, title=n.title, body=n.body, data=n.data or {},
        is_read=n.is_read, action_url=n.action_url,
        created_at=n.created_at.isoformat(),
    )
