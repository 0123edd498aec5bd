"""In-app notifications: persistence, read state and real-time push."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.common.enums import NotificationCategory
from ninofi.common.logging import get_logger
from ninofi.db.models.notification import Notification
from ninofi.db.models.user import User

logger = get_logger("notifications.service")

PENDING_PUSHES = "pending_pushes"


def push_allowed(preferences: dict | None, category: str) -> bool:
    """Whether the user's stored preferences allow a push for ``category``.

    Missing keys default to enabled, so users who never saved preferences
    receive everything.
    """
    prefs = (preferences or {}).get("notifications") or {}
    if not prefs.get("push_enabled", True):
        return False
    return bool((prefs.get("categories") or {}).get(category, True))


async def create_notification(
    db: AsyncSession,
    user_id: uuid.UUID,
    category: NotificationCategory | str,
    title: str,
    body: str,
    project_id: uuid.UUID | None = None,
    data: dict[str, Any] | None = None,
    action_url: str | None = None,
    channel: str = "in_app",
) -> Notification:
    """Store an in-app notification and queue its WebSocket push.

    The row is always written since it carries the action payload the
    client needs; only the push honors the user's preferences.
    """
    category_value = category.value if isinstance(category, NotificationCategory) else category

    notification = Notification(
        user_id=user_id,
        project_id=project_id,
        channel=channel,
        category=category_value,
        title=title,
        body=body,
        action_url=action_url,
        data=data or {},
    )
    db.add(notification)
    await db.flush()
    await db.refresh(notification)

    logger.info("Created notification: category=%s user=%s title='%s'", category_value, user_id, title)

    recipient = await db.get(User, user_id)
    if recipient is not None and not push_allowed(recipient.preferences, category_value):
        logger.debug("Push muted by preferences: category=%s user=%s", category_value, user_id)
        return notification

    # Pushed by dispatch_pending_pushes once the transaction commits
    db.info.setdefault(PENDING_PUSHES, []).append((
        str(user_id),
        category_value,
        {
            "id": str(notification.id),
            "title": title,
            "body": body,
            "data": notification.data,
            "action_url": action_url,
        },
    ))
    return notification


async def dispatch_pending_pushes(db: AsyncSession) -> int:
    """Push notifications queued on ``db``. Call only after a successful commit."""
    pending = db.info.pop(PENDING_PUSHES, [])
    if not pending:
        return 0

    from ninofi.api.v1.ws import notify_user

    for user_id, category, payload in pending:
        try:
            await notify_user(user_id, category, payload)
        except Exception as e:
            logger.debug("WebSocket notification skipped: %s", e)
    return len(pending)


def discard_pending_pushes(db: AsyncSession) -> None:
    dropped = db.info.pop(PENDING_PUSHES, [])
    if dropped:
        logger.debug("Dropped %d pushes from a rolled back transaction", len(dropped))


async def unread_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
            Notification.is_deleted.is_(False),
        )
    )
    return result.scalar() or 0


async def mark_read(
    db: AsyncSession, user_id: uuid.UUID, notification_ids: list[uuid.UUID] | None = None
) -> int:
    """Mark the user's unread notifications read; all of them when no ids are given."""
    if notification_ids is not None and not notification_ids:
        return 0

    stmt = update(Notification).where(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    )
    if notification_ids is not None:
        stmt = stmt.where(Notification.id.in_(notification_ids))

    result = await db.execute(stmt.values(is_read=True).execution_options(synchronize_session="fetch"))
    await db.flush()
    logger.info("Marked %d notifications read for user %s", result.rowcount, user_id)
    return result.rowcount
