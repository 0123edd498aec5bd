import asyncio

from ninofi.common.logging import get_logger
from ninofi.tasks.celery_app import app

logger = get_logger("tasks.checkin")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def close_stale(db, max_hours: int | None = None) -> list[str]:
    from ninofi.core.checkins.tracker import CheckInTracker

    return await CheckInTracker().close_stale_sessions(db, max_hours=max_hours)


@app.task(name="ninofi.tasks.checkin_tasks.close_stale_checkins")
def close_stale_checkins(max_hours: int | None = None):
    """Celery Beat task: close check-ins nobody checked out of."""
    logger.info("Closing stale check-ins")

    async def _close():
        from ninofi.core.notifications.service import dispatch_pending_pushes
        from ninofi.db.session import async_session_factory

        async with async_session_factory() as db:
            try:
                closed = await close_stale(db, max_hours)
                await db.commit()
                await dispatch_pending_pushes(db)
                if closed:
                    logger.info("Auto-closed %d check-ins", len(closed))
                return closed
            except Exception as e:
                await db.rollback()
                logger.error("Stale check-in sweep failed: %s", e)
                raise

    return _run_async(_close())
