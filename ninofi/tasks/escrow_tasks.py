import asyncio

from ninofi.common.logging import get_logger
from ninofi.tasks.celery_app import app

logger = get_logger("tasks.escrow")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def ledger_violations(db) -> list[dict]:
    """Accounts where released exceeds funded, as loggable dicts."""
    from ninofi.core.escrow.ledger import EscrowLedger

    violations = await EscrowLedger().find_violations(db)
    return [
        {
            "account_id": str(a.id),
            "project_id": str(a.project_id),
            "funded": str(a.funded),
            "released": str(a.released),
        }
        for a in violations
    ]


@app.task(name="ninofi.tasks.escrow_tasks.audit_ledger_invariants")
def audit_ledger_invariants():
    """Celery Beat task: flag escrow accounts breaking 0 <= released <= funded."""
    logger.info("Auditing escrow ledger invariants")

    async def _audit():
        from ninofi.db.session import async_session_factory

        async with async_session_factory() as db:
            violations = await ledger_violations(db)
            for v in violations:
                logger.error(
                    "Escrow invariant violated: account=%s project=%s funded=%s released=%s",
                    v["account_id"], v["project_id"], v["funded"], v["released"],
                )
            return violations

    return _run_async(_audit())
