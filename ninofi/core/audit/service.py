"""Audit trail for state transitions."""

from __future__ import annotations

import uuid
from contextvars import ContextVar
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.common.logging import get_logger
from ninofi.db.models.audit import AuditLog

logger = get_logger("audit")

# Set per request by AuditMiddleware
client_ip: ContextVar[str | None] = ContextVar("client_ip", default=None)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


async def record_audit(
    db: AsyncSession,
    entity_type: str,
    entity_id: uuid.UUID,
    action: str,
    actor_id: uuid.UUID | None = None,
    diff: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    entry = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        diff=_jsonable(diff) if diff else None,
        ip_address=ip_address or client_ip.get(),
    )
    db.add(entry)
    await db.flush()
    logger.info("audit %s %s %s by %s", entity_type, entity_id, action, actor_id)
    return entry
