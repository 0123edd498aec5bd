import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.common.enums import UserRole
from ninofi.common.exceptions import AuthenticationRequiredError, PermissionDeniedError
from ninofi.common.security import decode_token
from ninofi.core.notifications.service import discard_pending_pushes, dispatch_pending_pushes
from ninofi.db.models.user import User
from ninofi.db.session import async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            discard_pending_pushes(session)
            raise
        await dispatch_pending_pushes(session)


async def get_current_user(
    authorization: str | None = Header(None, description="Bearer <token>"),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationRequiredError()

    token = authorization[len("Bearer "):]
    try:
        payload = decode_token(token)
    except ValueError:
        raise AuthenticationRequiredError("Invalid or expired token")

    if payload.get("type") != "access":
        raise AuthenticationRequiredError("Invalid token type")

    try:
        user_id = uuid.UUID(payload.get("sub", ""))
    except ValueError:
        raise AuthenticationRequiredError("Invalid token payload")

    result = await db.execute(
        select(User).where(User.id == user_id, User.is_deleted.is_(False))
    )
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationRequiredError("User no longer exists")
    if not user.is_active:
        raise PermissionDeniedError("User account is inactive")

    return user


def require_role(*roles: UserRole):
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in [r.value for r in roles]:
            raise PermissionDeniedError(
                f"This action requires one of the following roles: {', '.join(r.value for r in roles)}"
            )
        return current_user

    return role_checker
