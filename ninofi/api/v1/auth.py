import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.api.deps import get_current_user, get_db
from ninofi.common.enums import UserRole
from ninofi.common.exceptions import (
    AuthenticationRequiredError,
    BadRequestError,
    ConflictError,
    PermissionDeniedError,
)
from ninofi.common.logging import get_logger
from ninofi.common.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)
from ninofi.db.models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])

logger = get_logger("auth")

SELF_SERVICE_ROLES = {UserRole.HOMEOWNER, UserRole.CONTRACTOR, UserRole.WORKER}


# ---------- Schemas ----------


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    full_name: str = Field(min_length=1)
    phone: str | None = None
    role: UserRole = UserRole.HOMEOWNER


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str
    phone: str | None
    role: str
    is_active: bool

    model_config = {"from_attributes": True}


def _issue_tokens(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token({"sub": str(user.id), "role": user.role}),
        refresh_token=create_refresh_token({"sub": str(user.id)}),
    )


# ---------- Endpoints ----------


@router.post("/register", response_model=UserResponse, status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    if body.role not in SELF_SERVICE_ROLES:
        raise BadRequestError("Admin accounts cannot be self-registered")

    email = body.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise ConflictError("An account with this email already exists")

    user = User(
        email=email,
        hashed_password=get_password_hash(body.password),
        full_name=body.full_name.strip(),
        phone=body.phone,
        role=body.role.value,
        preferences={},
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info("Registered %s user %s", user.role, user.id)
    return user


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(User).where(User.email == body.email.lower(), User.is_deleted.is_(False))
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(body.password, user.hashed_password):
        raise AuthenticationRequiredError("Invalid email or password")

    if not user.is_active:
        raise PermissionDeniedError("Account is inactive")

    return _issue_tokens(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(body: RefreshRequest, db: AsyncSession = Depends(get_db)):
    try:
        payload = decode_token(body.refresh_token)
    except ValueError:
        raise AuthenticationRequiredError("Invalid refresh token")

    if payload.get("type") != "refresh":
        raise AuthenticationRequiredError("Invalid token type")

    try:
        user_id = uuid.UUID(payload.get("sub", ""))
    except ValueError:
        raise AuthenticationRequiredError("Invalid refresh token")

    result = await db.execute(
        select(User).where(User.id == user_id, User.is_deleted.is_(False))
    )
    user = result.scalar_one_or_none()
    if not user:
        raise AuthenticationRequiredError("User not found")

    return _issue_tokens(user)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user
