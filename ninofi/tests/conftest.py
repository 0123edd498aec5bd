import uuid
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ninofi.common.enums import UserRole
from ninofi.common.security import create_access_token, get_password_hash
from ninofi.db.base import Base
from ninofi.db.models import *  # noqa: F401,F403 - ensure all models loaded


# Make JSONB render as JSON for SQLite
@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()


@pytest.fixture
async def test_engine(tmp_path):
    # One throwaway SQLite file per test
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(session_factory):
    from ninofi.api.deps import get_db
    from ninofi.core.notifications.service import discard_pending_pushes, dispatch_pending_pushes
    from ninofi.main import app

    # Same commit/rollback contract as the production dependency
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                discard_pending_pushes(session)
                raise
            await dispatch_pending_pushes(session)

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _make_user(db: AsyncSession, role: UserRole, name: str):
    from ninofi.db.models.user import User

    user = User(
        id=uuid.uuid4(),
        email=f"{role.value}_{uuid.uuid4().hex[:8]}@test.com",
        hashed_password=get_password_hash("testpass123"),
        full_name=name,
        role=role.value,
        preferences={},
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def _headers(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture
async def homeowner_user(db_session):
    return await _make_user(db_session, UserRole.HOMEOWNER, "Test Homeowner")


@pytest.fixture
async def contractor_user(db_session):
    return await _make_user(db_session, UserRole.CONTRACTOR, "Test Contractor")


@pytest.fixture
async def other_contractor_user(db_session):
    return await _make_user(db_session, UserRole.CONTRACTOR, "Other Contractor")


@pytest.fixture
async def worker_user(db_session):
    return await _make_user(db_session, UserRole.WORKER, "Test Worker")


@pytest.fixture
async def admin_user(db_session):
    return await _make_user(db_session, UserRole.ADMIN, "Test Admin")


@pytest.fixture
def auth_headers(homeowner_user):
    return _headers(homeowner_user)


@pytest.fixture
def contractor_headers(contractor_user):
    return _headers(contractor_user)


@pytest.fixture
def other_contractor_headers(other_contractor_user):
    return _headers(other_contractor_user)


@pytest.fixture
def worker_headers(worker_user):
    return _headers(worker_user)


@pytest.fixture
def admin_headers(admin_user):
    return _headers(admin_user)


@pytest.fixture
async def project(client, auth_headers):
    """Open project with a pinned job site, a 50 m check-in radius and two milestones."""
    resp = await client.post(
        "/api/v1/projects",
        headers=auth_headers,
        json={
            "title": "Kitchen Remodel",
            "description": "Full gut and rebuild",
            "project_type": "kitchen",
            "estimated_budget": 10000,
            "timeline": "6 weeks",
            "address": "742 Evergreen Terrace, Springfield",
            "location_lat": 40.0,
            "location_lng": -88.0,
            "checkin_radius_m": 50,
            "milestones": [
                {"name": "Demo", "amount": 2500, "description": "Tear out cabinets and flooring"},
                {"name": "Cabinets", "amount": 4000},
            ],
            "media": [{"url": "https://img.test/before.jpg", "label": "Before"}],
        },
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture
async def assigned_project(client, project, auth_headers, contractor_headers):
    """The project above with the contractor hired through an accepted application."""
    applied = await client.post(
        f"/api/v1/projects/{project['id']}/applications",
        headers=contractor_headers,
        json={"message": "Licensed and insured, available next week"},
    )
    assert applied.status_code == 201, applied.text
    decided = await client.post(
        f"/api/v1/applications/{applied.json()['id']}/decision",
        headers=auth_headers,
        json={"action": "accept"},
    )
    assert decided.status_code == 200, decided.text

    resp = await client.get(f"/api/v1/projects/{project['id']}", headers=auth_headers)
    return resp.json()


@pytest.fixture
def fund_escrow(client):
    """POST a funding request with the escrow terms accepted."""

    async def _fund(project_id: str, headers: dict, amount, key: str, method: str = "card"):
        return await client.post(
            f"/api/v1/projects/{project_id}/escrow/fund",
            headers=headers,
            json={
                "amount": amount,
                "payment_method": method,
                "accepted_terms": True,
                "idempotency_key": key,
            },
        )

    return _fund
