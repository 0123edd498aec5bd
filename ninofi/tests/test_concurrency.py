"""Two sessions racing on the same rows, the way two API requests would."""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ninofi.common.enums import ApplicationDecision
from ninofi.core.applications.broker import ApplicationBroker
from ninofi.core.checkins.tracker import CheckInTracker
from ninofi.core.contracts.service import sign_contract
from ninofi.core.escrow.ledger import EscrowLedger
from ninofi.core.milestones.service import MilestoneEngine
from ninofi.db.models.application import Application
from ninofi.db.models.contract import Contract
from ninofi.db.models.milestone import Milestone
from ninofi.db.models.project import Project
from ninofi.db.models.user import User

EVIDENCE = {
    "description": "Cabinets and flooring removed, debris hauled",
    "photos": ["https://img.test/demo-1.jpg"],
}


async def _apply(client, project, headers):
    response = await client.post(
        f"/api/v1/projects/{project['id']}/applications", headers=headers, json={"message": "Available"}
    )
    assert response.status_code == 201, response.text
    return uuid.UUID(response.json()["id"])


# ---------- Contracts ----------


@pytest.mark.asyncio
async def test_simultaneous_signatures_are_not_lost(
    client, session_factory, assigned_project, auth_headers, contractor_headers, homeowner_user, contractor_user,
):
    created = await client.post(
        "/api/v1/contracts",
        headers=auth_headers,
        json={"project_id": assigned_project["id"], "title": "Kitchen agreement", "terms": "Remodel the kitchen."},
    )
    contract_id = uuid.UUID(created.json()["id"])
    project_id = uuid.UUID(assigned_project["id"])

    async with session_factory() as first, session_factory() as second:
        owner_copy = await first.get(Contract, contract_id)
        owner_project = await first.get(Project, project_id)
        owner = await first.get(User, homeowner_user.id)

        contractor_copy = await second.get(Contract, contract_id)
        contractor_project = await second.get(Project, project_id)
        contractor = await second.get(User, contractor_user.id)

        await sign_contract(first, owner_copy, owner_project, owner)
        await first.commit()

        with pytest.raises(StaleDataError):
            await sign_contract(second, contractor_copy, contractor_project, contractor)
        await second.rollback()

    stored = await client.get(f"/api/v1/contracts/{contract_id}", headers=auth_headers)
    assert [s["role"] for s in stored.json()["signatures"]] == ["homeowner"]

    # A retry on fresh state completes the contract
    retried = await client.post(f"/api/v1/contracts/{contract_id}/sign", headers=contractor_headers, json={})
    assert retried.status_code == 200
    assert retried.json()["status"] == "signed"
    assert [s["role"] for s in retried.json()["signatures"]] == ["homeowner", "contractor"]


# ---------- Applications ----------


@pytest.mark.asyncio
async def test_deny_racing_accept_is_rejected(
    client, session_factory, project, contractor_headers, auth_headers, homeowner_user,
):
    application_id = await _apply(client, project, contractor_headers)
    broker = ApplicationBroker()

    async with session_factory() as first, session_factory() as second:
        accepting = await first.get(Application, application_id)
        denying = await second.get(Application, application_id)

        await broker.decide(first, accepting, ApplicationDecision.ACCEPT, await first.get(User, homeowner_user.id))
        await first.commit()

        with pytest.raises(StaleDataError):
            await broker.decide(second, denying, ApplicationDecision.DENY, await second.get(User, homeowner_user.id))
        await second.rollback()

    listed = await client.get(f"/api/v1/projects/{project['id']}/applications", headers=auth_headers)
    assert [a["status"] for a in listed.json()] == ["accepted"]


@pytest.mark.asyncio
@pytest.mark.parametrize("exclusive", [True, False])
async def test_two_accepts_hire_one_contractor(
    client, session_factory, project, contractor_headers, other_contractor_headers,
    auth_headers, homeowner_user, contractor_user, exclusive,
):
    first_id = await _apply(client, project, contractor_headers)
    second_id = await _apply(client, project, other_contractor_headers)
    broker = ApplicationBroker(exclusive_contractor=exclusive)

    async with session_factory() as first, session_factory() as second:
        first_app = await first.get(Application, first_id)
        second_app = await second.get(Application, second_id)
        # Both requests see an unassigned project
        await first.get(Project, uuid.UUID(project["id"]))
        await second.get(Project, uuid.UUID(project["id"]))

        await broker.decide(first, first_app, ApplicationDecision.ACCEPT, await first.get(User, homeowner_user.id))
        await first.commit()

        with pytest.raises(StaleDataError):
            await broker.decide(second, second_app, ApplicationDecision.ACCEPT, await second.get(User, homeowner_user.id))
        await second.rollback()

    detail = await client.get(f"/api/v1/projects/{project['id']}", headers=auth_headers)
    assert detail.json()["assigned_contractor_id"] == str(contractor_user.id)


@pytest.mark.asyncio
async def test_live_application_is_unique_per_listing(db_session, homeowner_user, contractor_user):
    project = Project(owner_id=homeowner_user.id, title="Garage", status="open")
    db_session.add(project)
    await db_session.flush()

    withdrawn = Application(
        target_type="project", project_id=project.id, applicant_id=contractor_user.id, status="withdrawn",
    )
    live = Application(target_type="project", project_id=project.id, applicant_id=contractor_user.id)
    db_session.add_all([withdrawn, live])
    await db_session.flush()

    db_session.add(Application(target_type="project", project_id=project.id, applicant_id=contractor_user.id))
    with pytest.raises(IntegrityError):
        await db_session.flush()


# ---------- Escrow ----------


@pytest.mark.asyncio
async def test_double_approve_releases_once(
    client, session_factory, assigned_project, auth_headers, contractor_headers, fund_escrow, homeowner_user,
):
    await fund_escrow(assigned_project["id"], auth_headers, 10000, "race-fund-1")
    demo = next(m for m in assigned_project["milestones"] if m["name"] == "Demo")
    submitted = await client.post(
        f"/api/v1/projects/{assigned_project['id']}/milestones/{demo['id']}/submit",
        headers=contractor_headers,
        json=EVIDENCE,
    )
    assert submitted.status_code == 200, submitted.text

    project_id = uuid.UUID(assigned_project["id"])
    milestone_id = uuid.UUID(demo["id"])
    ledger = EscrowLedger()
    engine = MilestoneEngine(ledger)

    async with session_factory() as first, session_factory() as second:
        loaded = []
        for session in (first, second):
            await ledger.summary(session, project_id)
            loaded.append((
                await session.get(Project, project_id),
                await session.get(Milestone, milestone_id),
                await session.get(User, homeowner_user.id),
            ))

        await engine.approve(first, *loaded[0])
        await first.commit()

        with pytest.raises(StaleDataError):
            await engine.approve(second, *loaded[1])
        await second.rollback()

    escrow = (await client.get(f"/api/v1/projects/{assigned_project['id']}/escrow", headers=auth_headers)).json()
    assert Decimal(escrow["released"]) == Decimal("2500")
    txns = (await client.get(
        f"/api/v1/projects/{assigned_project['id']}/escrow/transactions", headers=auth_headers
    )).json()
    assert len([t for t in txns if t["kind"] == "release"]) == 1


# ---------- HTTP mapping ----------


@pytest.mark.asyncio
async def test_stale_write_maps_to_409(client, assigned_project, auth_headers, monkeypatch):
    from ninofi.api.v1.milestones import milestone_engine

    async def lost_race(*args, **kwargs):
        raise StaleDataError("UPDATE statement on table 'milestones' expected to update 1 row(s); 0 were matched.")

    monkeypatch.setattr(milestone_engine, "approve", lost_race)

    demo = next(m for m in assigned_project["milestones"] if m["name"] == "Demo")
    response = await client.post(
        f"/api/v1/projects/{assigned_project['id']}/milestones/{demo['id']}/approve", headers=auth_headers
    )
    assert response.status_code == 409
    assert response.json()["code"] == "conflict"


@pytest.mark.asyncio
async def test_second_open_session_hits_unique_index(client, assigned_project, contractor_headers, monkeypatch):
    async def nothing_open(self, db, project_id, user_id):
        return None

    # Both requests pass the open-session check before either inserts
    monkeypatch.setattr(CheckInTracker, "open_session", nothing_open)

    body = {"project_id": assigned_project["id"], "latitude": 40.0002, "longitude": -88.0}
    first = await client.post("/api/v1/check-in", headers=contractor_headers, json=body)
    assert first.status_code == 201, first.text

    second = await client.post("/api/v1/check-in", headers=contractor_headers, json=body)
    assert second.status_code == 409
    assert second.json()["code"] == "conflict"

    history = await client.get(
        "/api/v1/check-in", headers=contractor_headers, params={"project_id": assigned_project["id"]}
    )
    assert len(history.json()) == 1
