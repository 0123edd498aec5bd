from decimal import Decimal

import pytest

EVIDENCE = {
    "description": "Cabinets and flooring removed, debris hauled",
    "photos": ["https://img.test/demo-1.jpg"],
    "location": {"latitude": 40.0, "longitude": -88.0},
}


def _milestone(project, name):
    return next(m for m in project["milestones"] if m["name"] == name)


def _url(project, milestone, action=""):
    base = f"/api/v1/projects/{project['id']}/milestones/{milestone['id']}"
    return f"{base}/{action}" if action else base


@pytest.mark.asyncio
async def test_fund_submit_approve_releases_escrow(
    client, assigned_project, auth_headers, contractor_headers, fund_escrow
):
    funded = await fund_escrow(assigned_project["id"], auth_headers, 10000, "fund-e2e-1")
    assert funded.status_code == 201, funded.text

    demo = _milestone(assigned_project, "Demo")
    submitted = await client.post(_url(assigned_project, demo, "submit"), headers=contractor_headers, json=EVIDENCE)
    assert submitted.status_code == 200, submitted.text
    assert submitted.json()["status"] == "submitted"
    assert submitted.json()["submission"]["photos"] == EVIDENCE["photos"]
    assert set(submitted.json()["allowed_actions"]) == {"approve", "request_changes", "reject"}

    approved = await client.post(_url(assigned_project, demo, "approve"), headers=auth_headers)
    assert approved.status_code == 200, approved.text
    assert approved.json()["status"] == "approved"
    assert approved.json()["allowed_actions"] == []

    escrow = (await client.get(f"/api/v1/projects/{assigned_project['id']}/escrow", headers=auth_headers)).json()
    assert Decimal(escrow["funded"]) == Decimal("10000")
    assert Decimal(escrow["released"]) == Decimal("2500")
    assert Decimal(escrow["pending"]) == Decimal("7500")

    txns = (await client.get(
        f"/api/v1/projects/{assigned_project['id']}/escrow/transactions", headers=auth_headers
    )).json()
    release = [t for t in txns if t["kind"] == "release"]
    assert len(release) == 1
    assert release[0]["milestone_id"] == demo["id"]


@pytest.mark.asyncio
async def test_approve_requires_submitted(client, assigned_project, auth_headers):
    demo = _milestone(assigned_project, "Demo")
    response = await client.post(_url(assigned_project, demo, "approve"), headers=auth_headers)
    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "invalid_state_transition"
    assert body["current_status"] == "pending"


@pytest.mark.asyncio
async def test_request_changes_requires_submitted(client, assigned_project, auth_headers):
    demo = _milestone(assigned_project, "Demo")
    response = await client.post(
        _url(assigned_project, demo, "request-changes"), headers=auth_headers, json={"note": "Redo it"}
    )
    assert response.status_code == 409
    assert response.json()["code"] == "invalid_state_transition"


@pytest.mark.asyncio
async def test_approve_without_funds_keeps_submission(
    client, assigned_project, auth_headers, contractor_headers
):
    demo = _milestone(assigned_project, "Demo")
    await client.post(_url(assigned_project, demo, "submit"), headers=contractor_headers, json=EVIDENCE)

    response = await client.post(_url(assigned_project, demo, "approve"), headers=auth_headers)
    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "insufficient_funds"
    assert Decimal(body["requested"]) == Decimal("2500")
    assert Decimal(body["available"]) == Decimal("0")

    current = await client.get(_url(assigned_project, demo), headers=auth_headers)
    assert current.json()["status"] == "submitted"


@pytest.mark.asyncio
async def test_request_changes_then_resubmit(
    client, assigned_project, auth_headers, contractor_headers, fund_escrow
):
    demo = _milestone(assigned_project, "Demo")
    await client.post(_url(assigned_project, demo, "submit"), headers=contractor_headers, json=EVIDENCE)

    changes = await client.post(
        _url(assigned_project, demo, "request-changes"),
        headers=auth_headers,
        json={"note": "Please also remove the old backsplash"},
    )
    assert changes.status_code == 200
    assert changes.json()["status"] == "changes_requested"
    assert changes.json()["allowed_actions"] == ["submit"]

    # The contractor hears about it
    notes = (await client.get("/api/v1/notifications", headers=contractor_headers)).json()
    assert any("backsplash" in n["body"] for n in notes["items"])

    resubmitted = await client.post(
        _url(assigned_project, demo, "submit"), headers=contractor_headers, json=EVIDENCE
    )
    assert resubmitted.status_code == 200
    assert resubmitted.json()["status"] == "submitted"
    actions = [h["action"] for h in resubmitted.json()["history"]]
    assert actions == ["created", "submit", "request_changes", "submit"]

    await fund_escrow(assigned_project["id"], auth_headers, 2500, "fund-resubmit-1")
    approved = await client.post(_url(assigned_project, demo, "approve"), headers=auth_headers)
    assert approved.json()["status"] == "approved"


@pytest.mark.asyncio
async def test_request_changes_needs_note(client, assigned_project, auth_headers, contractor_headers):
    demo = _milestone(assigned_project, "Demo")
    await client.post(_url(assigned_project, demo, "submit"), headers=contractor_headers, json=EVIDENCE)
    response = await client.post(
        _url(assigned_project, demo, "request-changes"), headers=auth_headers, json={"note": "  "}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_reject_is_terminal(client, assigned_project, auth_headers, contractor_headers):
    demo = _milestone(assigned_project, "Demo")
    await client.post(_url(assigned_project, demo, "submit"), headers=contractor_headers, json=EVIDENCE)

    rejected = await client.post(
        _url(assigned_project, demo, "reject"), headers=auth_headers, json={"reason": "Wrong room"}
    )
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"

    again = await client.post(_url(assigned_project, demo, "submit"), headers=contractor_headers, json=EVIDENCE)
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_submit_requires_photo_and_description(client, assigned_project, contractor_headers):
    demo = _milestone(assigned_project, "Demo")
    no_photo = await client.post(
        _url(assigned_project, demo, "submit"),
        headers=contractor_headers,
        json={"description": "Done", "photos": []},
    )
    assert no_photo.status_code == 400

    no_description = await client.post(
        _url(assigned_project, demo, "submit"),
        headers=contractor_headers,
        json={"description": "", "photos": ["https://img.test/a.jpg"]},
    )
    assert no_description.status_code == 400


@pytest.mark.asyncio
async def test_only_assigned_contractor_submits(client, assigned_project, auth_headers, other_contractor_headers):
    demo = _milestone(assigned_project, "Demo")
    by_owner = await client.post(_url(assigned_project, demo, "submit"), headers=auth_headers, json=EVIDENCE)
    assert by_owner.status_code == 403

    by_stranger = await client.post(
        _url(assigned_project, demo, "submit"), headers=other_contractor_headers, json=EVIDENCE
    )
    assert by_stranger.status_code == 403


@pytest.mark.asyncio
async def test_only_owner_approves(client, assigned_project, contractor_headers, auth_headers, fund_escrow):
    await fund_escrow(assigned_project["id"], auth_headers, 10000, "fund-owner-only")
    demo = _milestone(assigned_project, "Demo")
    await client.post(_url(assigned_project, demo, "submit"), headers=contractor_headers, json=EVIDENCE)

    response = await client.post(_url(assigned_project, demo, "approve"), headers=contractor_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_add_milestone_respects_budget(client, project, auth_headers):
    ok = await client.post(
        f"/api/v1/projects/{project['id']}/milestones",
        headers=auth_headers,
        json={"name": "Paint", "amount": 3500},
    )
    assert ok.status_code == 201
    assert ok.json()["position"] == 2

    over = await client.post(
        f"/api/v1/projects/{project['id']}/milestones",
        headers=auth_headers,
        json={"name": "Extras", "amount": 1},
    )
    assert over.status_code == 400

    listed = await client.get(f"/api/v1/projects/{project['id']}/milestones", headers=auth_headers)
    assert [m["name"] for m in listed.json()] == ["Demo", "Cabinets", "Paint"]
