import pytest

from ninofi.common.enums import DisputeStatus
from ninofi.common.exceptions import BadRequestError, InvalidStateTransitionError
from ninofi.core.disputes.workflow import check_resolution


def _disputes_url(project):
    return f"/api/v1/projects/{project['id']}/disputes"


async def _file(client, project, headers, **extra):
    return await client.post(
        _disputes_url(project),
        headers=headers,
        json={"title": "Cabinets not level", "description": "Upper cabinets sag on the left", **extra},
    )


def test_open_dispute_resolves_or_rejects():
    assert check_resolution("open", "resolved", "Contractor will re-hang") == DisputeStatus.RESOLVED
    assert check_resolution(DisputeStatus.OPEN, DisputeStatus.REJECTED, "Work matches the contract") == DisputeStatus.REJECTED


def test_closed_dispute_is_final():
    with pytest.raises(InvalidStateTransitionError):
        check_resolution("resolved", "rejected", "Changed my mind")
    with pytest.raises(InvalidStateTransitionError):
        check_resolution("open", "open", "Still looking")


def test_resolution_needs_notes():
    with pytest.raises(BadRequestError):
        check_resolution("open", "resolved", "   ")


@pytest.mark.asyncio
async def test_file_and_list_dispute(client, assigned_project, auth_headers, contractor_headers):
    demo = next(m for m in assigned_project["milestones"] if m["name"] == "Demo")
    filed = await _file(client, assigned_project, auth_headers, milestone_id=demo["id"])
    assert filed.status_code == 201, filed.text
    assert filed.json()["status"] == "open"
    assert filed.json()["milestone_id"] == demo["id"]

    listed = await client.get(_disputes_url(assigned_project), headers=contractor_headers)
    assert listed.status_code == 200
    assert listed.json()["total"] == 1

    # The other party hears about it
    notes = (await client.get("/api/v1/notifications", headers=contractor_headers)).json()
    assert any(n["category"] == "dispute" for n in notes["items"])


@pytest.mark.asyncio
async def test_outsider_cannot_file(client, assigned_project, other_contractor_headers):
    response = await _file(client, assigned_project, other_contractor_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_resolves_dispute(client, assigned_project, auth_headers, contractor_headers, admin_headers):
    dispute = (await _file(client, assigned_project, auth_headers)).json()

    queue = await client.get("/api/v1/admin/disputes", headers=admin_headers, params={"status": "open"})
    assert queue.status_code == 200
    assert [d["id"] for d in queue.json()["items"]] == [dispute["id"]]

    resolved = await client.post(
        f"/api/v1/admin/disputes/{dispute['id']}/resolve",
        headers=admin_headers,
        json={"status": "resolved", "resolution_notes": "Contractor re-hangs the uppers at no cost"},
    )
    assert resolved.status_code == 200, resolved.text
    body = resolved.json()
    assert body["status"] == "resolved"
    assert body["resolution_notes"] == "Contractor re-hangs the uppers at no cost"
    assert body["resolved_at"] is not None
    assert body["history"][-1]["to"] == "resolved"

    again = await client.put(
        f"/api/v1/admin/disputes/{dispute['id']}/resolve",
        headers=admin_headers,
        json={"status": "rejected", "resolution_notes": "Never mind"},
    )
    assert again.status_code == 409
    assert again.json()["code"] == "invalid_state_transition"

    for headers in (auth_headers, contractor_headers):
        notes = (await client.get("/api/v1/notifications", headers=headers)).json()
        assert any(n["title"] == "Dispute resolved" for n in notes["items"])

    audit = await client.get(
        "/api/v1/admin/audit-log", headers=admin_headers,
        params={"entity_type": "dispute", "entity_id": dispute["id"]},
    )
    assert {i["action"] for i in audit.json()["items"]} == {"file", "resolved"}


@pytest.mark.asyncio
async def test_dispute_admin_endpoints_require_admin(client, assigned_project, auth_headers):
    dispute = (await _file(client, assigned_project, auth_headers)).json()
    listed = await client.get("/api/v1/admin/disputes", headers=auth_headers)
    assert listed.status_code == 403
    resolved = await client.post(
        f"/api/v1/admin/disputes/{dispute['id']}/resolve",
        headers=auth_headers,
        json={"status": "resolved", "resolution_notes": "I win"},
    )
    assert resolved.status_code == 403
