import pytest


async def _apply(client, project, headers, message="I can start Monday"):
    return await client.post(
        f"/api/v1/projects/{project['id']}/applications", headers=headers, json={"message": message}
    )


@pytest.mark.asyncio
async def test_apply_to_project(client, project, contractor_headers, auth_headers, contractor_user):
    response = await _apply(client, project, contractor_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["target_type"] == "project"
    assert data["applicant_id"] == str(contractor_user.id)

    listed = await client.get(f"/api/v1/projects/{project['id']}/applications", headers=auth_headers)
    assert [a["id"] for a in listed.json()] == [data["id"]]

    # Owner is told about the applicant, with ids to act on
    notes = (await client.get("/api/v1/notifications", headers=auth_headers)).json()
    payload = notes["items"][0]["data"]
    assert payload["applicationId"] == data["id"]
    assert payload["projectId"] == project["id"]


@pytest.mark.asyncio
async def test_duplicate_application(client, project, contractor_headers):
    first = await _apply(client, project, contractor_headers)
    second = await _apply(client, project, contractor_headers)
    assert second.status_code == 409
    body = second.json()
    assert body["code"] == "duplicate_application"
    assert body["application_id"] == first.json()["id"]


@pytest.mark.asyncio
async def test_reapply_after_withdraw(client, project, contractor_headers):
    first = await _apply(client, project, contractor_headers)
    withdrawn = await client.post(
        f"/api/v1/applications/{first.json()['id']}/withdraw", headers=contractor_headers
    )
    assert withdrawn.status_code == 200
    assert withdrawn.json()["status"] == "withdrawn"

    again = await _apply(client, project, contractor_headers)
    assert again.status_code == 201


@pytest.mark.asyncio
async def test_withdraw_only_pending(client, project, contractor_headers, auth_headers):
    app_id = (await _apply(client, project, contractor_headers)).json()["id"]
    await client.post(f"/api/v1/applications/{app_id}/decision", headers=auth_headers, json={"action": "deny"})

    response = await client.post(f"/api/v1/applications/{app_id}/withdraw", headers=contractor_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_denied_application_blocks_reapply(client, project, contractor_headers, auth_headers):
    app_id = (await _apply(client, project, contractor_headers)).json()["id"]
    denied = await client.post(
        f"/api/v1/applications/{app_id}/decision", headers=auth_headers, json={"action": "deny"}
    )
    assert denied.json()["status"] == "denied"

    again = await _apply(client, project, contractor_headers)
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_accept_is_exclusive(
    client, project, auth_headers, contractor_headers, other_contractor_headers, contractor_user
):
    mine = (await _apply(client, project, contractor_headers)).json()
    theirs = (await _apply(client, project, other_contractor_headers)).json()

    accepted = await client.post(
        f"/api/v1/applications/{mine['id']}/decision", headers=auth_headers, json={"action": "accept"}
    )
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"

    others = (await client.get("/api/v1/applications/mine", headers=other_contractor_headers)).json()
    assert others[0]["id"] == theirs["id"]
    assert others[0]["status"] == "denied"

    detail = (await client.get(f"/api/v1/projects/{project['id']}", headers=auth_headers)).json()
    assert detail["assigned_contractor_id"] == str(contractor_user.id)
    assert detail["status"] == "in_progress"

    # Hired contractor gets an accept notification
    notes = (await client.get("/api/v1/notifications", headers=contractor_headers)).json()
    assert notes["items"][0]["title"] == "Application accepted"


@pytest.mark.asyncio
async def test_only_owner_decides(client, project, contractor_headers, other_contractor_headers):
    app_id = (await _apply(client, project, contractor_headers)).json()["id"]
    response = await client.post(
        f"/api/v1/applications/{app_id}/decision", headers=other_contractor_headers, json={"action": "accept"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_owner_cannot_apply_and_workers_cannot_bid(client, project, auth_headers, worker_headers):
    assert (await _apply(client, project, auth_headers)).status_code == 403
    assert (await _apply(client, project, worker_headers)).status_code == 403


@pytest.mark.asyncio
async def test_cannot_apply_to_assigned_project(client, assigned_project, other_contractor_headers):
    response = await _apply(client, assigned_project, other_contractor_headers)
    assert response.status_code == 400


# ---------- Gigs and personnel ----------


@pytest.mark.asyncio
async def test_gig_hiring_adds_personnel(
    client, assigned_project, contractor_headers, worker_headers, worker_user
):
    gig = await client.post(
        f"/api/v1/projects/{assigned_project['id']}/gigs",
        headers=contractor_headers,
        json={"title": "Drywall helper", "description": "Two days of hanging board", "pay_rate": 28},
    )
    assert gig.status_code == 201, gig.text
    gig_id = gig.json()["id"]

    open_gigs = await client.get("/api/v1/gigs/open", headers=worker_headers)
    assert [g["id"] for g in open_gigs.json()] == [gig_id]

    applied = await client.post(f"/api/v1/gigs/{gig_id}/applications", headers=worker_headers, json={})
    assert applied.status_code == 201
    assert applied.json()["target_type"] == "gig"

    duplicate = await client.post(f"/api/v1/gigs/{gig_id}/applications", headers=worker_headers, json={})
    assert duplicate.status_code == 409

    listed = await client.get(f"/api/v1/gigs/{gig_id}/applications", headers=contractor_headers)
    assert len(listed.json()) == 1

    accepted = await client.post(
        f"/api/v1/applications/{applied.json()['id']}/decision",
        headers=contractor_headers,
        json={"action": "accept"},
    )
    assert accepted.status_code == 200

    crew = await client.get(f"/api/v1/projects/{assigned_project['id']}/personnel", headers=contractor_headers)
    assert [m["user_id"] for m in crew.json()] == [str(worker_user.id)]

    # Personnel may now check in on site
    checked_in = await client.post(
        "/api/v1/check-in",
        headers=worker_headers,
        json={"project_id": assigned_project["id"], "latitude": 40.0, "longitude": -88.0},
    )
    assert checked_in.status_code == 201


@pytest.mark.asyncio
async def test_only_assigned_contractor_posts_gigs(client, project, other_contractor_headers):
    response = await client.post(
        f"/api/v1/projects/{project['id']}/gigs", headers=other_contractor_headers, json={"title": "Helper"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_add_and_remove_personnel(client, assigned_project, auth_headers, worker_user, worker_headers):
    added = await client.post(
        f"/api/v1/projects/{assigned_project['id']}/personnel",
        headers=auth_headers,
        json={"user_id": str(worker_user.id)},
    )
    assert added.status_code == 201
    assert added.json()["role"] == "worker"

    visible = await client.get("/api/v1/projects", headers=worker_headers)
    assert visible.json()["total"] == 1

    removed = await client.delete(
        f"/api/v1/projects/{assigned_project['id']}/personnel/{worker_user.id}", headers=auth_headers
    )
    assert removed.status_code == 204

    crew = await client.get(f"/api/v1/projects/{assigned_project['id']}/personnel", headers=auth_headers)
    assert crew.json() == []

    missing = await client.delete(
        f"/api/v1/projects/{assigned_project['id']}/personnel/{worker_user.id}", headers=auth_headers
    )
    assert missing.status_code == 404
