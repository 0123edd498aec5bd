from decimal import Decimal

import pytest


@pytest.mark.asyncio
async def test_stats_require_admin(client, auth_headers, contractor_headers):
    for headers in (auth_headers, contractor_headers):
        response = await client.get("/api/v1/admin/stats", headers=headers)
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_platform_stats(client, admin_headers, assigned_project, auth_headers, fund_escrow):
    await fund_escrow(assigned_project["id"], auth_headers, "5000", "stats-fund")

    response = await client.get("/api/v1/admin/stats", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["users_by_role"]["homeowner"] == 1
    assert data["users_by_role"]["contractor"] == 1
    assert data["users_by_role"]["admin"] == 1
    assert data["projects_by_status"] == {"in_progress": 1}
    assert Decimal(data["escrow_funded"]) == Decimal("5000.00")
    assert Decimal(data["escrow_pending"]) == Decimal("5000.00")
    assert data["pending_applications"] == 0
    assert data["open_check_ins"] == 0


@pytest.mark.asyncio
async def test_audit_log_filters(client, admin_headers, assigned_project):
    everything = await client.get("/api/v1/admin/audit-log", headers=admin_headers)
    assert everything.status_code == 200
    assert everything.json()["total"] > 0

    project_rows = await client.get(
        "/api/v1/admin/audit-log",
        headers=admin_headers,
        params={"entity_type": "project", "entity_id": assigned_project["id"]},
    )
    items = project_rows.json()["items"]
    assert items
    assert all(i["entity_id"] == assigned_project["id"] for i in items)
    assert "assign_contractor" in {i["action"] for i in items}


@pytest.mark.asyncio
async def test_deactivated_user_is_locked_out(client, admin_headers, auth_headers, homeowner_user):
    response = await client.patch(f"/api/v1/admin/users/{homeowner_user.id}/deactivate", headers=admin_headers)
    assert response.status_code == 204

    me = await client.get("/api/v1/auth/me", headers=auth_headers)
    assert me.status_code == 403

    await client.patch(f"/api/v1/admin/users/{homeowner_user.id}/activate", headers=admin_headers)
    me = await client.get("/api/v1/auth/me", headers=auth_headers)
    assert me.status_code == 200


@pytest.mark.asyncio
async def test_user_activation_is_audited(client, admin_headers, admin_user, homeowner_user):
    await client.patch(f"/api/v1/admin/users/{homeowner_user.id}/deactivate", headers=admin_headers)
    await client.patch(f"/api/v1/admin/users/{homeowner_user.id}/activate", headers=admin_headers)

    response = await client.get(
        "/api/v1/admin/audit-log",
        headers=admin_headers,
        params={"entity_type": "user", "entity_id": str(homeowner_user.id)},
    )
    items = response.json()["items"]
    assert sorted(i["action"] for i in items) == ["activate", "deactivate"]
    assert all(i["actor_id"] == str(admin_user.id) for i in items)
    deactivated = next(i for i in items if i["action"] == "deactivate")
    assert deactivated["diff"] == {"is_active": {"from": True, "to": False}}


@pytest.mark.asyncio
async def test_audit_rows_carry_client_ip(client, admin_headers, project):
    response = await client.get(
        "/api/v1/admin/audit-log",
        headers=admin_headers,
        params={"entity_type": "project", "entity_id": project["id"]},
    )
    items = response.json()["items"]
    assert items
    # httpx's ASGI transport reports the caller as 127.0.0.1
    assert {i["ip_address"] for i in items} == {"127.0.0.1"}


EVIDENCE = {
    "description": "Cabinets and flooring removed, debris hauled",
    "photos": ["https://img.test/demo-1.jpg"],
}


async def _submit_demo(client, project, headers):
    demo = next(m for m in project["milestones"] if m["name"] == "Demo")
    response = await client.post(
        f"/api/v1/projects/{project['id']}/milestones/{demo['id']}/submit", headers=headers, json=EVIDENCE
    )
    assert response.status_code == 200, response.text
    return demo


@pytest.mark.asyncio
async def test_task_queue_lists_submitted_milestones(
    client, admin_headers, assigned_project, auth_headers, contractor_headers, fund_escrow,
):
    await fund_escrow(assigned_project["id"], auth_headers, 5000, "admin-tasks-1")
    demo = await _submit_demo(client, assigned_project, contractor_headers)

    response = await client.get("/api/v1/admin/tasks", headers=admin_headers)
    assert response.status_code == 200
    tasks = response.json()
    assert [t["id"] for t in tasks] == [demo["id"]]
    task = tasks[0]
    assert task["proof_photos"] == EVIDENCE["photos"]
    assert Decimal(task["escrow_pending"]) == Decimal("5000")
    assert task["creator"]["full_name"] == "Test Homeowner"
    assert task["worker"]["full_name"] == "Test Contractor"


@pytest.mark.asyncio
async def test_task_approve_releases_escrow(
    client, admin_headers, assigned_project, auth_headers, contractor_headers, fund_escrow,
):
    await fund_escrow(assigned_project["id"], auth_headers, 5000, "admin-tasks-2")
    demo = await _submit_demo(client, assigned_project, contractor_headers)

    decided = await client.post(
        f"/api/v1/admin/tasks/{demo['id']}/decision", headers=admin_headers, json={"decision": "APPROVE"}
    )
    assert decided.status_code == 200, decided.text
    assert decided.json()["status"] == "approved"

    escrow = (await client.get(f"/api/v1/projects/{assigned_project['id']}/escrow", headers=auth_headers)).json()
    assert Decimal(escrow["released"]) == Decimal("2500")
    assert (await client.get("/api/v1/admin/tasks", headers=admin_headers)).json() == []


@pytest.mark.asyncio
async def test_task_deny_rejects_with_note(client, admin_headers, assigned_project, contractor_headers):
    demo = await _submit_demo(client, assigned_project, contractor_headers)

    decided = await client.post(
        f"/api/v1/admin/tasks/{demo['id']}/decision",
        headers=admin_headers,
        json={"decision": "DENY", "note": "Photos do not show the work"},
    )
    assert decided.status_code == 200, decided.text
    assert decided.json()["status"] == "rejected"
    assert decided.json()["history"][-1]["reason"] == "Photos do not show the work"

    twice = await client.post(
        f"/api/v1/admin/tasks/{demo['id']}/decision", headers=admin_headers, json={"decision": "APPROVE"}
    )
    assert twice.status_code == 409


@pytest.mark.asyncio
async def test_task_review_requires_admin(client, auth_headers, assigned_project):
    demo = next(m for m in assigned_project["milestones"] if m["name"] == "Demo")
    assert (await client.get("/api/v1/admin/tasks", headers=auth_headers)).status_code == 403
    response = await client.post(
        f"/api/v1/admin/tasks/{demo['id']}/decision", headers=auth_headers, json={"decision": "APPROVE"}
    )
    assert response.status_code == 403
