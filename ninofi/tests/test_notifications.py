import pytest

from ninofi.common.enums import NotificationCategory
from ninofi.core.notifications.service import (
    create_notification,
    discard_pending_pushes,
    dispatch_pending_pushes,
    push_allowed,
)


@pytest.fixture
async def inbox(db_session, homeowner_user):
    notes = []
    for i in range(3):
        notes.append(await create_notification(
            db_session,
            user_id=homeowner_user.id,
            category=NotificationCategory.MILESTONE,
            title=f"Milestone update {i}",
            body="Demo is ready for review",
            data={"milestoneId": f"m-{i}"},
        ))
    await db_session.commit()
    return notes


@pytest.mark.asyncio
async def test_list_notifications_empty(client, auth_headers):
    response = await client.get("/api/v1/notifications", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 0
    assert data["unread_count"] == 0


@pytest.mark.asyncio
async def test_list_notifications(client, auth_headers, inbox):
    response = await client.get("/api/v1/notifications", headers=auth_headers)
    data = response.json()
    assert data["total"] == 3
    assert data["unread_count"] == 3
    assert {n["data"]["milestoneId"] for n in data["items"]} == {"m-0", "m-1", "m-2"}
    assert all(n["category"] == "milestone" for n in data["items"])


@pytest.mark.asyncio
async def test_list_by_user_id(client, auth_headers, contractor_headers, homeowner_user, inbox):
    own = await client.get(f"/api/v1/notifications/{homeowner_user.id}", headers=auth_headers)
    assert own.status_code == 200
    assert own.json()["total"] == 3

    other = await client.get(f"/api/v1/notifications/{homeowner_user.id}", headers=contractor_headers)
    assert other.status_code == 403


@pytest.mark.asyncio
async def test_admin_reads_any_inbox(client, admin_headers, homeowner_user, inbox):
    response = await client.get(f"/api/v1/notifications/{homeowner_user.id}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["total"] == 3


@pytest.mark.asyncio
async def test_mark_notification_read(client, auth_headers, inbox):
    response = await client.post(f"/api/v1/notifications/{inbox[0].id}/read", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["is_read"] is True

    listed = await client.get("/api/v1/notifications", headers=auth_headers)
    assert listed.json()["unread_count"] == 2


@pytest.mark.asyncio
async def test_cannot_read_someone_elses(client, contractor_headers, inbox):
    response = await client.post(f"/api/v1/notifications/{inbox[0].id}/read", headers=contractor_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_mark_many_read(client, auth_headers, contractor_headers, inbox):
    ids = [str(inbox[0].id), str(inbox[1].id)]

    # Another user's ids are ignored
    foreign = await client.post(
        "/api/v1/notifications/mark-read", headers=contractor_headers, json={"notification_ids": ids}
    )
    assert foreign.json()["updated"] == 0

    response = await client.post(
        "/api/v1/notifications/mark-read", headers=auth_headers, json={"notification_ids": ids}
    )
    assert response.status_code == 200
    assert response.json()["updated"] == 2

    unread = await client.get("/api/v1/notifications?unread_only=true", headers=auth_headers)
    assert [n["id"] for n in unread.json()["items"]] == [str(inbox[2].id)]


@pytest.mark.asyncio
async def test_mark_all_read(client, auth_headers, inbox):
    response = await client.post("/api/v1/notifications/read-all", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["updated"] == 3

    listed = await client.get("/api/v1/notifications", headers=auth_headers)
    assert listed.json()["unread_count"] == 0


@pytest.mark.asyncio
async def test_preferences(client, auth_headers):
    default = await client.get("/api/v1/notifications/preferences", headers=auth_headers)
    assert default.status_code == 200
    prefs = default.json()
    assert prefs["categories"]["escrow"] is True

    prefs["push_enabled"] = False
    prefs["categories"]["check_in"] = False
    updated = await client.put("/api/v1/notifications/preferences", headers=auth_headers, json=prefs)
    assert updated.status_code == 200

    stored = (await client.get("/api/v1/notifications/preferences", headers=auth_headers)).json()
    assert stored["push_enabled"] is False
    assert stored["categories"]["check_in"] is False
    assert stored["categories"]["milestone"] is True


def test_push_allowed_defaults_and_mutes():
    assert push_allowed(None, "escrow") is True
    assert push_allowed({"notifications": {"categories": {"escrow": False}}}, "escrow") is False
    assert push_allowed({"notifications": {"categories": {"escrow": False}}}, "milestone") is True
    assert push_allowed({"notifications": {"push_enabled": False}}, "milestone") is False


@pytest.mark.asyncio
async def test_muted_category_still_stored(client, auth_headers, homeowner_user, db_session, monkeypatch):
    pushed = []

    async def fake_notify(user_id, notification_type, data):
        pushed.append(notification_type)

    monkeypatch.setattr("ninofi.api.v1.ws.notify_user", fake_notify)

    homeowner_user.preferences = {"notifications": {"categories": {"escrow": False}}}
    await db_session.commit()

    for category in (NotificationCategory.ESCROW, NotificationCategory.MILESTONE):
        await create_notification(
            db_session, user_id=homeowner_user.id, category=category, title="Update", body="..."
        )
    await db_session.commit()
    await dispatch_pending_pushes(db_session)

    assert pushed == ["milestone"]
    listed = await client.get("/api/v1/notifications", headers=auth_headers)
    assert listed.json()["total"] == 2


@pytest.mark.asyncio
async def test_push_waits_for_commit(homeowner_user, db_session, monkeypatch):
    pushed = []

    async def fake_notify(user_id, notification_type, data):
        pushed.append((user_id, data["title"]))

    monkeypatch.setattr("ninofi.api.v1.ws.notify_user", fake_notify)

    await create_notification(
        db_session, user_id=homeowner_user.id, category=NotificationCategory.ESCROW,
        title="Escrow funded", body="...",
    )
    assert pushed == []

    await db_session.commit()
    assert await dispatch_pending_pushes(db_session) == 1
    assert pushed == [(str(homeowner_user.id), "Escrow funded")]
    assert await dispatch_pending_pushes(db_session) == 0


@pytest.mark.asyncio
async def test_rolled_back_notification_is_never_pushed(homeowner_user, db_session, monkeypatch):
    pushed = []

    async def fake_notify(user_id, notification_type, data):
        pushed.append(data["title"])

    monkeypatch.setattr("ninofi.api.v1.ws.notify_user", fake_notify)

    await create_notification(
        db_session, user_id=homeowner_user.id, category=NotificationCategory.MILESTONE,
        title="Payment released", body="...",
    )
    await db_session.rollback()
    discard_pending_pushes(db_session)

    assert await dispatch_pending_pushes(db_session) == 0
    assert pushed == []
