"""Notification API tests — inbox listing, read state, deletion, isolation.

Learn: `client` is authenticated as TEST_USER_ID. Another user's
notifications are created directly through the service and then
attacked through the API; every such attempt must look exactly like
a missing notification.
"""

import uuid

import pytest

from conftest import TEST_USER_ID
from tunetrace.services.notification_service import NotificationService


# ═══════════════════════════════════════════════════════════
# Listing + pagination
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_list_empty_inbox(client):
    r = await client.get("/api/notifications")
    assert r.status_code == 200
    assert r.json() == {"notifications": [], "totalPages": 0, "currentPage": 1, "total": 0}


@pytest.mark.asyncio
async def test_list_wire_shape(client, make_notifications):
    [created] = await make_notifications(TEST_USER_ID, 1)

    r = await client.get("/api/notifications")
    n = r.json()["notifications"][0]
    assert set(n) == {"_id", "type", "title", "message", "data", "isRead", "createdAt"}
    assert n["_id"] == str(created.id)
    assert n["type"] == "NEW_CONCERT"
    assert n["isRead"] is False
    assert n["data"] == {"index": 0}


@pytest.mark.asyncio
async def test_list_newest_first(client, make_notifications):
    await make_notifications(TEST_USER_ID, 3)

    r = await client.get("/api/notifications")
    messages = [n["message"] for n in r.json()["notifications"]]
    assert messages == ["Concert #2", "Concert #1", "Concert #0"]


@pytest.mark.asyncio
async def test_pagination_45_items(client, make_notifications):
    """45 notifications at 20 per page → pages of 20, 20, 5."""
    await make_notifications(TEST_USER_ID, 45)

    page1 = (await client.get("/api/notifications", params={"page": 1, "limit": 20})).json()
    page3 = (await client.get("/api/notifications", params={"page": 3, "limit": 20})).json()
    page4 = (await client.get("/api/notifications", params={"page": 4, "limit": 20})).json()

    assert len(page1["notifications"]) == 20
    assert len(page3["notifications"]) == 5
    assert page4["notifications"] == []
    assert page1["totalPages"] == page3["totalPages"] == 3
    assert page1["total"] == 45
    assert page3["currentPage"] == 3

    ids = {n["_id"] for n in page1["notifications"]} | {n["_id"] for n in page3["notifications"]}
    assert len(ids) == 25


@pytest.mark.asyncio
async def test_pagination_defaults(client, make_notifications):
    await make_notifications(TEST_USER_ID, 25)
    body = (await client.get("/api/notifications")).json()
    assert len(body["notifications"]) == 20
    assert body["currentPage"] == 1
    assert body["totalPages"] == 2


@pytest.mark.asyncio
async def test_invalid_page_is_400(client):
    r = await client.get("/api/notifications", params={"page": 0})
    assert r.status_code == 400
    assert "error" in r.json()


# ═══════════════════════════════════════════════════════════
# Read state
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_unread_count(client, make_notifications):
    await make_notifications(TEST_USER_ID, 3)
    r = await client.get("/api/notifications/unread-count")
    assert r.json() == {"count": 3}


@pytest.mark.asyncio
async def test_mark_read(client, make_notifications):
    first, _ = await make_notifications(TEST_USER_ID, 2)

    r = await client.patch(f"/api/notifications/{first.id}/read")
    assert r.status_code == 200
    n = r.json()["notification"]
    assert n["_id"] == str(first.id)
    assert n["isRead"] is True

    assert (await client.get("/api/notifications/unread-count")).json() == {"count": 1}

    # Marking again is harmless
    again = await client.patch(f"/api/notifications/{first.id}/read")
    assert again.status_code == 200
    assert (await client.get("/api/notifications/unread-count")).json() == {"count": 1}


@pytest.mark.asyncio
async def test_mark_all_read_then_count_is_zero(client, make_notifications):
    created = await make_notifications(TEST_USER_ID, 4)
    await client.patch(f"/api/notifications/{created[0].id}/read")

    r = await client.patch("/api/notifications/read-all")
    assert r.status_code == 200
    assert r.json() == {"message": "All notifications marked as read"}
    assert (await client.get("/api/notifications/unread-count")).json() == {"count": 0}

    # Idempotent
    await client.patch("/api/notifications/read-all")
    assert (await client.get("/api/notifications/unread-count")).json() == {"count": 0}


@pytest.mark.asyncio
async def test_mark_all_read_on_empty_inbox(client):
    r = await client.patch("/api/notifications/read-all")
    assert r.status_code == 200
    assert (await client.get("/api/notifications/unread-count")).json() == {"count": 0}


@pytest.mark.asyncio
async def test_mark_read_unknown_id(client):
    r = await client.patch(f"/api/notifications/{uuid.uuid4()}/read")
    assert r.status_code == 404
    assert r.json() == {"error": "Notification not found"}


@pytest.mark.asyncio
async def test_mark_read_malformed_id(client):
    r = await client.patch("/api/notifications/not-a-uuid/read")
    assert r.status_code == 404
    assert r.json() == {"error": "Notification not found"}


# ═══════════════════════════════════════════════════════════
# Delete
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_delete_notification(client, make_notifications):
    keep, drop = await make_notifications(TEST_USER_ID, 2)

    r = await client.delete(f"/api/notifications/{drop.id}")
    assert r.status_code == 200
    assert r.json() == {"message": "Notification deleted successfully"}

    body = (await client.get("/api/notifications")).json()
    assert [n["_id"] for n in body["notifications"]] == [str(keep.id)]

    again = await client.delete(f"/api/notifications/{drop.id}")
    assert again.status_code == 404


# ═══════════════════════════════════════════════════════════
# Cross-user isolation
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_list_never_returns_other_users_notifications(client, make_user, make_notifications):
    other_id, _ = await make_user()
    await make_notifications(other_id, 5, title="Theirs")
    await make_notifications(TEST_USER_ID, 2, title="Mine")

    body = (await client.get("/api/notifications", params={"limit": 100})).json()
    assert body["total"] == 2
    assert {n["title"] for n in body["notifications"]} == {"Mine"}
    assert (await client.get("/api/notifications/unread-count")).json() == {"count": 2}


@pytest.mark.asyncio
async def test_cannot_mark_or_delete_other_users_notification(
    client, make_user, make_notifications, session_factory
):
    other_id, _ = await make_user()
    [theirs] = await make_notifications(other_id, 1)

    r = await client.patch(f"/api/notifications/{theirs.id}/read")
    assert r.status_code == 404
    assert r.json() == {"error": "Notification not found"}

    r = await client.delete(f"/api/notifications/{theirs.id}")
    assert r.status_code == 404

    # Untouched for the owner
    async with session_factory() as session:
        row = await NotificationService(session).get_owned(other_id, theirs.id)
        assert row.is_read is False


@pytest.mark.asyncio
async def test_mark_all_read_only_touches_own(client, make_user, make_notifications, session_factory):
    other_id, _ = await make_user()
    await make_notifications(other_id, 3)
    await make_notifications(TEST_USER_ID, 3)

    await client.patch("/api/notifications/read-all")

    async with session_factory() as session:
        assert await NotificationService(session).unread_count(other_id) == 3
