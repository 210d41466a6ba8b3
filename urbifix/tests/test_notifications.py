import uuid

import pytest

from urbifix.common.enums import NotificationType
from urbifix.core.notifications.service import action_url_for, create_notification


@pytest.fixture
async def notifications(db_session, consumer_user):
    created = []
    for title in ("First", "Second", "Third"):
        created.append(
            await create_notification(
                db_session,
                consumer_user.id,
                NotificationType.SYSTEM_ANNOUNCEMENT,
                title,
                f"{title} announcement",
            )
        )
    return created


@pytest.mark.asyncio
async def test_list_notifications(client, consumer_headers, notifications):
    response = await client.get("/api/notifications", headers=consumer_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 3
    assert body["unread_count"] == 3


@pytest.mark.asyncio
async def test_mark_read(client, consumer_headers, notifications):
    target = notifications[0]
    response = await client.post(f"/api/notifications/{target.id}/read", headers=consumer_headers)
    assert response.status_code == 200
    assert response.json()["data"]["is_read"] is True

    unread = await client.get("/api/notifications?unread_only=true", headers=consumer_headers)
    assert unread.json()["pagination"]["total"] == 2
    assert unread.json()["unread_count"] == 2


@pytest.mark.asyncio
async def test_cannot_read_someone_elses(client, provider_headers, notifications):
    response = await client.post(
        f"/api/notifications/{notifications[0].id}/read", headers=provider_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_mark_all_read(client, consumer_headers, notifications):
    response = await client.post("/api/notifications/read-all", headers=consumer_headers)
    assert response.status_code == 200
    assert response.json()["data"]["updated"] == 3

    listing = await client.get("/api/notifications", headers=consumer_headers)
    assert listing.json()["unread_count"] == 0


def test_action_url_follows_related_resource():
    related = uuid.uuid4()
    assert action_url_for("booking", related) == f"/bookings/{related}"
    assert action_url_for("proposal", related) == f"/proposals/{related}"
    assert action_url_for("chat", related) is None
    assert action_url_for(None, None) is None


@pytest.mark.asyncio
async def test_issue_notification_links_to_issue(client, consumer_headers, provider_headers, category):
    created = await client.post(
        "/api/issues",
        json={"title": "Broken bench", "description": "Slats missing", "category": category.slug},
        headers=consumer_headers,
    )
    issue_id = created.json()["data"]["id"]
    await client.patch(f"/api/issues/{issue_id}/accept", headers=provider_headers)

    listing = await client.get("/api/notifications", headers=consumer_headers)
    item = listing.json()["data"][0]
    assert item["related_type"] == "issue"
    assert item["action_url"] == f"/issues/{issue_id}"
