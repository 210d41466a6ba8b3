import pytest


async def _report_issue(client, headers, category="roads", **overrides):
    payload = {
        "title": "Pothole on Main St",
        "description": "Deep pothole near the bus stop",
        "category": category,
        "location": {"address": "Main St", "lat": 12.97, "lng": 77.59},
        "priority": "high",
    }
    payload.update(overrides)
    response = await client.post("/api/issues", headers=headers, json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.mark.asyncio
async def test_issue_full_workflow(
    client, consumer_headers, provider_headers, provider_user, other_consumer_headers, category
):
    issue = await _report_issue(client, consumer_headers)
    assert issue["status"] == "open"
    assert issue["category_id"] == str(category.id)
    assert issue["assigned_provider_id"] is None

    accepted = await client.patch(f"/api/issues/{issue['id']}/accept", headers=provider_headers)
    assert accepted.status_code == 200
    assert accepted.json()["data"]["status"] == "in_progress"
    assert accepted.json()["data"]["assigned_provider_id"] == str(provider_user.id)

    resolved = await client.patch(f"/api/issues/{issue['id']}/resolve", headers=provider_headers)
    assert resolved.status_code == 200
    assert resolved.json()["data"]["status"] == "resolved"
    assert resolved.json()["data"]["resolved_at"] is not None

    closed = await client.put(
        f"/api/issues/{issue['id']}", headers=consumer_headers, json={"status": "closed"}
    )
    assert closed.status_code == 200
    assert closed.json()["data"]["status"] == "closed"

    notifications = await client.get("/api/notifications", headers=consumer_headers)
    titles = [n["title"] for n in notifications.json()["data"]]
    assert "Your issue was accepted" in titles
    assert "Your issue was resolved" in titles


@pytest.mark.asyncio
async def test_create_issue_by_category_id(client, consumer_headers, category):
    issue = await _report_issue(client, consumer_headers, category=str(category.id))
    assert issue["category_id"] == str(category.id)


@pytest.mark.asyncio
async def test_create_issue_unknown_category(client, consumer_headers, category):
    response = await client.post(
        "/api/issues",
        headers=consumer_headers,
        json={"title": "Broken light", "description": "Dark street", "category": "lighting"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_issue_inactive_category(client, db_session, consumer_headers, category):
    category.is_active = False
    await db_session.flush()
    response = await client.post(
        "/api/issues",
        headers=consumer_headers,
        json={"title": "Pothole", "description": "Deep", "category": "roads"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_provider_cannot_report_issue(client, provider_headers, category):
    response = await client.post(
        "/api/issues",
        headers=provider_headers,
        json={"title": "Pothole", "description": "Deep", "category": "roads"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_consumer_lists_only_own_issues(
    client, consumer_headers, other_consumer_headers, provider_headers, category
):
    await _report_issue(client, consumer_headers)
    await _report_issue(client, other_consumer_headers, title="Broken drain")

    mine = await client.get("/api/issues", headers=consumer_headers)
    assert mine.status_code == 200
    assert mine.json()["pagination"]["total"] == 1
    assert mine.json()["data"][0]["title"] == "Pothole on Main St"

    everything = await client.get("/api/issues", headers=provider_headers)
    assert everything.json()["pagination"]["total"] == 2


@pytest.mark.asyncio
async def test_list_issue_filters(client, consumer_headers, provider_headers, category):
    await _report_issue(client, consumer_headers, priority="low")
    await _report_issue(client, consumer_headers, title="Flooded underpass", priority="urgent")

    urgent = await client.get("/api/issues?priority=urgent", headers=provider_headers)
    assert [i["title"] for i in urgent.json()["data"]] == ["Flooded underpass"]

    by_slug = await client.get("/api/issues?category=roads", headers=provider_headers)
    assert by_slug.json()["pagination"]["total"] == 2

    searched = await client.get("/api/issues?search=flooded", headers=provider_headers)
    assert searched.json()["pagination"]["total"] == 1

    paged = await client.get("/api/issues?page=1&limit=1", headers=provider_headers)
    meta = paged.json()["pagination"]
    assert meta["total_pages"] == 2
    assert meta["has_next_page"] is True
    assert meta["has_prev_page"] is False


@pytest.mark.asyncio
async def test_consumer_cannot_read_foreign_issue(
    client, consumer_headers, other_consumer_headers, category
):
    issue = await _report_issue(client, consumer_headers)
    response = await client.get(f"/api/issues/{issue['id']}", headers=other_consumer_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_get_missing_issue(client, consumer_headers):
    response = await client.get(
        "/api/issues/00000000-0000-0000-0000-000000000000", headers=consumer_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_views_counted_once_per_viewer(
    client, consumer_headers, provider_headers, other_provider_headers, category
):
    issue = await _report_issue(client, consumer_headers)
    await client.get(f"/api/issues/{issue['id']}", headers=provider_headers)
    await client.get(f"/api/issues/{issue['id']}", headers=provider_headers)
    response = await client.get(f"/api/issues/{issue['id']}", headers=other_provider_headers)
    assert response.json()["data"]["views_count"] == 2


@pytest.mark.asyncio
async def test_upvote_toggles(client, consumer_headers, provider_headers, category):
    issue = await _report_issue(client, consumer_headers)

    first = await client.patch(f"/api/issues/{issue['id']}/upvote", headers=provider_headers)
    assert first.status_code == 200
    assert first.json()["data"] == {"upvotes": 1, "has_upvoted": True}

    second = await client.patch(f"/api/issues/{issue['id']}/upvote", headers=consumer_headers)
    assert second.json()["data"] == {"upvotes": 2, "has_upvoted": True}

    undo = await client.patch(f"/api/issues/{issue['id']}/upvote", headers=provider_headers)
    assert undo.json()["data"] == {"upvotes": 1, "has_upvoted": False}


@pytest.mark.asyncio
async def test_accept_twice_rejected(
    client, consumer_headers, provider_headers, other_provider_headers, category
):
    issue = await _report_issue(client, consumer_headers)
    ok = await client.patch(f"/api/issues/{issue['id']}/accept", headers=provider_headers)
    assert ok.status_code == 200
    again = await client.patch(f"/api/issues/{issue['id']}/accept", headers=other_provider_headers)
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_consumer_cannot_accept(client, consumer_headers, category):
    issue = await _report_issue(client, consumer_headers)
    response = await client.patch(f"/api/issues/{issue['id']}/accept", headers=consumer_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_assigns_provider(
    client, consumer_headers, admin_headers, provider_user, category
):
    issue = await _report_issue(client, consumer_headers)

    missing = await client.patch(f"/api/issues/{issue['id']}/accept", headers=admin_headers)
    assert missing.status_code == 400

    assigned = await client.patch(
        f"/api/issues/{issue['id']}/accept",
        headers=admin_headers,
        json={"provider_id": str(provider_user.id)},
    )
    assert assigned.status_code == 200
    assert assigned.json()["data"]["assigned_provider_id"] == str(provider_user.id)


@pytest.mark.asyncio
async def test_only_assignee_resolves(
    client, consumer_headers, provider_headers, other_provider_headers, category
):
    issue = await _report_issue(client, consumer_headers)
    unassigned = await client.patch(f"/api/issues/{issue['id']}/resolve", headers=provider_headers)
    assert unassigned.status_code == 403

    await client.patch(f"/api/issues/{issue['id']}/accept", headers=provider_headers)
    intruder = await client.patch(
        f"/api/issues/{issue['id']}/resolve", headers=other_provider_headers
    )
    assert intruder.status_code == 403

    resolved = await client.patch(f"/api/issues/{issue['id']}/resolve", headers=provider_headers)
    assert resolved.status_code == 200

    again = await client.patch(f"/api/issues/{issue['id']}/resolve", headers=provider_headers)
    assert again.status_code == 400
    assert "in-progress" in again.json()["message"]


@pytest.mark.asyncio
async def test_update_cannot_jump_to_provider_states(client, consumer_headers, category):
    issue = await _report_issue(client, consumer_headers)
    response = await client.put(
        f"/api/issues/{issue['id']}", headers=consumer_headers, json={"status": "resolved"}
    )
    assert response.status_code == 400

    fetched = await client.get(f"/api/issues/{issue['id']}", headers=consumer_headers)
    assert fetched.json()["data"]["status"] == "open"


@pytest.mark.asyncio
async def test_update_closed_issue_cannot_reopen(client, consumer_headers, category):
    issue = await _report_issue(client, consumer_headers)
    await client.put(f"/api/issues/{issue['id']}", headers=consumer_headers, json={"status": "closed"})
    response = await client.put(
        f"/api/issues/{issue['id']}", headers=consumer_headers, json={"status": "open"}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_fields(client, consumer_headers, category):
    issue = await _report_issue(client, consumer_headers)
    response = await client.put(
        f"/api/issues/{issue['id']}",
        headers=consumer_headers,
        json={"title": "Two potholes on Main St", "location": {"address": "Main St & 3rd"}},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["title"] == "Two potholes on Main St"
    assert data["location"]["address"] == "Main St & 3rd"
    assert data["description"] == "Deep pothole near the bus stop"


@pytest.mark.asyncio
async def test_delete_issue(client, consumer_headers, other_consumer_headers, category):
    issue = await _report_issue(client, consumer_headers)
    forbidden = await client.delete(f"/api/issues/{issue['id']}", headers=other_consumer_headers)
    assert forbidden.status_code == 403

    deleted = await client.delete(f"/api/issues/{issue['id']}", headers=consumer_headers)
    assert deleted.status_code == 200

    gone = await client.get(f"/api/issues/{issue['id']}", headers=consumer_headers)
    assert gone.status_code == 404
