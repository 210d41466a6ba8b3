import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from urbifix.core.issues.crowdfunding import progress_percent


@pytest.fixture
async def issue(client, consumer_headers, category):
    response = await client.post(
        "/api/issues",
        headers=consumer_headers,
        json={"title": "Broken park bench", "description": "Splintered slats", "category": "roads"},
    )
    return response.json()["data"]


async def _enable(client, issue_id, headers, target="1000", **extra):
    return await client.post(
        f"/api/issues/{issue_id}/crowdfunding",
        headers=headers,
        json={"target_amount": target, **extra},
    )


def test_progress_percent():
    assert progress_percent(Decimal("250"), Decimal("1000")) == 25.0
    assert progress_percent(Decimal("1500"), Decimal("1000")) == 100.0
    assert progress_percent(Decimal("10"), None) == 0.0
    assert progress_percent(Decimal("1"), Decimal("3")) == 33.33


@pytest.mark.asyncio
async def test_enable_and_contribute(client, issue, consumer_headers, provider_headers):
    enabled = await _enable(client, issue["id"], consumer_headers)
    assert enabled.status_code == 200
    assert enabled.json()["data"]["is_enabled"] is True
    assert Decimal(enabled.json()["data"]["target_amount"]) == Decimal("1000")

    contribution = await client.post(
        f"/api/issues/{issue['id']}/crowdfunding/contribute",
        headers=provider_headers,
        json={"amount": "250", "message": "Happy to help"},
    )
    assert contribution.status_code == 201
    assert Decimal(contribution.json()["data"]["raised_amount"]) == Decimal("250")
    assert contribution.json()["data"]["transaction_id"].startswith("txn_")

    await client.post(
        f"/api/issues/{issue['id']}/crowdfunding/contribute",
        headers=consumer_headers,
        json={"amount": "150.50"},
    )

    details = await client.get(f"/api/issues/{issue['id']}/crowdfunding", headers=consumer_headers)
    data = details.json()["data"]
    assert Decimal(data["raised_amount"]) == Decimal("400.50")
    assert data["progress_percentage"] == 40.05
    assert data["contributors_count"] == 2
    assert data["is_expired"] is False

    notifications = await client.get("/api/notifications", headers=consumer_headers)
    assert "New contribution" in [n["title"] for n in notifications.json()["data"]]


@pytest.mark.asyncio
async def test_only_owner_enables(client, issue, other_consumer_headers, provider_headers):
    assert (await _enable(client, issue["id"], other_consumer_headers)).status_code == 403
    assert (await _enable(client, issue["id"], provider_headers)).status_code == 403


@pytest.mark.asyncio
async def test_enable_rejects_past_deadline(client, issue, consumer_headers):
    past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    response = await _enable(client, issue["id"], consumer_headers, deadline=past)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_enable_rejects_non_positive_target(client, issue, consumer_headers):
    response = await _enable(client, issue["id"], consumer_headers, target="0")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_contribute_requires_enabled(client, issue, provider_headers):
    response = await client.post(
        f"/api/issues/{issue['id']}/crowdfunding/contribute",
        headers=provider_headers,
        json={"amount": "10"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_contribute_after_deadline(client, db_session, issue, consumer_headers, provider_headers):
    from urbifix.core.issues.service import get_issue_or_404

    await _enable(client, issue["id"], consumer_headers)
    row = await get_issue_or_404(db_session, uuid.UUID(issue["id"]))
    row.crowdfunding_deadline = datetime.now(timezone.utc) - timedelta(hours=1)
    await db_session.flush()

    response = await client.post(
        f"/api/issues/{issue['id']}/crowdfunding/contribute",
        headers=provider_headers,
        json={"amount": "10"},
    )
    assert response.status_code == 400
    assert "deadline" in response.json()["message"]


@pytest.mark.asyncio
async def test_contribute_to_closed_issue(client, issue, consumer_headers, provider_headers):
    await _enable(client, issue["id"], consumer_headers)
    await client.put(f"/api/issues/{issue['id']}", headers=consumer_headers, json={"status": "closed"})
    response = await client.post(
        f"/api/issues/{issue['id']}/crowdfunding/contribute",
        headers=provider_headers,
        json={"amount": "10"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_duplicate_transaction_id(client, issue, consumer_headers, provider_headers):
    await _enable(client, issue["id"], consumer_headers)
    payload = {"amount": "10", "transaction_id": "txn_dup"}
    first = await client.post(
        f"/api/issues/{issue['id']}/crowdfunding/contribute", headers=provider_headers, json=payload
    )
    assert first.status_code == 201
    second = await client.post(
        f"/api/issues/{issue['id']}/crowdfunding/contribute", headers=provider_headers, json=payload
    )
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_anonymous_contributor_masked(
    client, issue, consumer_headers, provider_headers, provider_user, admin_headers
):
    await _enable(client, issue["id"], consumer_headers)
    await client.post(
        f"/api/issues/{issue['id']}/crowdfunding/contribute",
        headers=provider_headers,
        json={"amount": "75", "is_anonymous": True},
    )

    owner_view = await client.get(f"/api/issues/{issue['id']}/crowdfunding", headers=consumer_headers)
    entry = owner_view.json()["data"]["contributors"][0]
    assert entry["name"] == "Anonymous"
    assert entry["contributor_id"] is None

    own_view = await client.get(f"/api/issues/{issue['id']}/crowdfunding", headers=provider_headers)
    assert own_view.json()["data"]["contributors"][0]["contributor_id"] == str(provider_user.id)

    admin_view = await client.get(f"/api/issues/{issue['id']}/crowdfunding", headers=admin_headers)
    assert admin_view.json()["data"]["contributors"][0]["name"] == provider_user.full_name
