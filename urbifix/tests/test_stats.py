from datetime import datetime, timezone

import pytest

from urbifix.core.stats.service import average_rating, completion_rate, is_this_month


def test_completion_rate():
    assert completion_rate(0, 0) == 0.0
    assert completion_rate(1, 3) == 33.33
    assert completion_rate(4, 4) == 100.0


def test_average_rating_ignores_unrated():
    assert average_rating([]) == 0.0
    assert average_rating([None, 4, 5, None]) == 4.5


def test_is_this_month():
    now = datetime(2030, 3, 15, tzinfo=timezone.utc)
    assert is_this_month(datetime(2030, 3, 1), now)
    assert not is_this_month(datetime(2030, 2, 28, 23, 59, tzinfo=timezone.utc), now)
    assert not is_this_month(None, now)


@pytest.mark.asyncio
async def test_consumer_dashboard(client, consumer_headers, booking, category):
    await client.post(
        "/api/issues",
        headers=consumer_headers,
        json={"title": "Pothole", "description": "Deep", "category": "roads"},
    )
    response = await client.get("/api/dashboard", headers=consumer_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["role"] == "consumer"
    assert data["issues"]["open"] == 1
    assert data["issues"]["total"] == 1
    assert data["bookings"]["total"] == 1
    assert data["bookings"]["active"] == 1
    assert data["total_spent"] == "0.00"


@pytest.mark.asyncio
async def test_provider_dashboard(client, provider_headers, consumer_headers, booking):
    for status in ("confirmed", "in_progress", "completed"):
        await client.patch(
            f"/api/bookings/{booking['id']}", headers=provider_headers, json={"status": status}
        )
    await client.post(
        f"/api/bookings/{booking['id']}/review", headers=consumer_headers, json={"rating": 5}
    )

    response = await client.get("/api/dashboard", headers=provider_headers)
    data = response.json()["data"]
    assert data["role"] == "provider"
    assert data["bookings"]["completed"] == 1
    assert data["bookings"]["completed_this_month"] == 1
    assert data["earnings"]["total"] == "400.00"
    assert data["completion_rate"] == 100.0
    assert data["average_rating"] == 5.0


@pytest.mark.asyncio
async def test_admin_dashboard_is_platform_stats(client, admin_headers):
    response = await client.get("/api/dashboard", headers=admin_headers)
    assert response.status_code == 200
    assert "users" in response.json()["data"]
