import pytest


@pytest.mark.asyncio
async def test_admin_endpoints_require_admin(client, consumer_headers, provider_headers):
    for headers in (consumer_headers, provider_headers):
        response = await client.get("/api/admin/stats", headers=headers)
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_list_users_filters(client, admin_headers, consumer_user, provider_user, admin_user):
    everyone = await client.get("/api/admin/users", headers=admin_headers)
    assert everyone.json()["pagination"]["total"] == 3

    providers = await client.get("/api/admin/users?role=provider", headers=admin_headers)
    assert [u["id"] for u in providers.json()["data"]] == [str(provider_user.id)]

    searched = await client.get("/api/admin/users?search=consumer", headers=admin_headers)
    assert searched.json()["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_deactivate_and_reactivate(client, admin_headers, consumer_user, consumer_headers):
    off = await client.patch(f"/api/admin/users/{consumer_user.id}/deactivate", headers=admin_headers)
    assert off.status_code == 200
    assert off.json()["data"]["is_active"] is False

    blocked = await client.get("/api/auth/me", headers=consumer_headers)
    assert blocked.status_code == 403

    inactive = await client.get("/api/admin/users?is_active=false", headers=admin_headers)
    assert inactive.json()["pagination"]["total"] == 1

    on = await client.patch(f"/api/admin/users/{consumer_user.id}/activate", headers=admin_headers)
    assert on.json()["data"]["is_active"] is True
    assert (await client.get("/api/auth/me", headers=consumer_headers)).status_code == 200


@pytest.mark.asyncio
async def test_admin_cannot_deactivate_self(client, admin_headers, admin_user):
    response = await client.patch(f"/api/admin/users/{admin_user.id}/deactivate", headers=admin_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_verify_provider(client, admin_headers, provider_user, provider_headers, consumer_user):
    not_provider = await client.patch(
        f"/api/admin/providers/{consumer_user.id}/verify", headers=admin_headers
    )
    assert not_provider.status_code == 400

    verified = await client.patch(f"/api/admin/providers/{provider_user.id}/verify", headers=admin_headers)
    assert verified.status_code == 200
    assert verified.json()["data"]["is_verified"] is True

    listing = await client.get("/api/providers?verified=true")
    assert [p["id"] for p in listing.json()["data"]] == [str(provider_user.id)]

    notifications = await client.get("/api/notifications", headers=provider_headers)
    assert notifications.json()["data"][0]["type"] == "provider_verified"


@pytest.mark.asyncio
async def test_admin_stats(client, admin_headers, booking):
    response = await client.get("/api/admin/stats", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["users"]["consumer"] == 1
    assert data["users"]["provider"] == 1
    assert data["users"]["admin"] == 1
    assert data["users"]["total"] == 3
    assert data["bookings"]["pending"] == 1
    assert data["revenue"] == "0.00"
