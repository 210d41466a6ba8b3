import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from urbifix.common.enums import ProposalType
from urbifix.common.exceptions import BadRequestError
from urbifix.core.negotiation.service import get_proposal_or_404, infer_type, normalize_changes


async def _propose(client, booking_id, headers, **changes):
    return await client.post(
        f"/api/bookings/{booking_id}/proposals",
        headers=headers,
        json={"proposed_changes": changes or {"price": "500"}, "justification": "Extra material"},
    )


async def _respond(client, proposal_id, headers, action, **extra):
    return await client.patch(
        f"/api/proposals/{proposal_id}/respond", headers=headers, json={"action": action, **extra}
    )


def test_normalize_changes():
    cleaned = normalize_changes({"price": Decimal("500.00"), "requirements": ""})
    assert cleaned == {"price": "500.00"}
    assert infer_type(cleaned) == ProposalType.PRICE_CHANGE
    assert infer_type({"price": "1", "requirements": "x"}) == ProposalType.COMPREHENSIVE

    with pytest.raises(BadRequestError):
        normalize_changes({})
    with pytest.raises(BadRequestError):
        normalize_changes({"price": "-5"})


@pytest.mark.asyncio
async def test_price_negotiation_accepted(client, booking, provider_headers, consumer_headers):
    created = await _propose(client, booking["id"], provider_headers, price="500")
    assert created.status_code == 201
    proposal = created.json()["data"]
    assert proposal["status"] == "pending"
    assert proposal["proposal_type"] == "price_change"
    assert Decimal(proposal["original_data"]["price"]) == Decimal("400")

    negotiating = await client.get(f"/api/bookings/{booking['id']}", headers=consumer_headers)
    assert negotiating.json()["data"]["status"] == "negotiating"

    accepted = await _respond(client, proposal["id"], consumer_headers, "accept")
    assert accepted.status_code == 200
    assert accepted.json()["data"]["proposal"]["status"] == "accepted"
    assert accepted.json()["data"]["counter_proposal"] is None

    confirmed = await client.get(f"/api/bookings/{booking['id']}", headers=consumer_headers)
    data = confirmed.json()["data"]
    assert data["status"] == "confirmed"
    assert Decimal(data["negotiated_amount"]) == Decimal("500")
    assert Decimal(data["total_amount"]) == Decimal("500")
    assert Decimal(data["original_amount"]) == Decimal("400")
    assert data["negotiation_data"]["is_negotiated"] is True
    assert len(data["negotiation_data"]["price_history"]) == 2


@pytest.mark.asyncio
async def test_schedule_and_requirements_applied(client, booking, provider_headers, consumer_headers):
    when = (datetime.now(timezone.utc) + timedelta(days=5)).replace(microsecond=0)
    created = await _propose(
        client,
        booking["id"],
        consumer_headers,
        scheduled_date=when.isoformat(),
        requirements="Also fix the kerb",
    )
    assert created.json()["data"]["proposal_type"] == "comprehensive"

    await _respond(client, created.json()["data"]["id"], provider_headers, "accept")
    fetched = await client.get(f"/api/bookings/{booking['id']}", headers=provider_headers)
    data = fetched.json()["data"]
    assert data["notes"] == "Also fix the kerb"
    assert datetime.fromisoformat(data["scheduled_date"]) == when
    assert data["negotiated_amount"] is None


@pytest.mark.asyncio
async def test_expired_proposal_cannot_be_accepted(
    client, db_session, booking, provider_headers, consumer_headers
):
    created = await _propose(client, booking["id"], provider_headers)
    proposal_id = created.json()["data"]["id"]

    proposal = await get_proposal_or_404(db_session, uuid.UUID(proposal_id))
    proposal.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    await db_session.flush()

    response = await _respond(client, proposal_id, consumer_headers, "accept")
    assert response.status_code == 400
    assert response.json()["message"] == "Proposal has expired"

    fetched = await client.get(f"/api/proposals/{proposal_id}", headers=consumer_headers)
    assert fetched.json()["data"]["status"] == "expired"

    still = await client.get(f"/api/bookings/{booking['id']}", headers=consumer_headers)
    assert still.json()["data"]["status"] == "negotiating"


@pytest.mark.asyncio
async def test_only_recipient_responds(client, booking, provider_headers, consumer_headers):
    created = await _propose(client, booking["id"], provider_headers)
    response = await _respond(client, created.json()["data"]["id"], provider_headers, "accept")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_outsider_cannot_propose(client, booking, other_provider_headers):
    response = await _propose(client, booking["id"], other_provider_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_one_pending_proposal_per_booking(client, booking, provider_headers, consumer_headers):
    assert (await _propose(client, booking["id"], provider_headers)).status_code == 201
    duplicate = await _propose(client, booking["id"], consumer_headers, price="450")
    assert duplicate.status_code == 400


@pytest.mark.asyncio
async def test_counter_proposal(client, booking, provider_headers, consumer_headers, consumer_user):
    created = await _propose(client, booking["id"], provider_headers, price="600")
    original_id = created.json()["data"]["id"]

    countered = await _respond(
        client,
        original_id,
        consumer_headers,
        "counter",
        response_message="Too high",
        counter_proposal={"price": "450"},
    )
    assert countered.status_code == 201
    result = countered.json()["data"]
    assert result["proposal"]["status"] == "countered"
    counter = result["counter_proposal"]
    assert counter["status"] == "pending"
    assert counter["proposed_by_id"] == str(consumer_user.id)
    assert result["proposal"]["countered_by_id"] == counter["id"]

    accepted = await _respond(client, counter["id"], provider_headers, "accept")
    assert accepted.status_code == 200
    fetched = await client.get(f"/api/bookings/{booking['id']}", headers=provider_headers)
    assert Decimal(fetched.json()["data"]["negotiated_amount"]) == Decimal("450")


@pytest.mark.asyncio
async def test_counter_keeps_original_proposal_type(client, booking, provider_headers, consumer_headers):
    created = await _propose(client, booking["id"], provider_headers, requirements="Bring a ladder")
    assert created.json()["data"]["proposal_type"] == "requirement_change"

    countered = await _respond(
        client,
        created.json()["data"]["id"],
        consumer_headers,
        "counter",
        counter_proposal={"price": "450"},
    )
    assert countered.status_code == 201
    assert countered.json()["data"]["counter_proposal"]["proposal_type"] == "requirement_change"


@pytest.mark.asyncio
async def test_cannot_counter_on_cancelled_booking(client, booking, provider_headers, consumer_headers):
    created = await _propose(client, booking["id"], provider_headers, price="600")
    proposal_id = created.json()["data"]["id"]

    cancelled = await client.patch(
        f"/api/bookings/{booking['id']}", headers=consumer_headers, json={"status": "cancelled"}
    )
    assert cancelled.status_code == 200

    countered = await _respond(
        client, proposal_id, consumer_headers, "counter", counter_proposal={"price": "450"}
    )
    assert countered.status_code == 400
    assert "can no longer be negotiated" in countered.json()["message"]

    fetched = await client.get(f"/api/proposals/{proposal_id}", headers=consumer_headers)
    assert fetched.json()["data"]["countered_by_id"] is None
    listing = await client.get(f"/api/bookings/{booking['id']}/proposals", headers=consumer_headers)
    assert len(listing.json()["data"]) == 1


@pytest.mark.asyncio
async def test_counter_requires_changes(client, booking, provider_headers, consumer_headers):
    created = await _propose(client, booking["id"], provider_headers)
    response = await _respond(client, created.json()["data"]["id"], consumer_headers, "counter")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_reject_keeps_booking_negotiating(client, booking, provider_headers, consumer_headers):
    created = await _propose(client, booking["id"], provider_headers)
    rejected = await _respond(client, created.json()["data"]["id"], consumer_headers, "reject")
    assert rejected.json()["data"]["proposal"]["status"] == "rejected"

    again = await _respond(client, created.json()["data"]["id"], consumer_headers, "accept")
    assert again.status_code == 400
    assert again.json()["message"] == "Proposal is no longer active"


@pytest.mark.asyncio
async def test_cancel_proposal(client, booking, provider_headers, consumer_headers):
    created = await _propose(client, booking["id"], provider_headers)
    proposal_id = created.json()["data"]["id"]

    not_mine = await client.patch(f"/api/proposals/{proposal_id}/cancel", headers=consumer_headers)
    assert not_mine.status_code == 403

    cancelled = await client.patch(f"/api/proposals/{proposal_id}/cancel", headers=provider_headers)
    assert cancelled.status_code == 200
    assert cancelled.json()["data"]["status"] == "cancelled"

    # Slot is free again
    assert (await _propose(client, booking["id"], consumer_headers)).status_code == 201


@pytest.mark.asyncio
async def test_cannot_negotiate_confirmed_booking(client, booking, provider_headers):
    await client.patch(
        f"/api/bookings/{booking['id']}", headers=provider_headers, json={"status": "confirmed"}
    )
    response = await _propose(client, booking["id"], provider_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_list_my_proposals(client, booking, provider_headers, consumer_headers):
    await _propose(client, booking["id"], provider_headers)

    sent = await client.get("/api/proposals?type=sent", headers=provider_headers)
    assert sent.json()["pagination"]["total"] == 1
    received = await client.get("/api/proposals?type=received", headers=provider_headers)
    assert received.json()["pagination"]["total"] == 0
    inbox = await client.get("/api/proposals?type=received&status=pending", headers=consumer_headers)
    assert inbox.json()["pagination"]["total"] == 1

    by_booking = await client.get(f"/api/bookings/{booking['id']}/proposals", headers=consumer_headers)
    assert len(by_booking.json()["data"]) == 1
