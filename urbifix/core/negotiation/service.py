"""Negotiation engine.

A Proposal is the single source of truth for price, schedule and
requirement changes on a booking. Chat price offers and schedule
modifications create and answer proposals through these same functions.
Expiry is lazy: a pending proposal past ``expires_at`` is flipped to
``expired`` the next time it is read or answered.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.common.dates import as_utc, isoformat, utcnow
from urbifix.common.enums import (
    BookingStatus,
    MessageType,
    NotificationType,
    ProposalAction,
    ProposalStatus,
    ProposalType,
)
from urbifix.common.exceptions import BadRequestError, NotFoundError
from urbifix.common.logging import get_logger
from urbifix.config import settings
from urbifix.core.authz.policy import authorize
from urbifix.core.bookings.lifecycle import NEGOTIABLE_STATUSES, ensure_transition
from urbifix.core.bookings.service import get_booking_or_404, history_entry
from urbifix.core.chat.messages import post_message, room_for_booking
from urbifix.core.notifications.service import create_notification
from urbifix.db.locking import flush_versioned
from urbifix.db.models.booking import Booking
from urbifix.db.models.proposal import Proposal
from urbifix.db.models.user import User

logger = get_logger("negotiation.service")

CHANGE_FIELDS = ("price", "scheduled_date", "requirements")


# ---------- Helpers ----------

def normalize_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Validate proposed changes and convert them to JSON-safe values."""
    cleaned = {k: changes.get(k) for k in CHANGE_FIELDS if changes.get(k) not in (None, "")}
    if not cleaned:
        raise BadRequestError("Proposed changes must include a price, scheduled date or requirements")

    if "price" in cleaned:
        price = Decimal(str(cleaned["price"]))
        if price <= 0:
            raise BadRequestError("Proposed price must be greater than zero")
        cleaned["price"] = str(price)
    if "scheduled_date" in cleaned:
        when = cleaned["scheduled_date"]
        if isinstance(when, str):
            when = datetime.fromisoformat(when)
        cleaned["scheduled_date"] = isoformat(when)
    return cleaned


def infer_type(changes: dict[str, Any]) -> ProposalType:
    keys = set(changes)
    if len(keys) > 1:
        return ProposalType.COMPREHENSIVE
    return {
        "price": ProposalType.PRICE_CHANGE,
        "scheduled_date": ProposalType.SCHEDULE_CHANGE,
        "requirements": ProposalType.REQUIREMENT_CHANGE,
    }[keys.pop()]


def _history(action: str, actor_id: uuid.UUID, message: str | None, snapshot: dict | None = None) -> dict:
    return {
        "action": action,
        "performed_by": str(actor_id),
        "message": message,
        "snapshot": snapshot,
        "timestamp": isoformat(utcnow()),
    }


def _append_history(proposal: Proposal, entry: dict) -> None:
    proposal.negotiation_history = [*(proposal.negotiation_history or []), entry]


def _snapshot(booking: Booking) -> dict[str, Any]:
    return {
        "price": str(booking.original_amount or booking.total_amount),
        "total_amount": str(booking.total_amount),
        "scheduled_date": isoformat(booking.scheduled_date),
        "requirements": booking.notes,
    }


def _expiry(hours: int | None = None, until: datetime | None = None) -> datetime:
    now = utcnow()
    if until is not None:
        until = as_utc(until)
        if until <= now:
            raise BadRequestError("Expiry must be in the future")
        if until > now + timedelta(hours=settings.PROPOSAL_MAX_EXPIRY_HOURS):
            raise BadRequestError(
                f"Expiry cannot be more than {settings.PROPOSAL_MAX_EXPIRY_HOURS} hours away"
            )
        return until
    hours = settings.PROPOSAL_EXPIRY_HOURS if hours is None else hours
    if not 1 <= hours <= settings.PROPOSAL_MAX_EXPIRY_HOURS:
        raise BadRequestError(
            f"Expiration must be between 1 and {settings.PROPOSAL_MAX_EXPIRY_HOURS} hours"
        )
    return now + timedelta(hours=hours)


async def expire_if_stale(db: AsyncSession, proposal: Proposal) -> bool:
    """Flip a pending proposal past its deadline to ``expired``."""
    if proposal.status != ProposalStatus.PENDING.value:
        return False
    if as_utc(proposal.expires_at) > utcnow():
        return False
    proposal.status = ProposalStatus.EXPIRED.value
    _append_history(proposal, _history("expired", proposal.proposed_by_id, "Proposal expired"))
    await flush_versioned(db, "proposal")
    await db.refresh(proposal)
    logger.info("Proposal %s expired", proposal.id)
    return True


async def _expire_all(db: AsyncSession, proposals: list[Proposal]) -> None:
    for proposal in proposals:
        await expire_if_stale(db, proposal)


async def _ensure_answerable(db: AsyncSession, proposal: Proposal) -> None:
    if proposal.status != ProposalStatus.PENDING.value:
        raise BadRequestError("Proposal is no longer active")
    if await expire_if_stale(db, proposal):
        # Persist the expiry even though the request fails
        await db.commit()
        raise BadRequestError("Proposal has expired")


async def _announce(
    db: AsyncSession, booking: Booking, actor_id: uuid.UUID, text: str, proposal: Proposal
) -> None:
    room = await room_for_booking(db, booking.id)
    if room is None:
        return
    await post_message(
        db,
        room,
        actor_id,
        MessageType.SYSTEM,
        {"text": text, "proposal_id": str(proposal.id), "proposal_status": proposal.status},
    )


async def get_proposal_or_404(db: AsyncSession, proposal_id: uuid.UUID) -> Proposal:
    result = await db.execute(
        select(Proposal).where(Proposal.id == proposal_id, Proposal.is_deleted.is_(False))
    )
    proposal = result.scalar_one_or_none()
    if not proposal:
        raise NotFoundError("Proposal", str(proposal_id))
    return proposal


async def pending_proposals(db: AsyncSession, booking_id: uuid.UUID) -> list[Proposal]:
    result = await db.execute(
        select(Proposal).where(
            Proposal.booking_id == booking_id,
            Proposal.status == ProposalStatus.PENDING.value,
            Proposal.is_deleted.is_(False),
        )
    )
    return list(result.scalars().all())


# ---------- Operations ----------

async def create_proposal(
    db: AsyncSession,
    booking: Booking,
    actor: User,
    changes: dict[str, Any],
    justification: str | None = None,
    proposal_type: ProposalType | None = None,
    expiration_hours: int | None = None,
    expires_at: datetime | None = None,
    announce: bool = True,
) -> Proposal:
    authorize(actor, "booking", "negotiate", booking)
    if booking.status not in {s.value for s in NEGOTIABLE_STATUSES}:
        raise BadRequestError(f"Booking in status '{booking.status}' can no longer be negotiated")

    proposed_changes = normalize_changes(changes)
    deadline = _expiry(expiration_hours, expires_at)

    current = await pending_proposals(db, booking.id)
    await _expire_all(db, current)
    if any(p.status == ProposalStatus.PENDING.value for p in current):
        raise BadRequestError("A pending proposal already exists for this booking")

    proposed_to = booking.provider_id if actor.id == booking.consumer_id else booking.consumer_id
    proposal = Proposal(
        booking_id=booking.id,
        proposed_by_id=actor.id,
        proposed_to_id=proposed_to,
        proposal_type=(proposal_type or infer_type(proposed_changes)).value,
        status=ProposalStatus.PENDING.value,
        original_data=_snapshot(booking),
        proposed_changes=proposed_changes,
        justification=justification,
        expires_at=deadline,
        created_at=utcnow(),
        negotiation_history=[_history("created", actor.id, justification, proposed_changes)],
    )
    db.add(proposal)

    if booking.status == BookingStatus.PENDING.value:
        booking.status = ensure_transition(booking.status, BookingStatus.NEGOTIATING.value).value
    await flush_versioned(db, "booking")
    await db.refresh(proposal)
    await db.refresh(booking)

    await create_notification(
        db,
        proposed_to,
        NotificationType.PROPOSAL_UPDATE,
        "New proposal received",
        f"{actor.full_name} proposed changes to your booking",
        related_id=proposal.id,
        related_type="proposal",
    )
    if announce:
        await _announce(db, booking, actor.id, f"{actor.full_name} sent a new proposal", proposal)

    logger.info("Proposal %s created on booking %s by %s", proposal.id, booking.id, actor.id)
    return proposal


def _apply_to_booking(booking: Booking, proposal: Proposal, actor_id: uuid.UUID) -> None:
    changes = proposal.proposed_changes or {}
    data = dict(booking.negotiation_data or {})
    note = proposal.justification

    if changes.get("price") is not None:
        price = Decimal(changes["price"])
        booking.negotiated_amount = price
        booking.total_amount = price
        data["is_negotiated"] = True
        data["price_history"] = [
            *data.get("price_history", []),
            history_entry(price, proposal.proposed_by_id, note),
        ]
    if changes.get("scheduled_date"):
        when = datetime.fromisoformat(changes["scheduled_date"])
        booking.scheduled_date = when
        data["schedule_history"] = [
            *data.get("schedule_history", []),
            history_entry(when, proposal.proposed_by_id, note),
        ]
    if changes.get("requirements"):
        booking.notes = changes["requirements"]
        data["requirement_history"] = [
            *data.get("requirement_history", []),
            history_entry(changes["requirements"], proposal.proposed_by_id, note),
        ]
    data["accepted_by"] = str(actor_id)
    booking.negotiation_data = data


async def respond_to_proposal(
    db: AsyncSession,
    proposal: Proposal,
    actor: User,
    action: ProposalAction,
    response_message: str | None = None,
    counter_changes: dict[str, Any] | None = None,
    announce: bool = True,
) -> tuple[Proposal, Proposal | None]:
    """Accept, reject or counter. Returns (proposal, counter proposal or None)."""
    authorize(actor, "proposal", "respond", proposal)
    await _ensure_answerable(db, proposal)
    booking = await get_booking_or_404(db, proposal.booking_id)

    counter: Proposal | None = None
    if action == ProposalAction.ACCEPT:
        booking.status = ensure_transition(booking.status, BookingStatus.CONFIRMED.value).value
        _apply_to_booking(booking, proposal, actor.id)
        proposal.status = ProposalStatus.ACCEPTED.value
        proposal.response_message = response_message
        _append_history(
            proposal,
            _history("accepted", actor.id, response_message or "Proposal accepted", proposal.proposed_changes),
        )
        await flush_versioned(db, "proposal")

    elif action == ProposalAction.REJECT:
        proposal.status = ProposalStatus.REJECTED.value
        proposal.response_message = response_message
        _append_history(proposal, _history("rejected", actor.id, response_message or "Proposal rejected"))
        await flush_versioned(db, "proposal")

    else:
        if not counter_changes:
            raise BadRequestError("A counter proposal must include proposed changes")
        if booking.status not in {s.value for s in NEGOTIABLE_STATUSES}:
            raise BadRequestError(f"Booking in status '{booking.status}' can no longer be negotiated")
        changes = normalize_changes(counter_changes)
        proposal.status = ProposalStatus.COUNTERED.value
        proposal.response_message = response_message
        _append_history(proposal, _history("countered", actor.id, response_message or "Proposal countered"))
        await flush_versioned(db, "proposal")

        counter = Proposal(
            booking_id=proposal.booking_id,
            proposed_by_id=actor.id,
            proposed_to_id=proposal.proposed_by_id,
            proposal_type=proposal.proposal_type,
            status=ProposalStatus.PENDING.value,
            original_data=proposal.original_data,
            proposed_changes=changes,
            justification=response_message or "Counter proposal",
            expires_at=_expiry(),
            created_at=utcnow(),
            negotiation_history=[
                _history("created", actor.id, response_message or "Counter proposal created", changes)
            ],
        )
        db.add(counter)
        await db.flush()
        proposal.countered_by_id = counter.id
        await flush_versioned(db, "proposal")
        await db.refresh(counter)

    await db.refresh(proposal)
    await db.refresh(booking)

    verb = {"accept": "accepted", "reject": "rejected", "counter": "countered"}[action.value]
    await create_notification(
        db,
        proposal.proposed_by_id,
        NotificationType.PROPOSAL_UPDATE,
        f"Proposal {verb}",
        f"{actor.full_name} {verb} your proposal",
        related_id=(counter or proposal).id,
        related_type="proposal",
    )
    if announce:
        await _announce(db, booking, actor.id, f"{actor.full_name} {verb} the proposal", proposal)

    logger.info("Proposal %s %s by %s", proposal.id, verb, actor.id)
    return proposal, counter


async def cancel_proposal(db: AsyncSession, proposal: Proposal, actor: User) -> Proposal:
    authorize(actor, "proposal", "cancel", proposal)
    if proposal.status != ProposalStatus.PENDING.value:
        raise BadRequestError("Can only cancel pending proposals")

    proposal.status = ProposalStatus.CANCELLED.value
    _append_history(proposal, _history("cancelled", actor.id, "Proposal cancelled by creator"))
    await flush_versioned(db, "proposal")
    await db.refresh(proposal)
    logger.info("Proposal %s cancelled by %s", proposal.id, actor.id)
    return proposal


async def get_proposal(db: AsyncSession, proposal_id: uuid.UUID, actor: User) -> Proposal:
    proposal = await get_proposal_or_404(db, proposal_id)
    authorize(actor, "proposal", "read", proposal)
    await expire_if_stale(db, proposal)
    return proposal


async def list_booking_proposals(db: AsyncSession, booking: Booking, actor: User) -> list[Proposal]:
    authorize(actor, "booking", "read", booking)
    result = await db.execute(
        select(Proposal)
        .where(Proposal.booking_id == booking.id, Proposal.is_deleted.is_(False))
        .order_by(Proposal.created_at.desc())
    )
    proposals = list(result.scalars().all())
    await _expire_all(db, proposals)
    return proposals


async def expire_stale_for_user(db: AsyncSession, user_id: uuid.UUID) -> None:
    result = await db.execute(
        select(Proposal).where(
            or_(Proposal.proposed_by_id == user_id, Proposal.proposed_to_id == user_id),
            Proposal.status == ProposalStatus.PENDING.value,
            Proposal.expires_at <= utcnow(),
            Proposal.is_deleted.is_(False),
        )
    )
    await _expire_all(db, list(result.scalars().all()))


def user_proposals_query(user_id: uuid.UUID, direction: str = "all", status: str | None = None):
    if direction == "sent":
        condition = Proposal.proposed_by_id == user_id
    elif direction == "received":
        condition = Proposal.proposed_to_id == user_id
    else:
        condition = or_(Proposal.proposed_by_id == user_id, Proposal.proposed_to_id == user_id)
    query = select(Proposal).where(condition, Proposal.is_deleted.is_(False))
    if status:
        query = query.where(Proposal.status == status)
    return query.order_by(Proposal.created_at.desc())


async def negotiation_summary(db: AsyncSession, booking: Booking) -> dict[str, Any]:
    """Derive the chat's negotiation panel from the booking's proposals."""
    result = await db.execute(
        select(Proposal)
        .where(Proposal.booking_id == booking.id, Proposal.is_deleted.is_(False))
        .order_by(Proposal.created_at.asc())
    )
    proposals = list(result.scalars().all())
    await _expire_all(db, proposals)

    current = next((p for p in reversed(proposals) if p.status == ProposalStatus.PENDING.value), None)
    counter_ids = {p.countered_by_id for p in proposals if p.countered_by_id is not None}
    return {
        "original_price": str(booking.original_amount),
        "agreed_price": str(booking.negotiated_amount) if booking.negotiated_amount is not None else None,
        "current_offer": _offer(current) if current else None,
        "counter_offers": [_offer(p) for p in proposals if p.id in counter_ids],
        "total_proposals": len(proposals),
    }


def _offer(p: Proposal) -> dict[str, Any]:
    return {
        "proposal_id": str(p.id),
        "proposed_by": str(p.proposed_by_id),
        "price": (p.proposed_changes or {}).get("price"),
        "scheduled_date": (p.proposed_changes or {}).get("scheduled_date"),
        "status": p.status,
        "expires_at": isoformat(p.expires_at),
    }
