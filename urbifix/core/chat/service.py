"""Per-booking chat rooms.

Price offers and schedule modifications are presentation over the
negotiation engine: each one creates a Proposal and a message that points
at it, and answering the message answers the proposal.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.common.dates import isoformat, utcnow
from urbifix.common.enums import MessageType, NotificationType, ProposalAction, ProposalType
from urbifix.common.exceptions import BadRequestError, NotFoundError
from urbifix.common.logging import get_logger
from urbifix.core.authz.policy import authorize
from urbifix.core.chat.messages import post_message, room_for_booking
from urbifix.core.negotiation import service as negotiation
from urbifix.core.notifications.service import create_notification
from urbifix.db.locking import flush_versioned
from urbifix.db.models.booking import Booking
from urbifix.db.models.chat import ChatRoom, Message
from urbifix.db.models.user import User
from urbifix.integrations.storage import StorageClient

logger = get_logger("chat.service")


async def get_room_or_404(db: AsyncSession, room_id: uuid.UUID) -> ChatRoom:
    result = await db.execute(
        select(ChatRoom).where(ChatRoom.id == room_id, ChatRoom.is_deleted.is_(False))
    )
    room = result.scalar_one_or_none()
    if not room:
        raise NotFoundError("Chat room", str(room_id))
    return room


async def get_or_create_room(db: AsyncSession, booking: Booking, actor: User) -> ChatRoom:
    room = await room_for_booking(db, booking.id)
    if room is not None:
        authorize(actor, "chat_room", "read", room)
        return room

    authorize(actor, "chat_room", "write", booking)
    room = ChatRoom(
        booking_id=booking.id,
        consumer_id=booking.consumer_id,
        provider_id=booking.provider_id,
        unread_counts={str(booking.consumer_id): 0, str(booking.provider_id): 0},
    )
    db.add(room)
    await db.flush()

    booking.chat_room_id = room.id
    await flush_versioned(db, "booking")
    await db.refresh(booking)
    await db.refresh(room)
    logger.info("Chat room %s opened for booking %s", room.id, booking.id)
    return room


def user_rooms_query(user_id: uuid.UUID):
    return (
        select(ChatRoom)
        .where(
            (ChatRoom.consumer_id == user_id) | (ChatRoom.provider_id == user_id),
            ChatRoom.is_active.is_(True),
            ChatRoom.is_deleted.is_(False),
        )
        .order_by(ChatRoom.updated_at.desc())
    )


async def list_messages(
    db: AsyncSession, room: ChatRoom, actor: User, page: int = 1, limit: int = 50
) -> tuple[list[Message], int]:
    """Return one page in chronological order and mark it read for the actor."""
    authorize(actor, "chat_room", "read", room)
    base = select(Message).where(Message.chat_room_id == room.id, Message.is_deleted.is_(False))
    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar() or 0

    result = await db.execute(
        base.order_by(Message.created_at.desc(), Message.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    messages = list(reversed(result.scalars().all()))

    if actor.id in room.participants:
        unread = await db.execute(base.where(Message.sender_id != actor.id))
        stamp = {"user_id": str(actor.id), "read_at": isoformat(utcnow())}
        for message in unread.scalars().all():
            readers = message.read_by or []
            if not any(r.get("user_id") == str(actor.id) for r in readers):
                message.read_by = [*readers, stamp]
        counts = dict(room.unread_counts or {})
        counts[str(actor.id)] = 0
        room.unread_counts = counts
        await db.flush()
        await db.refresh(room)

    return messages, total


async def _writable_room(db: AsyncSession, room: ChatRoom, actor: User) -> Booking:
    authorize(actor, "chat_room", "write", room)
    if not room.is_active:
        raise BadRequestError("Chat room is closed")
    result = await db.execute(select(Booking).where(Booking.id == room.booking_id))
    return result.scalar_one()


async def send_text(
    db: AsyncSession,
    room: ChatRoom,
    actor: User,
    text: str,
    reply_to_id: uuid.UUID | None = None,
) -> Message:
    await _writable_room(db, room, actor)
    if not text.strip():
        raise BadRequestError("Message text cannot be empty")
    if reply_to_id is not None:
        parent = await db.get(Message, reply_to_id)
        if parent is None or parent.chat_room_id != room.id:
            raise BadRequestError("Replies must reference a message in the same chat room")

    message = await post_message(db, room, actor.id, MessageType.TEXT, {"text": text}, reply_to_id)
    await create_notification(
        db,
        room.other_participant(actor.id),
        NotificationType.NEW_MESSAGE,
        f"New message from {actor.full_name}",
        text[:200],
        related_id=room.id,
        related_type="chat",
    )
    return message


async def send_price_offer(
    db: AsyncSession,
    room: ChatRoom,
    actor: User,
    amount: Decimal,
    description: str | None = None,
    valid_until: datetime | None = None,
) -> Message:
    booking = await _writable_room(db, room, actor)
    proposal = await negotiation.create_proposal(
        db,
        booking,
        actor,
        {"price": amount},
        justification=description,
        proposal_type=ProposalType.PRICE_CHANGE,
        expires_at=valid_until,
        announce=False,
    )
    return await post_message(
        db,
        room,
        actor.id,
        MessageType.PRICE_OFFER,
        {
            "text": description or "",
            "proposal_id": str(proposal.id),
            "price_offer": {
                "amount": proposal.proposed_changes["price"],
                "description": description or "",
                "valid_until": isoformat(proposal.expires_at),
            },
        },
    )


async def respond_to_price_offer(
    db: AsyncSession,
    room: ChatRoom,
    message_id: uuid.UUID,
    actor: User,
    action: ProposalAction,
    response_message: str | None = None,
) -> Message:
    await _writable_room(db, room, actor)
    if action not in (ProposalAction.ACCEPT, ProposalAction.REJECT):
        raise BadRequestError("Price offers can only be accepted or rejected")

    offer = await db.get(Message, message_id)
    if (
        offer is None
        or offer.chat_room_id != room.id
        or offer.message_type != MessageType.PRICE_OFFER.value
    ):
        raise NotFoundError("Price offer", str(message_id))

    proposal = await negotiation.get_proposal_or_404(db, uuid.UUID(offer.content["proposal_id"]))
    await negotiation.respond_to_proposal(
        db, proposal, actor, action, response_message, announce=False
    )

    verb = "accepted" if action == ProposalAction.ACCEPT else "rejected"
    text = f"Price offer {verb}."
    if response_message:
        text = f"{text} {response_message}"
    return await post_message(
        db,
        room,
        actor.id,
        MessageType.SYSTEM,
        {"text": text, "proposal_id": str(proposal.id), "proposal_status": proposal.status},
        reply_to_id=offer.id,
    )


def combine_schedule(proposed_date: date | datetime, proposed_time: str | None) -> datetime:
    if isinstance(proposed_date, datetime):
        when = proposed_date
    else:
        when = datetime.combine(proposed_date, time(0, 0))
    if proposed_time:
        try:
            hour, minute = (int(part) for part in proposed_time.split(":")[:2])
        except ValueError as e:
            raise BadRequestError("proposed_time must be HH:MM") from e
        when = when.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when


async def send_schedule_modification(
    db: AsyncSession,
    room: ChatRoom,
    actor: User,
    proposed_date: date | datetime,
    proposed_time: str | None = None,
    reason: str | None = None,
) -> Message:
    booking = await _writable_room(db, room, actor)
    when = combine_schedule(proposed_date, proposed_time)
    proposal = await negotiation.create_proposal(
        db,
        booking,
        actor,
        {"scheduled_date": when},
        justification=reason,
        proposal_type=ProposalType.SCHEDULE_CHANGE,
        announce=False,
    )
    return await post_message(
        db,
        room,
        actor.id,
        MessageType.SCHEDULE_MODIFICATION,
        {
            "text": reason or "",
            "proposal_id": str(proposal.id),
            "schedule_modification": {
                "proposed_date": isoformat(when),
                "proposed_time": proposed_time,
                "reason": reason or "",
            },
        },
    )


async def upload_attachment(
    db: AsyncSession,
    room: ChatRoom,
    actor: User,
    content: bytes,
    filename: str,
    content_type: str | None,
    description: str | None = None,
    storage: StorageClient | None = None,
) -> Message:
    await _writable_room(db, room, actor)
    stored = await (storage or StorageClient()).save(content, filename, content_type)
    kind = MessageType.IMAGE if (content_type or "").startswith("image/") else MessageType.DOCUMENT
    attachment: dict[str, Any] = {
        "type": kind.value,
        "url": stored["url"],
        "filename": filename,
        "size": stored["size"],
    }
    return await post_message(
        db, room, actor.id, kind, {"text": description or "", "attachments": [attachment]}
    )
