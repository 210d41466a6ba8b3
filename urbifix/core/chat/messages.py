"""Low-level message posting shared by chat and negotiation."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.common.dates import isoformat, utcnow
from urbifix.common.enums import MessageType
from urbifix.db.models.chat import ChatRoom, Message


async def room_for_booking(db: AsyncSession, booking_id: uuid.UUID) -> ChatRoom | None:
    result = await db.execute(
        select(ChatRoom).where(ChatRoom.booking_id == booking_id, ChatRoom.is_deleted.is_(False))
    )
    return result.scalar_one_or_none()


async def post_message(
    db: AsyncSession,
    room: ChatRoom,
    sender_id: uuid.UUID,
    message_type: MessageType,
    content: dict[str, Any],
    reply_to_id: uuid.UUID | None = None,
) -> Message:
    """Append a message and bump the other participant's unread counter."""
    message = Message(
        chat_room_id=room.id,
        sender_id=sender_id,
        message_type=message_type.value,
        content=content,
        read_by=[{"user_id": str(sender_id), "read_at": isoformat(utcnow())}],
        reply_to_id=reply_to_id,
        # Sub-second ordering within a room
        created_at=utcnow(),
    )
    db.add(message)
    await db.flush()

    counts = dict(room.unread_counts or {})
    for participant in room.participants:
        if participant != sender_id:
            key = str(participant)
            counts[key] = counts.get(key, 0) + 1
    room.unread_counts = counts
    room.last_message_id = message.id
    await db.flush()
    await db.refresh(room)
    await db.refresh(message)
    return message
