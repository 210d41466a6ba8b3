"""Booking chat: poll-based messages, offers and attachments."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.api.deps import get_current_user, get_db
from urbifix.common.dates import isoformat
from urbifix.common.enums import ProposalAction
from urbifix.common.exceptions import BadRequestError
from urbifix.common.pagination import PageMeta, PaginatedResponse
from urbifix.common.responses import ApiResponse
from urbifix.core.bookings.service import get_booking_or_404
from urbifix.core.chat import service
from urbifix.core.negotiation.service import negotiation_summary
from urbifix.db.models.chat import ChatRoom, Message
from urbifix.db.models.user import User
from urbifix.integrations.storage import StorageClient

router = APIRouter(prefix="/chat", tags=["Chat"])


# ---------- Schemas ----------


class MessageCreate(BaseModel):
    text: str = Field(min_length=1, max_length=5000)
    reply_to_id: uuid.UUID | None = None


class PriceOfferCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    description: str | None = Field(default=None, max_length=1000)
    valid_until: datetime | None = None


class PriceOfferRespond(BaseModel):
    action: ProposalAction
    message: str | None = Field(default=None, max_length=1000)


class ScheduleCreate(BaseModel):
    proposed_date: date
    proposed_time: str | None = Field(default=None, pattern=r"^\d{1,2}:\d{2}$")
    reason: str | None = Field(default=None, max_length=1000)


class MessageResponse(BaseModel):
    id: uuid.UUID
    chat_room_id: uuid.UUID
    sender_id: uuid.UUID
    message_type: str
    content: dict
    read_by: list
    reply_to_id: uuid.UUID | None
    created_at: str


class ChatRoomResponse(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    participants: list[uuid.UUID]
    last_message_id: uuid.UUID | None
    unread_count: int
    is_active: bool
    negotiation: dict | None = None


# ---------- Endpoints ----------


@router.get("/rooms", response_model=ApiResponse[list[ChatRoomResponse]])
async def list_rooms(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(service.user_rooms_query(current_user.id))
    rooms = result.scalars().all()
    return ApiResponse(data=[_room_response(r, current_user) for r in rooms])


@router.get("/room/{booking_id}", response_model=ApiResponse[ChatRoomResponse])
async def get_or_create_room(
    booking_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await get_booking_or_404(db, booking_id)
    room = await service.get_or_create_room(db, booking, current_user)
    summary = await negotiation_summary(db, booking)
    return ApiResponse(data=_room_response(room, current_user, summary))


@router.get("/room/{chat_room_id}/messages", response_model=PaginatedResponse[MessageResponse])
async def list_messages(
    chat_room_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    room = await service.get_room_or_404(db, chat_room_id)
    messages, total = await service.list_messages(db, room, current_user, page, limit)
    return PaginatedResponse[MessageResponse](
        data=[message_response(m) for m in messages],
        pagination=PageMeta.build(page, limit, total),
    )


@router.post(
    "/room/{chat_room_id}/messages",
    response_model=ApiResponse[MessageResponse],
    status_code=201,
)
async def send_message(
    chat_room_id: uuid.UUID,
    body: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    room = await service.get_room_or_404(db, chat_room_id)
    message = await service.send_text(db, room, current_user, body.text, body.reply_to_id)
    return ApiResponse(data=message_response(message))


@router.post(
    "/room/{chat_room_id}/price-offer",
    response_model=ApiResponse[MessageResponse],
    status_code=201,
)
async def send_price_offer(
    chat_room_id: uuid.UUID,
    body: PriceOfferCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    room = await service.get_room_or_404(db, chat_room_id)
    message = await service.send_price_offer(
        db, room, current_user, body.amount, body.description, body.valid_until
    )
    return ApiResponse(message="Price offer sent", data=message_response(message))


@router.post(
    "/room/{chat_room_id}/price-offer/{message_id}/respond",
    response_model=ApiResponse[MessageResponse],
)
async def respond_to_price_offer(
    chat_room_id: uuid.UUID,
    message_id: uuid.UUID,
    body: PriceOfferRespond,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    room = await service.get_room_or_404(db, chat_room_id)
    message = await service.respond_to_price_offer(
        db, room, message_id, current_user, body.action, body.message
    )
    return ApiResponse(data=message_response(message))


@router.post(
    "/room/{chat_room_id}/schedule",
    response_model=ApiResponse[MessageResponse],
    status_code=201,
)
async def send_schedule_modification(
    chat_room_id: uuid.UUID,
    body: ScheduleCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    room = await service.get_room_or_404(db, chat_room_id)
    message = await service.send_schedule_modification(
        db, room, current_user, body.proposed_date, body.proposed_time, body.reason
    )
    return ApiResponse(message="Schedule change proposed", data=message_response(message))


@router.post(
    "/room/{chat_room_id}/upload",
    response_model=ApiResponse[MessageResponse],
    status_code=201,
)
async def upload_file(
    chat_room_id: uuid.UUID,
    file: UploadFile = File(...),
    description: str | None = Form(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    room = await service.get_room_or_404(db, chat_room_id)
    if not file.filename:
        raise BadRequestError("No file uploaded")
    storage = StorageClient()
    content = await storage.read_upload(file)
    message = await service.upload_attachment(
        db, room, current_user, content, file.filename, file.content_type, description, storage
    )
    return ApiResponse(message="File uploaded", data=message_response(message))


def message_response(m: Message) -> MessageResponse:
    return MessageResponse(
        id=m.id,
        chat_room_id=m.chat_room_id,
        sender_id=m.sender_id,
        message_type=m.message_type,
        content=m.content or {},
        read_by=m.read_by or [],
        reply_to_id=m.reply_to_id,
        created_at=isoformat(m.created_at),
    )


def _room_response(room: ChatRoom, viewer: User, summary: dict | None = None) -> ChatRoomResponse:
    return ChatRoomResponse(
        id=room.id,
        booking_id=room.booking_id,
        participants=room.participants,
        last_message_id=room.last_message_id,
        unread_count=(room.unread_counts or {}).get(str(viewer.id), 0),
        is_active=room.is_active,
        negotiation=summary,
    )
