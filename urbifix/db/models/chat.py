import uuid

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from urbifix.common.enums import MessageType
from urbifix.db.base import BaseModel


class ChatRoom(BaseModel):
    __tablename__ = "chat_rooms"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bookings.id"), unique=True, nullable=False
    )
    consumer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    last_message_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    # {str(user_id): int}
    unread_counts: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def participants(self) -> list[uuid.UUID]:
        return [self.consumer_id, self.provider_id]

    def other_participant(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.provider_id if user_id == self.consumer_id else self.consumer_id


class Message(BaseModel):
    __tablename__ = "messages"

    chat_room_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("chat_rooms.id"), nullable=False, index=True
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    message_type: Mapped[MessageType] = mapped_column(
        String(30), nullable=False, default=MessageType.TEXT
    )
    # text / attachments / price_offer / schedule_modification, by message_type
    content: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    read_by: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)
    reply_to_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("messages.id"), nullable=True
    )
