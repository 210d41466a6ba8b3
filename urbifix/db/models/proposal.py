import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from urbifix.common.enums import ProposalStatus, ProposalType
from urbifix.db.base import BaseModel


class Proposal(BaseModel):
    __tablename__ = "proposals"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bookings.id"), nullable=False, index=True
    )
    proposed_by_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    proposed_to_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    proposal_type: Mapped[ProposalType] = mapped_column(String(30), nullable=False)
    status: Mapped[ProposalStatus] = mapped_column(
        String(20), nullable=False, default=ProposalStatus.PENDING, index=True
    )
    # {price, scheduled_date, requirements, total_amount}
    original_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=dict)
    # {price?, scheduled_date?, requirements?}
    proposed_changes: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    countered_by_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("proposals.id"), nullable=True
    )
    negotiation_history: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
