"""Structured negotiation proposals on bookings."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.api.deps import get_current_user, get_db
from urbifix.common.dates import isoformat
from urbifix.common.enums import ProposalAction, ProposalStatus, ProposalType
from urbifix.common.pagination import PageMeta, PaginatedResponse, PaginationParams, paginate
from urbifix.common.responses import ApiResponse
from urbifix.core.bookings.service import get_booking_or_404
from urbifix.core.negotiation import service
from urbifix.db.models.proposal import Proposal
from urbifix.db.models.user import User

router = APIRouter(tags=["Proposals"])


# ---------- Schemas ----------


class ProposedChanges(BaseModel):
    price: Decimal | None = Field(default=None, gt=0)
    scheduled_date: datetime | None = None
    requirements: str | None = None


class ProposalCreate(BaseModel):
    proposal_type: ProposalType | None = None
    proposed_changes: ProposedChanges
    justification: str | None = Field(default=None, max_length=1000)
    expiration_hours: int | None = Field(default=None, ge=1)


class ProposalRespond(BaseModel):
    action: ProposalAction
    response_message: str | None = Field(default=None, max_length=1000)
    counter_proposal: ProposedChanges | None = None


class ProposalResponse(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    proposed_by_id: uuid.UUID
    proposed_to_id: uuid.UUID
    proposal_type: str
    status: str
    original_data: dict | None
    proposed_changes: dict
    justification: str | None
    response_message: str | None
    expires_at: str
    countered_by_id: uuid.UUID | None
    negotiation_history: list
    created_at: str


class RespondResult(BaseModel):
    proposal: ProposalResponse
    counter_proposal: ProposalResponse | None = None


# ---------- Endpoints ----------


@router.post(
    "/bookings/{booking_id}/proposals",
    response_model=ApiResponse[ProposalResponse],
    status_code=201,
)
async def create_proposal(
    booking_id: uuid.UUID,
    body: ProposalCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await get_booking_or_404(db, booking_id)
    proposal = await service.create_proposal(
        db,
        booking,
        current_user,
        body.proposed_changes.model_dump(exclude_none=True),
        justification=body.justification,
        proposal_type=body.proposal_type,
        expiration_hours=body.expiration_hours,
    )
    return ApiResponse(message="Proposal created successfully", data=proposal_response(proposal))


@router.get("/bookings/{booking_id}/proposals", response_model=ApiResponse[list[ProposalResponse]])
async def list_booking_proposals(
    booking_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await get_booking_or_404(db, booking_id)
    proposals = await service.list_booking_proposals(db, booking, current_user)
    return ApiResponse(data=[proposal_response(p) for p in proposals])


@router.get("/proposals", response_model=PaginatedResponse[ProposalResponse])
async def list_my_proposals(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
    type: Literal["sent", "received", "all"] = "all",
    status: ProposalStatus | None = None,
):
    await service.expire_stale_for_user(db, current_user.id)
    query = service.user_proposals_query(current_user.id, type, status.value if status else None)
    items, total = await paginate(db, query, params, Proposal)
    return PaginatedResponse[ProposalResponse](
        data=[proposal_response(p) for p in items],
        pagination=PageMeta.build(params.page, params.limit, total),
    )


@router.get("/proposals/{proposal_id}", response_model=ApiResponse[ProposalResponse])
async def get_proposal(
    proposal_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    proposal = await service.get_proposal(db, proposal_id, current_user)
    return ApiResponse(data=proposal_response(proposal))


@router.patch("/proposals/{proposal_id}/respond", response_model=ApiResponse[RespondResult])
async def respond_to_proposal(
    proposal_id: uuid.UUID,
    body: ProposalRespond,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    proposal = await service.get_proposal_or_404(db, proposal_id)
    proposal, counter = await service.respond_to_proposal(
        db,
        proposal,
        current_user,
        body.action,
        body.response_message,
        body.counter_proposal.model_dump(exclude_none=True) if body.counter_proposal else None,
    )
    if counter is not None:
        response.status_code = 201
    verb = {"accept": "accepted", "reject": "rejected", "counter": "countered"}[body.action.value]
    return ApiResponse(
        message=f"Proposal {verb} successfully",
        data=RespondResult(
            proposal=proposal_response(proposal),
            counter_proposal=proposal_response(counter) if counter else None,
        ),
    )


@router.patch("/proposals/{proposal_id}/cancel", response_model=ApiResponse[ProposalResponse])
async def cancel_proposal(
    proposal_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    proposal = await service.get_proposal_or_404(db, proposal_id)
    proposal = await service.cancel_proposal(db, proposal, current_user)
    return ApiResponse(message="Proposal cancelled successfully", data=proposal_response(proposal))


def proposal_response(p: Proposal) -> ProposalResponse:
    return ProposalResponse(
        id=p.id,
        booking_id=p.booking_id,
        proposed_by_id=p.proposed_by_id,
        proposed_to_id=p.proposed_to_id,
        proposal_type=p.proposal_type,
        status=p.status,
        original_data=p.original_data,
        proposed_changes=p.proposed_changes or {},
        justification=p.justification,
        response_message=p.response_message,
        expires_at=isoformat(p.expires_at),
        countered_by_id=p.countered_by_id,
        negotiation_history=p.negotiation_history or [],
        created_at=isoformat(p.created_at),
    )
