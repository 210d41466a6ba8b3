"""Service bookings between consumers and providers."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.api.deps import get_current_user, get_db, require_role
from urbifix.common.dates import isoformat
from urbifix.common.enums import BookingStatus, UserRole
from urbifix.common.pagination import PageMeta, PaginatedResponse, PaginationParams, paginate
from urbifix.common.responses import ApiResponse
from urbifix.core.authz.policy import authorize
from urbifix.core.bookings import service
from urbifix.db.models.booking import Booking
from urbifix.db.models.user import User

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# ---------- Schemas ----------


class BookingCreate(BaseModel):
    service_id: uuid.UUID
    provider_id: uuid.UUID
    scheduled_date: datetime
    scheduled_time: str | None = Field(default=None, max_length=20)
    location: dict | None = None
    notes: str | None = None
    issue_id: uuid.UUID | None = None


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    cancellation_reason: str | None = None


class PaymentRequest(BaseModel):
    transaction_id: str | None = None


class ReviewRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    review: str | None = Field(default=None, max_length=2000)


class BookingResponse(BaseModel):
    id: uuid.UUID
    consumer_id: uuid.UUID
    provider_id: uuid.UUID
    service_id: uuid.UUID
    issue_id: uuid.UUID | None
    chat_room_id: uuid.UUID | None
    scheduled_date: str
    scheduled_time: str | None
    location: dict | None
    notes: str | None
    status: str
    cancellation_reason: str | None
    total_amount: Decimal
    original_amount: Decimal
    negotiated_amount: Decimal | None
    payment_status: str
    transaction_id: str | None
    paid_at: str | None
    negotiation_data: dict | None
    rating: int | None
    review: str | None
    created_at: str
    updated_at: str


# ---------- Endpoints ----------


@router.get("/stats", response_model=ApiResponse[dict])
async def booking_stats(
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    return ApiResponse(data=await service.booking_stats(db))


@router.get("", response_model=PaginatedResponse[BookingResponse])
async def list_bookings(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
    status: BookingStatus | None = None,
):
    query = select(Booking).where(Booking.is_deleted.is_(False))
    if current_user.role == UserRole.CONSUMER.value:
        query = query.where(Booking.consumer_id == current_user.id)
    elif current_user.role == UserRole.PROVIDER.value:
        query = query.where(Booking.provider_id == current_user.id)
    if status:
        query = query.where(Booking.status == status.value)
    query = query.order_by(Booking.created_at.desc())

    items, total = await paginate(db, query, params, Booking)
    return PaginatedResponse[BookingResponse](
        data=[booking_response(b) for b in items],
        pagination=PageMeta.build(params.page, params.limit, total),
    )


@router.post("", response_model=ApiResponse[BookingResponse], status_code=201)
async def create_booking(
    body: BookingCreate,
    current_user: User = Depends(require_role(UserRole.CONSUMER)),
    db: AsyncSession = Depends(get_db),
):
    booking = await service.create_booking(
        db,
        current_user,
        service_id=body.service_id,
        provider_id=body.provider_id,
        scheduled_date=body.scheduled_date,
        scheduled_time=body.scheduled_time,
        location=body.location,
        notes=body.notes,
        issue_id=body.issue_id,
    )
    return ApiResponse(message="Booking created successfully", data=booking_response(booking))


@router.get("/{booking_id}", response_model=ApiResponse[BookingResponse])
async def get_booking(
    booking_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await service.get_booking_or_404(db, booking_id)
    authorize(current_user, "booking", "read", booking)
    return ApiResponse(data=booking_response(booking))


@router.patch("/{booking_id}", response_model=ApiResponse[BookingResponse])
async def update_booking_status(
    booking_id: uuid.UUID,
    body: BookingStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await service.get_booking_or_404(db, booking_id)
    booking = await service.update_status(
        db, booking, current_user, body.status, body.cancellation_reason
    )
    return ApiResponse(message="Booking status updated successfully", data=booking_response(booking))


@router.delete("/{booking_id}", response_model=ApiResponse[None])
async def delete_booking(
    booking_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await service.get_booking_or_404(db, booking_id)
    await service.delete_booking(db, booking, current_user)
    return ApiResponse(message="Booking deleted successfully")


@router.post("/{booking_id}/pay", response_model=ApiResponse[BookingResponse])
async def pay_booking(
    booking_id: uuid.UUID,
    body: PaymentRequest | None = None,
    current_user: User = Depends(require_role(UserRole.CONSUMER)),
    db: AsyncSession = Depends(get_db),
):
    booking = await service.get_booking_or_404(db, booking_id)
    booking = await service.pay_booking(
        db, booking, current_user, body.transaction_id if body else None
    )
    return ApiResponse(message="Payment successful", data=booking_response(booking))


@router.post("/{booking_id}/review", response_model=ApiResponse[BookingResponse])
async def review_booking(
    booking_id: uuid.UUID,
    body: ReviewRequest,
    current_user: User = Depends(require_role(UserRole.CONSUMER)),
    db: AsyncSession = Depends(get_db),
):
    booking = await service.get_booking_or_404(db, booking_id)
    booking = await service.review_booking(db, booking, current_user, body.rating, body.review)
    return ApiResponse(message="Review submitted", data=booking_response(booking))


def booking_response(b: Booking) -> BookingResponse:
    return BookingResponse(
        id=b.id,
        consumer_id=b.consumer_id,
        provider_id=b.provider_id,
        service_id=b.service_id,
        issue_id=b.issue_id,
        chat_room_id=b.chat_room_id,
        scheduled_date=isoformat(b.scheduled_date),
        scheduled_time=b.scheduled_time,
        location=b.location,
        notes=b.notes,
        status=b.status,
        cancellation_reason=b.cancellation_reason,
        total_amount=b.total_amount,
        original_amount=b.original_amount,
        negotiated_amount=b.negotiated_amount,
        payment_status=b.payment_status,
        transaction_id=b.transaction_id,
        paid_at=isoformat(b.paid_at),
        negotiation_data=b.negotiation_data,
        rating=b.rating,
        review=b.review,
        created_at=isoformat(b.created_at),
        updated_at=isoformat(b.updated_at),
    )
