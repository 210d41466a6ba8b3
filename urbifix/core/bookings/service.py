"""Booking workflow: creation, status changes, payment and review."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.common.dates import isoformat, utcnow
from urbifix.common.enums import BookingStatus, NotificationType, PaymentStatus, UserRole
from urbifix.common.exceptions import BadRequestError, NotFoundError
from urbifix.common.logging import get_logger
from urbifix.core.authz.policy import authorize
from urbifix.core.bookings.lifecycle import ACTIVE_STATUSES, PAYABLE_STATUSES, ensure_transition
from urbifix.core.notifications.service import create_notification
from urbifix.db.locking import flush_versioned
from urbifix.db.models.booking import Booking
from urbifix.db.models.catalog import Service
from urbifix.db.models.issue import Issue
from urbifix.db.models.user import ProviderProfile, User

logger = get_logger("bookings.service")


def history_entry(value: Any, proposed_by: uuid.UUID, message: str | None = None) -> dict[str, Any]:
    if isinstance(value, Decimal):
        value = str(value)
    elif isinstance(value, datetime):
        value = isoformat(value)
    return {
        "value": value,
        "proposed_by": str(proposed_by),
        "timestamp": isoformat(utcnow()),
        "message": message,
    }


async def get_booking_or_404(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    result = await db.execute(
        select(Booking).where(Booking.id == booking_id, Booking.is_deleted.is_(False))
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking", str(booking_id))
    return booking


async def _provider_profile(db: AsyncSession, user_id: uuid.UUID) -> ProviderProfile | None:
    result = await db.execute(select(ProviderProfile).where(ProviderProfile.user_id == user_id))
    return result.scalar_one_or_none()


async def create_booking(
    db: AsyncSession,
    consumer: User,
    *,
    service_id: uuid.UUID,
    provider_id: uuid.UUID,
    scheduled_date: datetime,
    scheduled_time: str | None = None,
    location: dict | None = None,
    notes: str | None = None,
    issue_id: uuid.UUID | None = None,
) -> Booking:
    service = (
        await db.execute(
            select(Service).where(Service.id == service_id, Service.is_deleted.is_(False))
        )
    ).scalar_one_or_none()
    if not service:
        raise NotFoundError("Service", str(service_id))
    if not service.is_active:
        raise BadRequestError("Service is not currently available")

    provider = (
        await db.execute(
            select(User).where(
                User.id == provider_id,
                User.role == UserRole.PROVIDER.value,
                User.is_deleted.is_(False),
            )
        )
    ).scalar_one_or_none()
    if not provider or not provider.is_active:
        raise NotFoundError("Provider", str(provider_id))
    if service.provider_id != provider.id:
        raise BadRequestError("The selected provider does not offer this service")

    if issue_id is not None:
        issue = (
            await db.execute(select(Issue).where(Issue.id == issue_id, Issue.is_deleted.is_(False)))
        ).scalar_one_or_none()
        if not issue:
            raise NotFoundError("Issue", str(issue_id))
        authorize(consumer, "issue", "read", issue)
        active = await db.execute(
            select(func.count()).select_from(Booking).where(
                Booking.issue_id == issue_id,
                Booking.is_deleted.is_(False),
                Booking.status.in_([s.value for s in ACTIVE_STATUSES]),
            )
        )
        if active.scalar():
            raise BadRequestError("An active booking already exists for this issue")

    amount = service.base_price
    booking = Booking(
        consumer_id=consumer.id,
        provider_id=provider.id,
        service_id=service.id,
        issue_id=issue_id,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        location=location or {},
        notes=notes,
        status=BookingStatus.PENDING.value,
        total_amount=amount,
        original_amount=amount,
        payment_status=PaymentStatus.PENDING.value,
        negotiation_data={
            "is_negotiated": False,
            "price_history": [history_entry(amount, consumer.id, "Initial price")],
            "schedule_history": [history_entry(scheduled_date, consumer.id, "Initial schedule")],
            "requirement_history": (
                [history_entry(notes, consumer.id, "Initial requirements")] if notes else []
            ),
        },
    )
    db.add(booking)
    await db.flush()

    await create_notification(
        db,
        provider.id,
        NotificationType.BOOKING_REQUEST,
        "New booking request",
        f"{consumer.full_name} requested '{service.name}'",
        related_id=booking.id,
        related_type="booking",
    )
    await db.refresh(booking)
    logger.info("Booking %s created by %s for provider %s", booking.id, consumer.id, provider.id)
    return booking


async def update_status(
    db: AsyncSession,
    booking: Booking,
    actor: User,
    requested: BookingStatus,
    cancellation_reason: str | None = None,
) -> Booking:
    authorize(actor, "booking", "update_status", booking, target_status=requested.value)
    previous = booking.status
    ensure_transition(previous, requested.value)

    booking.status = requested.value
    if requested == BookingStatus.CANCELLED:
        booking.cancellation_reason = cancellation_reason
    await flush_versioned(db, "booking")

    if requested == BookingStatus.COMPLETED:
        profile = await _provider_profile(db, booking.provider_id)
        if profile is not None:
            # SQL-side increment so concurrent completions are not lost
            profile.completed_jobs = ProviderProfile.completed_jobs + 1
            await db.flush()
            await db.refresh(profile)

    recipient = booking.provider_id if actor.id == booking.consumer_id else booking.consumer_id
    await create_notification(
        db,
        recipient,
        NotificationType.BOOKING_UPDATE,
        "Booking status updated",
        f"Booking moved from {previous} to {requested.value}",
        related_id=booking.id,
        related_type="booking",
    )
    await db.refresh(booking)
    logger.info("Booking %s: %s -> %s by %s", booking.id, previous, requested.value, actor.id)
    return booking


async def delete_booking(db: AsyncSession, booking: Booking, actor: User) -> None:
    authorize(actor, "booking", "delete", booking)
    if booking.status != BookingStatus.PENDING.value:
        raise BadRequestError(
            f"Only pending bookings can be deleted (current status: '{booking.status}')"
        )
    booking.soft_delete()
    await flush_versioned(db, "booking")
    logger.info("Booking %s deleted by %s", booking.id, actor.id)


async def pay_booking(
    db: AsyncSession, booking: Booking, actor: User, transaction_id: str | None = None
) -> Booking:
    authorize(actor, "booking", "pay", booking)
    if booking.status not in {s.value for s in PAYABLE_STATUSES}:
        raise BadRequestError(f"Cannot pay for a booking in status '{booking.status}'")
    if booking.payment_status != PaymentStatus.PENDING.value:
        raise BadRequestError("Booking has already been paid")

    booking.payment_status = PaymentStatus.PAID.value
    booking.transaction_id = transaction_id or f"txn_{uuid.uuid4().hex[:16]}"
    booking.paid_at = utcnow()
    await flush_versioned(db, "booking")

    await create_notification(
        db,
        booking.provider_id,
        NotificationType.PAYMENT_SUCCESS,
        "Payment received",
        f"Payment of {booking.total_amount} received for booking",
        related_id=booking.id,
        related_type="booking",
    )
    await db.refresh(booking)
    logger.info("Booking %s paid (%s)", booking.id, booking.transaction_id)
    return booking


async def review_booking(
    db: AsyncSession, booking: Booking, actor: User, rating: int, review: str | None
) -> Booking:
    authorize(actor, "booking", "review", booking)
    if booking.status != BookingStatus.COMPLETED.value:
        raise BadRequestError("Only completed bookings can be reviewed")
    if booking.rating is not None:
        raise BadRequestError("Booking has already been reviewed")

    booking.rating = rating
    booking.review = review
    await flush_versioned(db, "booking")

    avg = (
        await db.execute(
            select(func.avg(Booking.rating)).where(
                Booking.provider_id == booking.provider_id,
                Booking.rating.is_not(None),
                Booking.is_deleted.is_(False),
            )
        )
    ).scalar()
    profile = await _provider_profile(db, booking.provider_id)
    if profile is not None:
        profile.rating = round(float(avg or 0), 2)
        await db.flush()
        await db.refresh(profile)
    await db.refresh(booking)
    return booking


async def booking_stats(db: AsyncSession) -> dict[str, int]:
    live = Booking.is_deleted.is_(False)
    rows = await db.execute(
        select(Booking.status, func.count()).where(live).group_by(Booking.status)
    )
    by_status = {status: count for status, count in rows.all()}

    now = utcnow()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    async def created_since(since: datetime) -> int:
        q = select(func.count()).select_from(Booking).where(live, Booking.created_at >= since)
        return (await db.execute(q)).scalar() or 0

    stats = {"total": sum(by_status.values())}
    for status in BookingStatus:
        stats[status.value] = by_status.get(status.value, 0)
    stats["today"] = await created_since(midnight)
    stats["this_week"] = await created_since(now - timedelta(days=7))
    stats["this_month"] = await created_since(now - timedelta(days=30))
    return stats
