"""Read-side dashboard aggregates, computed per request."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.common.dates import as_utc, utcnow
from urbifix.common.enums import BookingStatus, IssueStatus, PaymentStatus, UserRole
from urbifix.core.bookings.lifecycle import ACTIVE_STATUSES
from urbifix.db.models.booking import Booking
from urbifix.db.models.issue import Issue
from urbifix.db.models.user import ProviderProfile, User


# ---------- Pure helpers ----------

def completion_rate(completed: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(completed / total * 100, 2)


def average_rating(ratings: Iterable[int | float | None]) -> float:
    values = [r for r in ratings if r is not None]
    if not values:
        return 0.0
    return round(sum(values) / len(values), 2)


def is_this_month(value: datetime | None, now: datetime | None = None) -> bool:
    if value is None:
        return False
    value = as_utc(value)
    now = now or utcnow()
    return value.year == now.year and value.month == now.month


def _sum(values: Iterable[Decimal | None]) -> str:
    return str(sum((v for v in values if v is not None), Decimal("0.00")))


# ---------- Aggregates ----------

async def _bookings(db: AsyncSession, **filters: Any) -> list[Booking]:
    query = select(Booking).where(Booking.is_deleted.is_(False))
    for column, value in filters.items():
        query = query.where(getattr(Booking, column) == value)
    return list((await db.execute(query)).scalars().all())


async def _issue_counts(db: AsyncSession, *conditions) -> dict[str, int]:
    rows = await db.execute(
        select(Issue.status, func.count())
        .where(Issue.is_deleted.is_(False), *conditions)
        .group_by(Issue.status)
    )
    by_status = {status: count for status, count in rows.all()}
    counts = {status.value: by_status.get(status.value, 0) for status in IssueStatus}
    counts["total"] = sum(by_status.values())
    return counts


async def consumer_dashboard(db: AsyncSession, user: User) -> dict[str, Any]:
    bookings = await _bookings(db, consumer_id=user.id)
    active = {s.value for s in ACTIVE_STATUSES}
    paid = [b for b in bookings if b.payment_status == PaymentStatus.PAID.value]
    return {
        "role": UserRole.CONSUMER.value,
        "issues": await _issue_counts(db, Issue.consumer_id == user.id),
        "bookings": {
            "total": len(bookings),
            "active": sum(1 for b in bookings if b.status in active),
            "completed": sum(1 for b in bookings if b.status == BookingStatus.COMPLETED.value),
            "this_month": sum(1 for b in bookings if is_this_month(b.updated_at)),
        },
        "total_spent": _sum(b.total_amount for b in paid),
    }


async def provider_dashboard(db: AsyncSession, user: User) -> dict[str, Any]:
    bookings = await _bookings(db, provider_id=user.id)
    completed = [b for b in bookings if b.status == BookingStatus.COMPLETED.value]
    completed_this_month = [b for b in completed if is_this_month(b.updated_at)]
    active = {BookingStatus.CONFIRMED.value, BookingStatus.IN_PROGRESS.value}

    issues = await _issue_counts(db, Issue.assigned_provider_id == user.id)
    return {
        "role": UserRole.PROVIDER.value,
        "bookings": {
            "total": len(bookings),
            "pending": sum(
                1 for b in bookings
                if b.status in (BookingStatus.PENDING.value, BookingStatus.NEGOTIATING.value)
            ),
            "active": sum(1 for b in bookings if b.status in active),
            "completed": len(completed),
            "completed_this_month": len(completed_this_month),
        },
        "earnings": {
            "total": _sum(b.total_amount for b in completed),
            "this_month": _sum(b.total_amount for b in completed_this_month),
        },
        "completion_rate": completion_rate(len(completed), len(bookings)),
        "average_rating": average_rating(b.rating for b in bookings),
        "issues": {
            "assigned": issues["total"],
            "in_progress": issues[IssueStatus.IN_PROGRESS.value],
            "resolved": issues[IssueStatus.RESOLVED.value],
        },
    }


async def admin_stats(db: AsyncSession) -> dict[str, Any]:
    user_rows = await db.execute(
        select(User.role, func.count()).where(User.is_deleted.is_(False)).group_by(User.role)
    )
    users = {role.value: 0 for role in UserRole}
    users.update({role: count for role, count in user_rows.all()})
    users["total"] = sum(users.values())

    booking_rows = await db.execute(
        select(Booking.status, func.count())
        .where(Booking.is_deleted.is_(False))
        .group_by(Booking.status)
    )
    bookings = {status.value: 0 for status in BookingStatus}
    bookings.update({status: count for status, count in booking_rows.all()})
    bookings["total"] = sum(bookings.values())

    verified = (
        await db.execute(
            select(func.count())
            .select_from(ProviderProfile)
            .where(ProviderProfile.is_verified.is_(True), ProviderProfile.is_deleted.is_(False))
        )
    ).scalar() or 0

    revenue = (
        await db.execute(
            select(func.coalesce(func.sum(Booking.total_amount), 0)).where(
                Booking.payment_status == PaymentStatus.PAID.value,
                Booking.is_deleted.is_(False),
            )
        )
    ).scalar()
    raised = (
        await db.execute(
            select(func.coalesce(func.sum(Issue.crowdfunding_raised), 0)).where(
                Issue.is_deleted.is_(False)
            )
        )
    ).scalar()

    return {
        "users": users,
        "verified_providers": verified,
        "issues": await _issue_counts(db),
        "bookings": bookings,
        "revenue": str(Decimal(str(revenue or 0)).quantize(Decimal("0.01"))),
        "crowdfunding_raised": str(Decimal(str(raised or 0)).quantize(Decimal("0.01"))),
    }


async def dashboard_for(db: AsyncSession, user: User) -> dict[str, Any]:
    if user.role == UserRole.PROVIDER.value:
        return await provider_dashboard(db, user)
    if user.role == UserRole.ADMIN.value:
        return await admin_stats(db)
    return await consumer_dashboard(db, user)


async def provider_summary(db: AsyncSession, provider_id: uuid.UUID) -> dict[str, Any]:
    """Public numbers shown on a provider's directory page."""
    bookings = await _bookings(db, provider_id=provider_id)
    completed = sum(1 for b in bookings if b.status == BookingStatus.COMPLETED.value)
    return {
        "total_bookings": len(bookings),
        "completed_bookings": completed,
        "completion_rate": completion_rate(completed, len(bookings)),
        "average_rating": average_rating(b.rating for b in bookings),
    }
