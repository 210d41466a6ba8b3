"""In-app notifications written on lifecycle events."""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.common.enums import NotificationType
from urbifix.common.logging import get_logger
from urbifix.db.models.notification import Notification

logger = get_logger("notifications.service")

# related_type -> client route; chat rooms and provider profiles have no detail page
ACTION_ROUTES = {
    "issue": "/issues/{id}",
    "booking": "/bookings/{id}",
    "proposal": "/proposals/{id}",
}

TITLE_MAX = 500


def action_url_for(related_type: str | None, related_id: uuid.UUID | None) -> str | None:
    route = ACTION_ROUTES.get(related_type or "")
    if route is None or related_id is None:
        return None
    return route.format(id=related_id)


async def create_notification(
    db: AsyncSession,
    user_id: uuid.UUID,
    notification_type: NotificationType,
    title: str,
    body: str,
    related_id: uuid.UUID | None = None,
    related_type: str | None = None,
) -> Notification:
    """Queue a notification for ``user_id`` in the current transaction.

    The action link is derived from ``related_type``; rows are only visible to
    the recipient once the request commits.
    """
    notification = Notification(
        user_id=user_id,
        type=notification_type.value,
        title=title[:TITLE_MAX],
        body=body,
        related_id=related_id,
        related_type=related_type,
        action_url=action_url_for(related_type, related_id),
    )
    db.add(notification)
    await db.flush()

    logger.info(
        "Notified user %s: %s (%s %s)", user_id, notification_type.value, related_type, related_id
    )
    return notification
