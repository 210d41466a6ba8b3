import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.api.deps import get_current_user, get_db
from urbifix.common.dates import isoformat
from urbifix.common.exceptions import NotFoundError
from urbifix.common.pagination import PageMeta, PaginatedResponse, PaginationParams, paginate
from urbifix.common.responses import ApiResponse
from urbifix.db.models.notification import Notification
from urbifix.db.models.user import User

router = APIRouter(prefix="/notifications", tags=["Notifications"])


# ---------- Schemas ----------


class NotificationResponse(BaseModel):
    id: uuid.UUID
    type: str
    title: str
    body: str
    related_id: uuid.UUID | None
    related_type: str | None
    action_url: str | None
    is_read: bool
    created_at: str


class NotificationListResponse(PaginatedResponse[NotificationResponse]):
    unread_count: int


# ---------- Endpoints ----------


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
    unread_only: bool = False,
):
    query = select(Notification).where(
        Notification.user_id == current_user.id,
        Notification.is_deleted.is_(False),
    )
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    query = query.order_by(Notification.created_at.desc())

    items, total = await paginate(db, query, params, Notification)

    unread = await db.execute(
        select(func.count()).select_from(Notification).where(
            Notification.user_id == current_user.id,
            Notification.is_read.is_(False),
            Notification.is_deleted.is_(False),
        )
    )

    return NotificationListResponse(
        data=[_notification_response(n) for n in items],
        pagination=PageMeta.build(params.page, params.limit, total),
        unread_count=unread.scalar() or 0,
    )


@router.post("/{notification_id}/read", response_model=ApiResponse[NotificationResponse])
async def mark_read(
    notification_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == current_user.id,
            Notification.is_deleted.is_(False),
        )
    )
    notification = result.scalar_one_or_none()
    if not notification:
        raise NotFoundError("Notification", str(notification_id))

    notification.is_read = True
    await db.flush()
    await db.refresh(notification)
    return ApiResponse(data=_notification_response(notification))


@router.post("/read-all", response_model=ApiResponse[dict])
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        update(Notification)
        .where(
            Notification.user_id == current_user.id,
            Notification.is_read.is_(False),
            Notification.is_deleted.is_(False),
        )
        .values(is_read=True)
        .execution_options(synchronize_session="fetch")
    )
    return ApiResponse(message="All notifications marked as read", data={"updated": result.rowcount})


def _notification_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=n.id,
        type=n.type,
        title=n.title,
        body=n.body,
        related_id=n.related_id,
        related_type=n.related_type,
        action_url=n.action_url,
        is_read=n.is_read,
        created_at=isoformat(n.created_at),
    )
