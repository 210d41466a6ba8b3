import uuid

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.api.deps import get_db, require_role
from urbifix.api.v1.auth import UserResponse
from urbifix.common.enums import NotificationType, UserRole
from urbifix.common.exceptions import BadRequestError, NotFoundError
from urbifix.common.logging import get_logger
from urbifix.common.pagination import PageMeta, PaginatedResponse, PaginationParams, paginate
from urbifix.common.responses import ApiResponse
from urbifix.core.notifications.service import create_notification
from urbifix.core.stats.service import admin_stats
from urbifix.db.models.user import ProviderProfile, User

router = APIRouter(prefix="/admin", tags=["Admin"])
logger = get_logger("admin")


# ---------- Endpoints ----------


@router.get("/stats", response_model=ApiResponse[dict])
async def platform_stats(
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    return ApiResponse(data=await admin_stats(db))


@router.get("/users", response_model=PaginatedResponse[UserResponse])
async def list_users(
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
    role: UserRole | None = None,
    is_active: bool | None = None,
):
    query = select(User).where(User.is_deleted.is_(False))
    if role:
        query = query.where(User.role == role.value)
    if is_active is not None:
        query = query.where(User.is_active.is_(is_active))
    if params.search:
        term = f"%{params.search}%"
        query = query.where(User.full_name.ilike(term) | User.email.ilike(term))
    query = query.order_by(User.created_at.desc())

    items, total = await paginate(db, query, params, User)
    return PaginatedResponse[UserResponse](
        data=[UserResponse.model_validate(u) for u in items],
        pagination=PageMeta.build(params.page, params.limit, total),
    )


@router.patch("/users/{user_id}/activate", response_model=ApiResponse[UserResponse])
async def activate_user(
    user_id: uuid.UUID,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    user = await _set_active(db, user_id, True, current_user)
    return ApiResponse(message="User activated", data=UserResponse.model_validate(user))


@router.patch("/users/{user_id}/deactivate", response_model=ApiResponse[UserResponse])
async def deactivate_user(
    user_id: uuid.UUID,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    user = await _set_active(db, user_id, False, current_user)
    return ApiResponse(message="User deactivated", data=UserResponse.model_validate(user))


@router.patch("/providers/{provider_id}/verify", response_model=ApiResponse[dict])
async def verify_provider(
    provider_id: uuid.UUID,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    provider = await _get_user(db, provider_id)
    if provider.role != UserRole.PROVIDER.value:
        raise BadRequestError("User is not a provider")

    result = await db.execute(select(ProviderProfile).where(ProviderProfile.user_id == provider.id))
    profile = result.scalar_one_or_none()
    if profile is None:
        profile = ProviderProfile(user_id=provider.id)
        db.add(profile)
    profile.is_verified = True
    await db.flush()
    await db.refresh(profile)

    await create_notification(
        db,
        provider.id,
        NotificationType.PROVIDER_VERIFIED,
        "Your provider account is verified",
        "Consumers can now see you as a verified provider.",
        related_id=provider.id,
        related_type="provider",
    )
    logger.info("Provider %s verified by %s", provider.id, current_user.id)
    return ApiResponse(
        message="Provider verified",
        data={"provider_id": str(provider.id), "is_verified": profile.is_verified},
    )


async def _get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    result = await db.execute(select(User).where(User.id == user_id, User.is_deleted.is_(False)))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User", str(user_id))
    return user


async def _set_active(db: AsyncSession, user_id: uuid.UUID, active: bool, admin: User) -> User:
    user = await _get_user(db, user_id)
    if user.id == admin.id and not active:
        raise BadRequestError("Administrators cannot deactivate themselves")
    user.is_active = active
    await db.flush()
    await db.refresh(user)
    logger.info("User %s %s by %s", user.id, "activated" if active else "deactivated", admin.id)
    return user
