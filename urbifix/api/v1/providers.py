import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.api.deps import get_db, require_role
from urbifix.api.v1.services import ServiceResponse
from urbifix.common.enums import UserRole
from urbifix.common.exceptions import BadRequestError, NotFoundError
from urbifix.common.pagination import PageMeta, PaginatedResponse, PaginationParams, paginate
from urbifix.common.responses import ApiResponse
from urbifix.core.stats.service import provider_summary
from urbifix.db.models.catalog import Category, Service
from urbifix.db.models.user import ProviderProfile, User

router = APIRouter(prefix="/providers", tags=["Providers"])


# ---------- Schemas ----------


class ProviderResponse(BaseModel):
    id: uuid.UUID
    full_name: str
    email: str
    phone: str | None
    business_name: str | None
    description: str | None
    category_id: uuid.UUID | None
    is_verified: bool
    rating: float
    completed_jobs: int


class ProviderDetailResponse(ProviderResponse):
    services: list[ServiceResponse]
    stats: dict


class ProviderProfileUpdate(BaseModel):
    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    phone: str | None = None
    address: str | None = None
    business_name: str | None = None
    description: str | None = None
    category_id: uuid.UUID | None = None


# ---------- Endpoints ----------


@router.get("", response_model=PaginatedResponse[ProviderResponse])
async def list_providers(
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
    verified: bool | None = None,
    category_id: uuid.UUID | None = None,
):
    query = (
        select(ProviderProfile)
        .join(User, User.id == ProviderProfile.user_id)
        .where(
            ProviderProfile.is_deleted.is_(False),
            User.is_active.is_(True),
            User.is_deleted.is_(False),
        )
    )
    if verified is not None:
        query = query.where(ProviderProfile.is_verified.is_(verified))
    if category_id:
        query = query.where(ProviderProfile.category_id == category_id)
    if params.search:
        query = query.where(
            User.full_name.ilike(f"%{params.search}%")
            | ProviderProfile.business_name.ilike(f"%{params.search}%")
        )
    query = query.order_by(ProviderProfile.rating.desc(), ProviderProfile.created_at.desc())

    profiles, total = await paginate(db, query, params, ProviderProfile)
    users = await _users_by_id(db, [p.user_id for p in profiles])
    return PaginatedResponse[ProviderResponse](
        data=[_provider_response(users[p.user_id], p) for p in profiles],
        pagination=PageMeta.build(params.page, params.limit, total),
    )


@router.put("/me", response_model=ApiResponse[ProviderResponse])
async def update_my_profile(
    body: ProviderProfileUpdate,
    current_user: User = Depends(require_role(UserRole.PROVIDER)),
    db: AsyncSession = Depends(get_db),
):
    profile = await _profile_for(db, current_user.id, create=True)
    updates = body.model_dump(exclude_unset=True)

    if updates.get("category_id"):
        category = await db.execute(
            select(Category).where(Category.id == updates["category_id"], Category.is_active.is_(True))
        )
        if not category.scalar_one_or_none():
            raise BadRequestError("Invalid or inactive category")

    for field in ("full_name", "phone", "address"):
        if field in updates:
            setattr(current_user, field, updates.pop(field))
    for field, value in updates.items():
        setattr(profile, field, value)

    await db.flush()
    await db.refresh(current_user)
    await db.refresh(profile)
    return ApiResponse(message="Profile updated successfully", data=_provider_response(current_user, profile))


@router.get("/{provider_id}", response_model=ApiResponse[ProviderDetailResponse])
async def get_provider(provider_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(User).where(
            User.id == provider_id,
            User.role == UserRole.PROVIDER.value,
            User.is_deleted.is_(False),
        )
    )
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("Provider", str(provider_id))

    profile = await _profile_for(db, user.id)
    services = await db.execute(
        select(Service)
        .where(
            Service.provider_id == user.id,
            Service.is_active.is_(True),
            Service.is_deleted.is_(False),
        )
        .order_by(Service.created_at.desc())
    )
    base = _provider_response(user, profile)
    return ApiResponse(
        data=ProviderDetailResponse(
            **base.model_dump(),
            services=[ServiceResponse.model_validate(s) for s in services.scalars().all()],
            stats=await provider_summary(db, user.id),
        )
    )


async def _profile_for(db: AsyncSession, user_id: uuid.UUID, create: bool = False) -> ProviderProfile | None:
    result = await db.execute(select(ProviderProfile).where(ProviderProfile.user_id == user_id))
    profile = result.scalar_one_or_none()
    if profile is None and create:
        profile = ProviderProfile(user_id=user_id)
        db.add(profile)
        await db.flush()
        await db.refresh(profile)
    return profile


async def _users_by_id(db: AsyncSession, ids: list[uuid.UUID]) -> dict[uuid.UUID, User]:
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    return {u.id: u for u in result.scalars().all()}


def _provider_response(user: User, profile: ProviderProfile | None) -> ProviderResponse:
    return ProviderResponse(
        id=user.id,
        full_name=user.full_name,
        email=user.email,
        phone=user.phone,
        business_name=profile.business_name if profile else None,
        description=profile.description if profile else None,
        category_id=profile.category_id if profile else None,
        is_verified=profile.is_verified if profile else False,
        rating=profile.rating if profile else 0.0,
        completed_jobs=profile.completed_jobs if profile else 0,
    )
