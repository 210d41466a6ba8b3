import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.api.deps import get_current_user, get_db, require_role
from urbifix.common.enums import PriceUnit, UserRole
from urbifix.common.exceptions import BadRequestError, NotFoundError
from urbifix.common.pagination import PageMeta, PaginatedResponse, PaginationParams, paginate
from urbifix.common.responses import ApiResponse
from urbifix.core.authz.policy import authorize
from urbifix.db.models.catalog import Category, Service
from urbifix.db.models.user import User

router = APIRouter(prefix="/services", tags=["Services"])


# ---------- Schemas ----------


class ServiceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    category_id: uuid.UUID | None = None
    base_price: Decimal = Field(gt=0)
    price_unit: PriceUnit = PriceUnit.FIXED
    duration: str | None = None


class ServiceUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    category_id: uuid.UUID | None = None
    base_price: Decimal | None = Field(default=None, gt=0)
    price_unit: PriceUnit | None = None
    duration: str | None = None
    is_active: bool | None = None


class ServiceResponse(BaseModel):
    id: uuid.UUID
    provider_id: uuid.UUID
    category_id: uuid.UUID | None
    name: str
    description: str | None
    base_price: Decimal
    price_unit: str
    duration: str | None
    is_active: bool

    model_config = {"from_attributes": True}


# ---------- Endpoints ----------


@router.get("", response_model=PaginatedResponse[ServiceResponse])
async def list_services(
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
    category_id: uuid.UUID | None = None,
    provider_id: uuid.UUID | None = None,
):
    query = select(Service).where(Service.is_active.is_(True), Service.is_deleted.is_(False))
    if category_id:
        query = query.where(Service.category_id == category_id)
    if provider_id:
        query = query.where(Service.provider_id == provider_id)
    if params.search:
        term = f"%{params.search}%"
        query = query.where(or_(Service.name.ilike(term), Service.description.ilike(term)))
    query = query.order_by(Service.created_at.desc())

    items, total = await paginate(db, query, params, Service)
    return PaginatedResponse[ServiceResponse](
        data=[ServiceResponse.model_validate(s) for s in items],
        pagination=PageMeta.build(params.page, params.limit, total),
    )


@router.get("/{service_id}", response_model=ApiResponse[ServiceResponse])
async def get_service(service_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    service = await _get_service(db, service_id)
    return ApiResponse(data=ServiceResponse.model_validate(service))


@router.post("", response_model=ApiResponse[ServiceResponse], status_code=201)
async def create_service(
    body: ServiceCreate,
    current_user: User = Depends(require_role(UserRole.PROVIDER)),
    db: AsyncSession = Depends(get_db),
):
    if body.category_id:
        await _ensure_category(db, body.category_id)

    service = Service(
        provider_id=current_user.id,
        category_id=body.category_id,
        name=body.name,
        description=body.description,
        base_price=body.base_price,
        price_unit=body.price_unit.value,
        duration=body.duration,
    )
    db.add(service)
    await db.flush()
    await db.refresh(service)
    return ApiResponse(message="Service created successfully", data=ServiceResponse.model_validate(service))


@router.put("/{service_id}", response_model=ApiResponse[ServiceResponse])
async def update_service(
    service_id: uuid.UUID,
    body: ServiceUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = await _get_service(db, service_id)
    authorize(current_user, "service", "update", service)

    updates = body.model_dump(exclude_unset=True)
    if updates.get("category_id"):
        await _ensure_category(db, updates["category_id"])
    if "price_unit" in updates and updates["price_unit"] is not None:
        updates["price_unit"] = updates["price_unit"].value
    for field, value in updates.items():
        setattr(service, field, value)

    await db.flush()
    await db.refresh(service)
    return ApiResponse(message="Service updated successfully", data=ServiceResponse.model_validate(service))


@router.delete("/{service_id}", response_model=ApiResponse[None])
async def delete_service(
    service_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = await _get_service(db, service_id)
    authorize(current_user, "service", "delete", service)
    service.soft_delete()
    await db.flush()
    return ApiResponse(message="Service deleted successfully")


async def _get_service(db: AsyncSession, service_id: uuid.UUID) -> Service:
    result = await db.execute(
        select(Service).where(Service.id == service_id, Service.is_deleted.is_(False))
    )
    service = result.scalar_one_or_none()
    if not service:
        raise NotFoundError("Service", str(service_id))
    return service


async def _ensure_category(db: AsyncSession, category_id: uuid.UUID) -> None:
    result = await db.execute(
        select(Category).where(
            Category.id == category_id,
            Category.is_active.is_(True),
            Category.is_deleted.is_(False),
        )
    )
    if not result.scalar_one_or_none():
        raise BadRequestError("Invalid or inactive category")
