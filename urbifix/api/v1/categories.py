import re
import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.api.deps import get_db, require_role
from urbifix.common.enums import UserRole
from urbifix.common.exceptions import BadRequestError, NotFoundError
from urbifix.common.responses import ApiResponse
from urbifix.db.models.catalog import Category
from urbifix.db.models.user import User

router = APIRouter(prefix="/categories", tags=["Categories"])


# ---------- Schemas ----------


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    slug: str | None = None
    description: str | None = None
    icon: str | None = None


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    icon: str | None = None
    is_active: bool | None = None


class CategoryResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    description: str | None
    icon: str | None
    is_active: bool

    model_config = {"from_attributes": True}


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


# ---------- Endpoints ----------


@router.get("", response_model=ApiResponse[list[CategoryResponse]])
async def list_categories(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Category)
        .where(Category.is_active.is_(True), Category.is_deleted.is_(False))
        .order_by(Category.name)
    )
    return ApiResponse(data=[CategoryResponse.model_validate(c) for c in result.scalars().all()])


@router.post("", response_model=ApiResponse[CategoryResponse], status_code=201)
async def create_category(
    body: CategoryCreate,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    slug = slugify(body.slug or body.name)
    if not slug:
        raise BadRequestError("Category slug cannot be empty")

    existing = await db.execute(
        select(Category).where(or_(Category.name == body.name, Category.slug == slug))
    )
    if existing.scalar_one_or_none():
        raise BadRequestError("A category with this name or slug already exists")

    category = Category(name=body.name, slug=slug, description=body.description, icon=body.icon)
    db.add(category)
    await db.flush()
    await db.refresh(category)
    return ApiResponse(message="Category created successfully", data=CategoryResponse.model_validate(category))


@router.put("/{category_id}", response_model=ApiResponse[CategoryResponse])
async def update_category(
    category_id: uuid.UUID,
    body: CategoryUpdate,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    category = await _get_category(db, category_id)
    updates = body.model_dump(exclude_unset=True)
    if "name" in updates and updates["name"] != category.name:
        clash = await db.execute(
            select(Category).where(Category.name == updates["name"], Category.id != category.id)
        )
        if clash.scalar_one_or_none():
            raise BadRequestError("A category with this name already exists")
    for field, value in updates.items():
        setattr(category, field, value)
    await db.flush()
    await db.refresh(category)
    return ApiResponse(message="Category updated successfully", data=CategoryResponse.model_validate(category))


@router.delete("/{category_id}", response_model=ApiResponse[CategoryResponse])
async def deactivate_category(
    category_id: uuid.UUID,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    category = await _get_category(db, category_id)
    category.is_active = False
    await db.flush()
    await db.refresh(category)
    return ApiResponse(message="Category deactivated", data=CategoryResponse.model_validate(category))


async def _get_category(db: AsyncSession, category_id: uuid.UUID) -> Category:
    result = await db.execute(
        select(Category).where(Category.id == category_id, Category.is_deleted.is_(False))
    )
    category = result.scalar_one_or_none()
    if not category:
        raise NotFoundError("Category", str(category_id))
    return category
