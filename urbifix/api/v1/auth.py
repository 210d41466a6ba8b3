import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.api.deps import get_current_user, get_db
from urbifix.common.enums import UserRole
from urbifix.common.exceptions import AuthenticationError, BadRequestError, PermissionDeniedError
from urbifix.common.logging import get_logger
from urbifix.common.responses import ApiResponse
from urbifix.common.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)
from urbifix.config import settings
from urbifix.db.models.user import ProviderProfile, User

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = get_logger("auth")


# ---------- Schemas ----------


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: str = Field(min_length=1, max_length=255)
    phone: str | None = None
    role: UserRole = UserRole.CONSUMER
    address: str | None = None
    business_name: str | None = None
    admin_code: str | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str
    phone: str | None
    role: str
    is_active: bool
    address: str | None

    model_config = {"from_attributes": True}


class AuthPayload(BaseModel):
    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


def issue_tokens(user: User) -> AuthPayload:
    claims = {"sub": str(user.id), "role": user.role}
    return AuthPayload(
        user=UserResponse.model_validate(user),
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token(claims),
    )


# ---------- Endpoints ----------


@router.post("/register", response_model=ApiResponse[AuthPayload], status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    if body.role == UserRole.ADMIN:
        if not settings.ADMIN_REGISTRATION_CODE or body.admin_code != settings.ADMIN_REGISTRATION_CODE:
            raise PermissionDeniedError("Invalid admin registration code")

    email = body.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise BadRequestError("An account with this email already exists")

    user = User(
        email=email,
        hashed_password=get_password_hash(body.password),
        full_name=body.full_name,
        phone=body.phone,
        role=body.role.value,
        address=body.address,
    )
    db.add(user)
    await db.flush()

    if body.role == UserRole.PROVIDER:
        db.add(ProviderProfile(user_id=user.id, business_name=body.business_name))
        await db.flush()

    await db.refresh(user)
    logger.info("Registered %s user %s", user.role, user.id)
    return ApiResponse(message="User registered successfully", data=issue_tokens(user))


@router.post("/login", response_model=ApiResponse[AuthPayload])
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(User).where(User.email == body.email.lower(), User.is_deleted.is_(False))
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(body.password, user.hashed_password):
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise PermissionDeniedError("Account is inactive")

    return ApiResponse(message="Login successful", data=issue_tokens(user))


@router.post("/refresh", response_model=ApiResponse[AuthPayload])
async def refresh_token(body: RefreshRequest, db: AsyncSession = Depends(get_db)):
    try:
        payload = decode_token(body.refresh_token)
    except ValueError:
        raise AuthenticationError("Invalid refresh token")

    if payload.get("type") != "refresh":
        raise AuthenticationError("Invalid token type")

    try:
        user_id = uuid.UUID(payload.get("sub"))
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token payload")

    result = await db.execute(
        select(User).where(User.id == user_id, User.is_deleted.is_(False))
    )
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise AuthenticationError("User not found")

    return ApiResponse(data=issue_tokens(user))


@router.get("/me", response_model=ApiResponse[UserResponse])
async def get_me(current_user: User = Depends(get_current_user)):
    return ApiResponse(data=UserResponse.model_validate(current_user))
