import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, Header, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.common.enums import UserRole
from urbifix.common.exceptions import AuthenticationError, PermissionDeniedError
from urbifix.common.security import decode_token
from urbifix.db.models.user import User


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.database.session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_current_user(
    authorization: str | None = Header(None, description="Bearer <token>"),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Not authorized, no token")

    token = authorization[len("Bearer "):]
    try:
        payload = decode_token(token)
    except ValueError:
        raise AuthenticationError("Not authorized, token failed")

    if payload.get("type") != "access":
        raise AuthenticationError("Invalid token type")

    user_id = payload.get("sub")
    try:
        user_uuid = uuid.UUID(user_id)
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token payload")

    result = await db.execute(
        select(User).where(User.id == user_uuid, User.is_deleted.is_(False))
    )
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("Not authorized, user not found")
    if not user.is_active:
        raise PermissionDeniedError("User account is inactive")
    # A role change since issuance invalidates the token
    if payload.get("role") != user.role:
        raise AuthenticationError("Token role no longer matches account")

    return user


def require_role(*roles: UserRole):
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in [r.value for r in roles]:
            raise PermissionDeniedError(
                f"User role {current_user.role} is not authorized to access this route"
            )
        return current_user

    return role_checker
