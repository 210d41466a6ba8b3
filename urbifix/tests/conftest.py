import os
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Cheap hashes for the test run; must be set before settings are imported
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from urbifix.common.enums import UserRole
from urbifix.common.security import create_access_token, get_password_hash
from urbifix.config import settings
from urbifix.db.base import Base
from urbifix.db.models import *  # noqa: F401,F403 - ensure all models loaded
from urbifix.db.models import Category, ProviderProfile, Service, User

# In-memory SQLite per test - remap JSONB to JSON
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(db_session):
    from urbifix.api.deps import get_db
    from urbifix.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    return tmp_path / "uploads"


async def _make_user(db_session, role: UserRole, name: str) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{role.value}_{uuid.uuid4().hex[:8]}@test.com",
        hashed_password=get_password_hash("testpass123"),
        full_name=name,
        role=role.value,
    )
    db_session.add(user)
    await db_session.flush()
    if role == UserRole.PROVIDER:
        db_session.add(ProviderProfile(user_id=user.id, business_name=f"{name} Works"))
        await db_session.flush()
    await db_session.refresh(user)
    return user


def headers_for(user: User) -> dict[str, str]:
    token = create_access_token({"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def consumer_user(db_session):
    return await _make_user(db_session, UserRole.CONSUMER, "Test Consumer")


@pytest.fixture
async def other_consumer(db_session):
    return await _make_user(db_session, UserRole.CONSUMER, "Other Consumer")


@pytest.fixture
async def provider_user(db_session):
    return await _make_user(db_session, UserRole.PROVIDER, "Test Provider")


@pytest.fixture
async def other_provider(db_session):
    return await _make_user(db_session, UserRole.PROVIDER, "Other Provider")


@pytest.fixture
async def admin_user(db_session):
    return await _make_user(db_session, UserRole.ADMIN, "Test Admin")


@pytest.fixture
def consumer_headers(consumer_user):
    return headers_for(consumer_user)


@pytest.fixture
def other_consumer_headers(other_consumer):
    return headers_for(other_consumer)


@pytest.fixture
def provider_headers(provider_user):
    return headers_for(provider_user)


@pytest.fixture
def other_provider_headers(other_provider):
    return headers_for(other_provider)


@pytest.fixture
def admin_headers(admin_user):
    return headers_for(admin_user)


@pytest.fixture
async def category(db_session):
    cat = Category(name="Roads", slug="roads", description="Road damage", icon="road")
    db_session.add(cat)
    await db_session.flush()
    await db_session.refresh(cat)
    return cat


@pytest.fixture
async def service(db_session, provider_user, category):
    svc = Service(
        provider_id=provider_user.id,
        category_id=category.id,
        name="Pothole patching",
        base_price=Decimal("400.00"),
        price_unit="per_visit",
    )
    db_session.add(svc)
    await db_session.flush()
    await db_session.refresh(svc)
    return svc


def future_date(days: int = 3) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


@pytest.fixture
async def booking(client, consumer_headers, provider_user, service):
    """A pending booking of ``service`` by the consumer."""
    response = await client.post(
        "/api/bookings",
        headers=consumer_headers,
        json={
            "service_id": str(service.id),
            "provider_id": str(provider_user.id),
            "scheduled_date": future_date(),
            "scheduled_time": "10:00",
            "notes": "Front gate pothole",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def booking_payload(provider_user, service):
    return {
        "service_id": str(service.id),
        "provider_id": str(provider_user.id),
        "scheduled_date": future_date(),
    }
