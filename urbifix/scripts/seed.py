"""
Seed script for Urbi-Fix.

Creates the base schema and a small set of demo data: one user per role,
the default issue categories and a couple of provider services.

Usage:
    python -m urbifix.scripts.seed
"""

import asyncio
from decimal import Decimal

from sqlalchemy import select

from urbifix.common.enums import PriceUnit, UserRole
from urbifix.common.logging import get_logger, setup_logging
from urbifix.common.security import get_password_hash
from urbifix.config import settings
from urbifix.db.base import Base
from urbifix.db.models import Category, ProviderProfile, Service, User
from urbifix.db.session import Database

logger = get_logger("seed")

CATEGORIES = [
    ("Roads", "roads", "Potholes, broken pavements and road damage", "road"),
    ("Garbage", "garbage", "Uncollected waste and illegal dumping", "trash"),
    ("Streetlights", "streetlights", "Broken or flickering street lighting", "lightbulb"),
    ("Water Supply", "water-supply", "Leaks, low pressure and contamination", "droplet"),
    ("Drainage", "drainage", "Blocked drains and waterlogging", "waves"),
]


async def main() -> None:
    setup_logging()
    database = Database(settings.DATABASE_URL)
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with database.session() as session:
        result = await session.execute(select(User).where(User.email == "admin@urbifix.dev"))
        if result.scalar_one_or_none() is not None:
            logger.info("Database already seeded -- skipping")
            await database.dispose()
            return

        password = get_password_hash("password123")
        admin = User(email="admin@urbifix.dev", hashed_password=password,
                     full_name="Platform Admin", role=UserRole.ADMIN.value)
        consumer = User(email="citizen@urbifix.dev", hashed_password=password,
                        full_name="Asha Citizen", role=UserRole.CONSUMER.value,
                        address="12 Main St")
        provider = User(email="fixer@urbifix.dev", hashed_password=password,
                        full_name="Ravi Fixer", role=UserRole.PROVIDER.value)
        session.add_all([admin, consumer, provider])

        categories = [
            Category(name=name, slug=slug, description=desc, icon=icon)
            for name, slug, desc, icon in CATEGORIES
        ]
        session.add_all(categories)
        await session.flush()

        session.add(ProviderProfile(
            user_id=provider.id, business_name="Ravi Road Works",
            category_id=categories[0].id, is_verified=True,
        ))
        session.add_all([
            Service(provider_id=provider.id, category_id=categories[0].id,
                    name="Pothole patching", base_price=Decimal("800.00"),
                    price_unit=PriceUnit.PER_VISIT.value, duration="2 hours"),
            Service(provider_id=provider.id, category_id=categories[4].id,
                    name="Drain unclogging", base_price=Decimal("450.00"),
                    price_unit=PriceUnit.FIXED.value, duration="1 hour"),
        ])
        await session.commit()

    await database.dispose()
    logger.info("Seeded %d categories and 3 demo users", len(CATEGORIES))


if __name__ == "__main__":
    asyncio.run(main())
