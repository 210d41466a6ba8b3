"""Explicit database handle: one engine and session factory per application."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from urbifix.common.logging import get_logger

logger = get_logger("db")


class Database:
    """Owns the engine and session factory.

    Created at application startup and disposed at shutdown, so tests and
    scripts can build their own instance against a different URL.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self.connect()
        return self._engine

    def connect(self) -> None:
        if self._engine is not None:
            return
        if self.url.startswith("sqlite"):
            self._engine = create_async_engine(self.url, echo=self.echo, poolclass=NullPool)
        else:
            self._engine = create_async_engine(self.url, echo=self.echo, pool_pre_ping=True)
        self._session_factory = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )
        logger.info("Database engine created (%s)", self._engine.url.render_as_string(hide_password=True))

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if self._session_factory is None:
            self.connect()
        async with self._session_factory() as session:
            yield session
