"""
Async SQLAlchemy engine, session factory and the declarative base.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import MetaData, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from orgchart.core.config import Settings, get_settings


NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory shared by the request path and the audit writer.

    Objects stay usable after commit so committed departments can be
    serialized without another round trip.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def _engine_options(settings: Settings, use_pool: bool) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.DEBUG}
    if use_pool:
        options.update(
            pool_size=settings.POSTGRES_POOL_SIZE,
            max_overflow=settings.POSTGRES_MAX_OVERFLOW,
            pool_pre_ping=True,
        )
    else:
        options["poolclass"] = NullPool
    return options


class Database:
    """Owns the engine and session factory of the department store."""

    def __init__(self):
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call connect() first.")
        return self._engine

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        if self._sessionmaker is None:
            raise RuntimeError("Database not initialized. Call connect() first.")
        return self._sessionmaker

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    async def connect(self, url: Optional[str] = None, use_pool: bool = True) -> None:
        """
        Create the engine and session factory.

        Args:
            url: Database URL; defaults to the configured PostgreSQL URL.
            use_pool: Set False for scripts and tests to get a NullPool.
        """
        settings = get_settings()
        self._engine = create_async_engine(
            url or settings.postgres_url, **_engine_options(settings, use_pool)
        )
        self._sessionmaker = build_session_factory(self._engine)

    async def disconnect(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None

    async def ping(self) -> bool:
        """Run ``SELECT 1``; False when not connected or unreachable."""
        if self._engine is None:
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError):
            return False

    async def create_tables(self) -> None:
        """Create every mapped table that does not exist yet."""
        # Register all mappers on Base.metadata
        import orgchart.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session that commits on success and rolls back on any exception.

        Example:
            async with database.session() as session:
                session.add(row)
        """
        async with self.sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


# Global database instance
database = Database()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for FastAPI to get a request-scoped database session."""
    async with database.session() as session:
        yield session
