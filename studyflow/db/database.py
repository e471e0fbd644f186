from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from loguru import logger
from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from config import get_settings
from studyflow.db.models import Base

_engine: AsyncEngine | None = None
_AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None
_sync_engine: Engine | None = None


def _get_async_url(url: str) -> str:
    """Convert a sync database URL to its async driver equivalent."""
    if url.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
        return url
    if url.startswith("postgresql+psycopg2://"):
        return url.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own BEGIN on SQLite so nested savepoints behave."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine.

    In-memory SQLite shares one connection across sessions; file-backed
    SQLite opens a fresh connection per checkout.
    """
    url = _get_async_url(url)
    if url.startswith("sqlite"):
        in_memory = url.endswith("://") or ":memory:" in url
        engine = create_async_engine(
            url,
            echo=echo,
            poolclass=StaticPool if in_memory else NullPool,
            connect_args={"check_same_thread": False},
        )
        _enable_sqlite_savepoints(engine)
        return engine
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


def get_engine() -> AsyncEngine:
    """Get the async database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url, echo=settings.log_level == "DEBUG")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory bound to the engine."""
    global _AsyncSessionLocal
    if _AsyncSessionLocal is None:
        _AsyncSessionLocal = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )
    return _AsyncSessionLocal


def configure(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Point the module at an explicit engine (tests, CLI overrides)."""
    global _engine, _AsyncSessionLocal
    _engine = engine
    _AsyncSessionLocal = async_sessionmaker(
        bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False
    )
    return _AsyncSessionLocal


def get_sync_engine() -> Engine:
    """Sync engine, used only for raw SQL migrations."""
    global _sync_engine
    if _sync_engine is None:
        settings = get_settings()
        _sync_engine = create_engine(settings.database_url, pool_pre_ping=True)
    return _sync_engine


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Initialize database tables."""
    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


def run_migration(migration_file: Path) -> None:
    """Run a SQL migration file."""
    if not migration_file.exists():
        raise FileNotFoundError(f"Migration file not found: {migration_file}")

    sql = migration_file.read_text(encoding="utf-8")
    with get_sync_engine().connect() as conn:
        conn.execute(text(sql))
        conn.commit()
    logger.info(f"Migration applied: {migration_file.name}")


@asynccontextmanager
async def async_session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async transactional scope around a series of operations."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:  # Intentionally broad - rollback on any error before re-raising
            await session.rollback()
            raise


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for request-scoped async sessions."""
    async with async_session_scope() as session:
        yield session
