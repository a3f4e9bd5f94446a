from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from academy.config.settings import settings


def _get_async_database_url(url: str) -> str:
    """Rewrite plain driver URLs to their async drivers.

    ``postgres://`` and ``postgresql://`` become ``postgresql+asyncpg://``,
    ``sqlite://`` becomes ``sqlite+aiosqlite://``.
    """
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    if url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + url[len("sqlite://"):]
    return url


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:
    # The driver's own implicit BEGIN is replaced by _begin_sqlite_immediate
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_sqlite_immediate(conn) -> None:
    """Take SQLite's write lock when a transaction starts.

    SQLite ignores ``SELECT ... FOR UPDATE``, so without this two writers
    can both validate a slot before either inserts. Waiting writers block
    for up to the busy timeout.
    """
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str | None = None, **overrides) -> AsyncEngine:
    """Create an async engine for the configured (or given) database.

    SQLite connections get foreign keys and write-locking transactions;
    other backends get a pre-pinged pool sized from settings.
    """
    database_url = _get_async_database_url(url or settings.DATABASE_URL)
    is_sqlite = database_url.startswith("sqlite")

    if is_sqlite:
        options = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS,
            }
        }
    else:
        options = {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_pre_ping": True,
        }
    options.update(overrides)

    new_engine = create_async_engine(database_url, echo=settings.DEBUG, **options)
    if is_sqlite:
        event.listen(new_engine.sync_engine, "connect", _configure_sqlite_connection)
        event.listen(new_engine.sync_engine, "begin", _begin_sqlite_immediate)
    return new_engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Services keep using rows after commit and flush explicitly
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


class Base(DeclarativeBase):
    """Declarative base shared by every academy model."""


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; uncommitted work is rolled back on error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create any missing tables for the registered models."""
    from academy.domains import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
