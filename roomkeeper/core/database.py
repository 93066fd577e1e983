"""Database connection and session management with proper connection pooling."""
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, QueuePool

from .config import settings

logger = logging.getLogger(__name__)

engine: AsyncEngine | None = None
ASYNC_SESSION_LOCAL: async_sessionmaker[AsyncSession] | None = None


class Base(DeclarativeBase):
    pass


def _engine_options(database_url: str) -> dict:
    """Pool options for the configured backend.

    SQLite (local runs and tests) takes none of the server-side options;
    PostgreSQL gets the pool sizing and a statement timeout so that no
    reservation transaction can hang on the server.
    """
    if database_url.startswith("sqlite"):
        return {"poolclass": NullPool}

    if settings.IS_SERVERLESS:
        return {"poolclass": NullPool, "pool_pre_ping": settings.DB_POOL_PRE_PING}

    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": settings.DB_POOL_PRE_PING,
        "connect_args": {
            "server_settings": {
                "application_name": settings.PROJECT_NAME,
                "statement_timeout": "30000",
            }
        },
    }


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the app and by tests against their own engine."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


def _initialize_engine() -> None:
    """Initialize the async engine and session factory lazily."""
    global engine, ASYNC_SESSION_LOCAL
    if engine is not None:
        return

    engine = create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        **_engine_options(settings.DATABASE_URL)
    )
    ASYNC_SESSION_LOCAL = create_session_factory(engine)


def get_engine() -> AsyncEngine:
    """Return the async engine, initializing it if needed."""
    if engine is None:
        _initialize_engine()
    return engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the session factory, initializing the engine if needed."""
    if ASYNC_SESSION_LOCAL is None:
        _initialize_engine()
    return ASYNC_SESSION_LOCAL


async def bootstrap_tables(bind: AsyncEngine | None = None) -> None:
    """Create any missing tables."""
    target = bind or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema verified")


async def get_db():
    """Dependency to get database session from connection pool."""
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_pool_status() -> dict:
    """Get current connection pool status for monitoring."""
    if engine is None:
        return {"pool_type": "Uninitialized"}

    pool = engine.pool
    if isinstance(pool, QueuePool):
        return {
            "pool_type": "QueuePool",
            "size": pool.size(),
            "checked_out": pool.checkedout(),
            "overflow": pool.overflow(),
            "checked_in": pool.checkedin(),
        }

    if isinstance(pool, NullPool):
        return {
            "pool_type": "NullPool",
            "note": "No connection pooling",
        }

    return {"pool_type": type(pool).__name__}
