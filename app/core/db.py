import logging
import re
from collections.abc import AsyncGenerator
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import get_settings
from app.core.errors import Conflict
from app.models.base import Base

logger = logging.getLogger(__name__)
settings = get_settings()

T = TypeVar("T")

# Postgres "serialization_failure" / "deadlock_detected"
RETRYABLE_SQLSTATES = {"40001", "40P01"}


class OptimisticConflict(Exception):
    """A conditional write matched no rows because the record changed underneath us."""


def get_async_database_url(url: str) -> str:
    """Convert database URL to async-compatible format using psycopg driver."""
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    elif url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    elif url.startswith("sqlite://"):
        url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    if "channel_binding=" in url:
        url = re.sub(r'[&?]channel_binding=[^&]*', '', url)
        url = url.replace('?&', '?').rstrip('?')

    return url


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; pool tuning only applies to Postgres."""
    url = get_async_database_url(url)
    if url.startswith("sqlite"):
        return create_async_engine(url, future=True, echo=echo)

    return create_async_engine(
        url,
        future=True,
        echo=echo,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,   # Recycle connections after 1 hour
        pool_timeout=10,     # Wait up to 10 seconds for a connection from pool
        max_overflow=10,     # Allow extra connections beyond pool_size
        connect_args={"connect_timeout": 10},
    )


engine: AsyncEngine = build_engine(settings.database_url, echo=settings.debug)
logger.info(f"[DB] Database engine created for {engine.url.render_as_string(hide_password=True)}")

AsyncSessionFactory = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionFactory() as session:
        yield session


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, (OptimisticConflict, StaleDataError)):
        return True
    if isinstance(exc, DBAPIError):
        sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
        return sqlstate in RETRYABLE_SQLSTATES
    return False


async def run_with_conflict_retry(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    attempts: int = 2,
) -> T:
    """
    Run a read-modify-write operation, retrying once on a concurrency conflict.

    The operation must re-read everything it depends on, so a retry has no
    side effects beyond what the first attempt already rolled back. When the
    last attempt still conflicts the caller gets ``Conflict``.
    """
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not _is_retryable(e):
                raise
            await db.rollback()
            last_error = e
            logger.warning(f"[DB] Concurrency conflict on attempt {attempt}/{attempts}: {e}")

    raise Conflict(f"Record was modified concurrently, please retry ({last_error})")


async def init_database() -> None:
    """Create all tables. In production use Alembic migrations instead.

    Note: This is a best-effort initialization. In production, Alembic
    migrations are the source of truth.
    """
    import app.models  # noqa: F401 ensure models are registered

    logger.info("[DB] Initializing database tables...")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("[DB] Database tables initialized successfully")
    except Exception as e:
        # Don't fail startup - migrations are the source of truth
        logger.warning(f"[DB] create_all failed (expected if using Alembic): {e}")


async def test_database_connection() -> bool:
    """Test database connection with timeout."""
    import asyncio

    async def _test_connection():
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            result.fetchone()

    try:
        await asyncio.wait_for(_test_connection(), timeout=10.0)
        logger.info("[DB] Database connection test successful")
        return True
    except asyncio.TimeoutError:
        logger.error("[DB] Database connection test timed out after 10 seconds")
        return False
    except Exception as e:
        logger.error(f"[DB] Database connection test failed: {type(e).__name__}: {e}")
        return False
