"""
Database connection management
"""
import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from fitness_api.config import settings
from fitness_api.database.models import Base
from fitness_api.utils.url_builder import build_async_url, is_sqlite_url, normalize_database_url

logger = logging.getLogger(__name__)

# Global database objects
engine: Optional[AsyncEngine] = None
async_session: Optional[sessionmaker] = None


def _postgres_engine(async_database_url: str, ssl_required: bool) -> AsyncEngine:
    connect_args = {
        "server_settings": {
            "application_name": "fitness_api",
            "tcp_keepalives_idle": "600",
            "tcp_keepalives_interval": "30",
            "tcp_keepalives_count": "3",
        },
        "command_timeout": 60,
        "timeout": 20,
    }
    if ssl_required:
        connect_args["ssl"] = True

    return create_async_engine(
        async_database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,
        pool_timeout=30,
        connect_args=connect_args,
        echo=False,
        pool_reset_on_return="commit",
    )


def _sqlite_engine(async_database_url: str) -> AsyncEngine:
    # In-memory databases live on a single shared connection
    if ":memory:" in async_database_url or async_database_url.rstrip("/").endswith("sqlite+aiosqlite:"):
        return create_async_engine(
            async_database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    return create_async_engine(async_database_url, poolclass=NullPool, echo=False)


def init_database(database_url: Optional[str] = None) -> bool:
    """
    Initialize database connection

    Args:
        database_url: Overrides DATABASE_URL from settings

    Returns:
        True if initialization successful, False otherwise
    """
    global engine, async_session

    database_url = database_url or settings.DATABASE_URL
    if not database_url:
        logger.warning("DATABASE_URL not set, database features will be unavailable")
        return False

    try:
        if is_sqlite_url(database_url):
            engine = _sqlite_engine(build_async_url(database_url))
        else:
            database_url = normalize_database_url(database_url)
            ssl_required = (
                "sslmode=require" in database_url.lower()
                or settings.SUPABASE_SSLMODE == "require"
            )
            engine = _postgres_engine(build_async_url(database_url), ssl_required)

        async_session = sessionmaker(
            bind=engine,
            expire_on_commit=False,
            class_=AsyncSession,
        )

        logger.info("Database engine initialized (%s)", engine.url.get_backend_name())
        return True

    except Exception:
        logger.exception("Failed to initialize database engine")
        engine = None
        async_session = None
        return False


async def create_tables() -> None:
    """Create all tables known to the ORM metadata"""
    if engine is None:
        return
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def drop_tables() -> None:
    """Drop all ORM tables"""
    if engine is None:
        return
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def ping_database() -> bool:
    """Run a trivial query against the database"""
    if async_session is None:
        return False
    async with async_session() as session:
        await session.execute(text("SELECT 1"))
    return True


async def dispose_database() -> None:
    if engine is not None:
        await engine.dispose()


def get_session() -> Optional[sessionmaker]:
    """
    Get database session maker

    Returns:
        Session maker or None if not initialized
    """
    return async_session


def is_initialized() -> bool:
    """
    Check if database is initialized

    Returns:
        True if initialized, False otherwise
    """
    return engine is not None and async_session is not None
