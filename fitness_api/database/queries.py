"""
Database query utilities with retry logic
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.connection import get_session, is_initialized
from fitness_api.utils.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)


def _classify(error: Exception):
    error_str = str(error).lower()
    error_type = type(error).__name__

    is_pool_error = (
        "maxclientsinsessionmode" in error_str
        or "max clients reached" in error_str
        or "connection pool" in error_str
    )
    is_connection_error = "connection" in error_str and (
        "closed" in error_str or "lost" in error_str or "reset" in error_str
    )
    is_timeout = (
        error_type == "TimeoutError"
        or "timeout" in error_str
        or "CancelledError" in error_type
    )
    return is_pool_error, is_connection_error, is_timeout


async def execute_with_retry(
    session: AsyncSession,
    query: Any,
    max_retries: int = 3,
    initial_delay: float = 0.5,
) -> Any:
    """
    Execute query with retry logic for transient database errors

    Args:
        session: Database session
        query: SQLAlchemy statement
        max_retries: Maximum number of attempts
        initial_delay: Initial delay between retries (exponential backoff)

    Returns:
        Query result
    """
    for attempt in range(max_retries):
        try:
            return await session.execute(query)
        except Exception as e:
            is_pool_error, is_connection_error, is_timeout = _classify(e)
            logger.warning(
                "Database error on attempt %d/%d: %s: %s",
                attempt + 1,
                max_retries,
                type(e).__name__,
                str(e)[:200],
            )

            if not (is_pool_error or is_connection_error or is_timeout):
                raise
            if attempt == max_retries - 1:
                logger.error("Max retries reached for query")
                raise

            delay = initial_delay * (2 ** attempt)
            if is_timeout and not (is_pool_error or is_connection_error):
                delay *= 2
            logger.info("Retrying after %ss", delay)
            await asyncio.sleep(delay)

    raise RuntimeError("execute_with_retry completed without result or error")


@asynccontextmanager
async def db_session() -> AsyncIterator[AsyncSession]:
    """
    Open a session, raising 503 when the database is not configured
    """
    session_maker = get_session()
    if not is_initialized() or session_maker is None:
        raise ServiceUnavailableError("Database not configured", code="DATABASE_UNAVAILABLE")
    async with session_maker() as session:
        yield session


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a database session"""
    async with db_session() as session:
        yield session
