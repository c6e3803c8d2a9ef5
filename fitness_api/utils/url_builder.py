"""
Database URL utilities
"""
import logging
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

logger = logging.getLogger(__name__)


def is_sqlite_url(database_url: str) -> bool:
    return bool(database_url) and urlsplit(database_url).scheme.split("+")[0] == "sqlite"


def build_async_url(sync_url: str) -> str:
    """
    Convert a database URL to its async driver form

    postgres:// and postgresql:// become postgresql+asyncpg:// (sslmode is
    dropped, asyncpg does not accept it in the URL). sqlite:// becomes
    sqlite+aiosqlite://.

    Args:
        sync_url: Original database URL

    Returns:
        Async-compatible database URL
    """
    if not sync_url:
        return sync_url

    parts = urlsplit(sync_url)
    scheme = parts.scheme
    base_scheme = scheme.split("+")[0] if "+" in scheme else scheme

    if base_scheme.startswith("postgres"):
        query_pairs = dict(parse_qsl(parts.query, keep_blank_values=True))
        query_pairs.pop("sslmode", None)
        new_query = urlencode(query_pairs) if query_pairs else ""
        return urlunsplit(("postgresql+asyncpg", parts.netloc, parts.path, new_query, parts.fragment))

    if base_scheme == "sqlite" and scheme != "sqlite+aiosqlite":
        return "sqlite+aiosqlite" + sync_url[len(scheme):]

    return sync_url


def normalize_database_url(database_url: str) -> str:
    """
    Normalize database URL for connection pooling

    Args:
        database_url: Original database URL

    Returns:
        Normalized database URL
    """
    if not database_url:
        return database_url

    # Transaction pooler (6543) does not support prepared statements
    if ":6543" in database_url:
        database_url = database_url.replace(":6543", ":5432")
        logger.info("Switched from transaction pooler (6543) to session pooler (5432)")
    elif ".pooler.supabase.com" in database_url and ":5432" not in database_url:
        database_url = database_url.replace(".pooler.supabase.com", ".pooler.supabase.com:5432")
        logger.info("Added session pooler port (5432)")

    return database_url
