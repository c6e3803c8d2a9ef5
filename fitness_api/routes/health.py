"""
Health check endpoints
"""
import logging
import time
from typing import Any, Awaitable, Callable, Dict

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from fitness_api.config import settings
from fitness_api.database.connection import is_initialized, ping_database
from fitness_api.database.models import utcnow
from fitness_api.services.cache import get_cache

logger = logging.getLogger(__name__)

router = APIRouter()

STARTED_AT = time.monotonic()
DATABASE_DEGRADED_MS = 1000
CACHE_DEGRADED_MS = 500


async def _check(name: str, probe: Callable[[], Awaitable[bool]], degraded_ms: int) -> Dict[str, Any]:
    """
    Time one dependency probe

    Returns:
        {"status": healthy|degraded|unhealthy, "response_time_ms", "message"}
    """
    started = time.perf_counter()
    try:
        healthy = await probe()
        error = None
    except Exception as e:
        logger.error("%s health check failed: %s", name, e)
        healthy, error = False, str(e)
    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

    if not healthy:
        return {
            "status": "unhealthy",
            "response_time_ms": elapsed_ms,
            "message": f"{name} check failed",
            "error": error or f"{name} not available",
        }
    if elapsed_ms > degraded_ms:
        return {
            "status": "degraded",
            "response_time_ms": elapsed_ms,
            "message": f"{name} response time is slow",
        }
    return {"status": "healthy", "response_time_ms": elapsed_ms, "message": f"{name} is healthy"}


async def _database_probe() -> bool:
    if not is_initialized():
        return False
    return await ping_database()


async def _cache_probe() -> bool:
    return await get_cache().ping()


def overall_status(checks: Dict[str, Dict[str, Any]]) -> str:
    statuses = [check["status"] for check in checks.values()]
    if "unhealthy" in statuses:
        return "unhealthy"
    if "degraded" in statuses:
        return "degraded"
    return "healthy"


@router.get("/health")
async def health():
    """Database and cache checks with an overall status"""
    checks = {
        "database": await _check("Database", _database_probe, DATABASE_DEGRADED_MS),
        "cache": await _check("Cache", _cache_probe, CACHE_DEGRADED_MS),
    }
    status = overall_status(checks)
    statuses = [check["status"] for check in checks.values()]
    body = {
        "status": status,
        "timestamp": utcnow().isoformat(),
        "uptime_seconds": round(time.monotonic() - STARTED_AT, 2),
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "checks": checks,
        "summary": {
            "total": len(statuses),
            "healthy": statuses.count("healthy"),
            "degraded": statuses.count("degraded"),
            "unhealthy": statuses.count("unhealthy"),
        },
    }
    return JSONResponse(status_code=503 if status == "unhealthy" else 200, content=body)


@router.get("/health/liveness")
async def liveness():
    return {
        "status": "alive",
        "timestamp": utcnow().isoformat(),
        "uptime_seconds": round(time.monotonic() - STARTED_AT, 2),
    }


@router.get("/health/readiness")
async def readiness():
    database = await _check("Database", _database_probe, DATABASE_DEGRADED_MS)
    ready = database["status"] != "unhealthy"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "not_ready",
            "timestamp": utcnow().isoformat(),
            "checks": {"database": database},
        },
    )


@router.get("/healthz")
async def healthcheck():
    """Health check endpoint"""
    db_status = "ok" if is_initialized() else "not_configured"
    return {"status": "ok", "database": db_status}


@router.get("/")
async def root():
    return {
        "status": "ok",
        "name": "Fitness API",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "endpoints": {
            "health": "/health",
            "auth": "/api/auth",
            "users": "/api/users",
            "activity": "/api/activity",
            "analytics": "/api/analytics",
            "sessions": "/api/sessions",
            "integrations": "/api/integrations",
            "workouts": "/api/workouts",
            "nutrition": "/api/nutrition",
            "docs": "/docs",
        },
    }
