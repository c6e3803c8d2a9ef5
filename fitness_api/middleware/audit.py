"""
Audit trail for security relevant endpoints.

Routes declare `Depends(audit("event-name"))`; the request context middleware
emits one AUDIT_EVENT record once the response status is known.
"""
import logging
import time
from typing import Any, Dict, Iterable, Optional

from fastapi import Request

audit_logger = logging.getLogger("fitness_api.audit")

REDACTED_FIELDS = frozenset(
    {
        "password",
        "confirm_password",
        "current_password",
        "new_password",
        "token",
        "refresh_token",
        "id_token",
    }
)
MAX_ACCESSED_IDS = 10


def redact(data: Any) -> Any:
    """Replace credential fields with a placeholder, recursively"""
    if isinstance(data, dict):
        return {
            key: "[REDACTED]" if key in REDACTED_FIELDS else redact(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact(item) for item in data]
    return data


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def audit(event: str):
    """Dependency factory marking a request for auditing"""

    async def _audit(request: Request) -> None:
        try:
            body = await request.json()
        except ValueError:
            body = None
        request.state.audit = {
            "event": event,
            "start_time": time.perf_counter(),
            "ip": client_ip(request),
            "user_agent": request.headers.get("user-agent", ""),
            "request_data": redact(body) if body is not None else None,
            "query": dict(request.query_params),
        }

    return _audit


def record_data_access(request: Request, resource: str, ids: Iterable[str]) -> None:
    """Attach the ids of records read by the request to its audit entry"""
    entry = getattr(request.state, "audit", None)
    if entry is None:
        return
    entry["data_access"] = {"resource": resource, "ids": list(ids)[:MAX_ACCESSED_IDS]}


def audit_failed_auth(request: Request, reason: str, email: Optional[str] = None) -> None:
    audit_logger.warning(
        "AUTH_FAILURE",
        extra={
            "audit": {
                "reason": reason,
                "email": email,
                "ip": client_ip(request),
                "user_agent": request.headers.get("user-agent", ""),
                "correlation_id": getattr(request.state, "correlation_id", None),
                "endpoint": request.url.path,
            }
        },
    )


def emit_audit_event(request: Request, entry: Dict[str, Any], status_code: int) -> None:
    user = getattr(request.state, "user", None)
    record = {
        "event": entry["event"],
        "user_id": getattr(user, "id", None),
        "correlation_id": getattr(request.state, "correlation_id", None),
        "success": 200 <= status_code < 400,
        "status_code": status_code,
        "response_time_ms": round((time.perf_counter() - entry["start_time"]) * 1000, 2),
        "endpoint": request.url.path,
        "method": request.method,
        "ip": entry["ip"],
        "user_agent": entry["user_agent"],
        "request_data": entry.get("request_data"),
        "query": entry.get("query"),
        "data_access": entry.get("data_access"),
    }
    audit_logger.info("AUDIT_EVENT %s", record["event"], extra={"audit": record})
