"""
HTTP middleware: correlation IDs, security headers, request logging and
audit trail emission.
"""
import logging
import time
import uuid

from fastapi import Request

from fitness_api.middleware.audit import emit_audit_event

logger = logging.getLogger("fitness_api.requests")

CORRELATION_HEADER = "X-Correlation-ID"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-XSS-Protection": "0",
}


async def request_context_middleware(request: Request, call_next):
    """Attach a correlation id, time the request and log the outcome"""
    correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    started = time.perf_counter()

    response = await call_next(request)

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    response.headers[CORRELATION_HEADER] = correlation_id
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)

    log_line = "%s %s %s %sms correlation_id=%s"
    args = (request.method, request.url.path, response.status_code, elapsed_ms, correlation_id)
    if response.status_code >= 500:
        logger.error(log_line, *args)
    elif response.status_code >= 400:
        logger.warning(log_line, *args)
    else:
        logger.info(log_line, *args)

    audit = getattr(request.state, "audit", None)
    if audit:
        emit_audit_event(request, audit, response.status_code)

    return response
