"""HTTP middleware for request correlation and access logging.

- ``request_id_middleware`` accepts an incoming X-Request-ID header or
  generates a UUID, stores it in contextvars for log correlation and echoes it
  (plus the request duration) in the response headers.
- ``request_logging_middleware`` emits one ``http.request`` record per
  request, at warning level for 4xx/5xx responses.

Usage:
    app.middleware("http")(request_logging_middleware)
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from app.core.config import settings
from app.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a correlation id to the request context and the response.

    Side Effects:
        - Sets request_id in contextvars (accessible via get_request_id())
        - Clears request_id from contextvars after request completes
        - Adds X-Request-ID and X-Request-Duration-ms response headers
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def request_logging_middleware(request: Request, call_next) -> Response:
    """Log method, path, status, duration and caller of every request."""

    start = time.perf_counter()
    response: Response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000

    identity = getattr(request.state, "identity", None)
    extra = {
        "method": request.method,
        "path": request.url.path,
        "status_code": response.status_code,
        "duration_ms": round(duration_ms, 2),
        "user_agent": request.headers.get("User-Agent"),
        "origin": identity.origin if identity else (request.client.host if request.client else None),
        "user_id": identity.user_id if identity and identity.authenticated else "anonymous",
    }

    if response.status_code >= 400:
        logger.warning("http.request", extra=extra)
    else:
        logger.info("http.request", extra=extra)
    return response
