"""
EcoDex Backend - Request Logging Middleware
=============================================

What:  One access log line per request on the `ecodex.access` logger.
How:   Measures the time from middleware entry to response, picks the log
       level from the status code and attaches request fields as `extra`.
When:  After RequestIDMiddleware, so the line carries the request id.

Typical durations:
    - GET /api/ecodex/entries: 10-50ms (database query)
    - POST /api/ecodex/identify: 2000-8000ms (oracle call dominates)

Logged: method, path, status, duration, client IP, request id, caller id.
Never logged: request bodies (photos, chat messages).
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ecodex.middleware.request_id import request_id_var

logger = logging.getLogger("ecodex.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access logging with duration; /health is skipped."""

    QUIET_PATHS = {"/health"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        user_id = request.headers.get("X-User-ID", "-")
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] user=%s from %s",
            request.method,
            request.url.path,
            status,
            duration_ms,
            rid,
            user_id,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "user_id": user_id,
            },
        )

        return response
