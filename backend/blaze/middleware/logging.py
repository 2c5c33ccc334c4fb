"""
Blaze Backend — Request Logging Middleware
===========================================

What:  One access log line per request on the `blaze.access` logger.

Line format:
    GET /api/confirm 200 2113.4ms [1f3a9c2e] from 10.0.0.7

Levels:
    5xx → ERROR, 4xx → WARNING, everything else → INFO.

Not logged: query strings (alarm serials, correlation keys), bodies (push
subscription keys, passwords) and credential headers. Health checks are
skipped entirely.

Durations:
    GET /api/confirm is expected to take up to CONFIRMATION_TIMEOUT
    seconds; a long duration there is a slow human, not a slow server.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from blaze.middleware.request_id import request_id_var

logger = logging.getLogger("blaze.access")


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    SKIPPED_PATHS = frozenset({"/health"})

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.SKIPPED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)

        fields = {
            "request_id": request_id_var.get(""),
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": elapsed_ms,
            "client_ip": request.client.host if request.client else "unknown",
        }
        logger.log(
            level_for_status(response.status_code),
            "%(method)s %(path)s %(status)d %(duration_ms).1fms [%(request_id)s] from %(client_ip)s",
            fields,
            extra=fields,
        )
        return response
