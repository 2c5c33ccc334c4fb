"""
Blaze Backend — Rate Limiting Middleware
=========================================

What:  Per-IP sliding window rate limiter.
Why:   /api/response, /login and /subscribe are reachable from any browser;
       a misbehaving client must not starve alarm controllers.
How:   Each IP owns a deque of request times, oldest first. Times that fell
       out of the window are popped from the left before each check; a full
       deque means 429 with Retry-After = seconds until its oldest entry
       expires.

Limits:
    In-memory and per process, like the pending confirmation set. Running
    several workers multiplies the effective limit.
"""

import logging
import time
from collections import deque
from typing import Deque, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from blaze.config import settings
from blaze.exceptions import RateLimitExceededError
from blaze.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

# Forget idle IPs once per this many admitted requests
PRUNE_EVERY = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Health checks and API docs are never limited."""

    EXCLUDED_PATHS = frozenset({"/health", "/docs", "/openapi.json", "/redoc"})

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._windows: Dict[str, Deque[float]] = {}
        self._admitted = 0

    def _admit(self, client_ip: str, now: float) -> Optional[int]:
        """Record the request and return None, or return the Retry-After seconds."""
        window = self._windows.setdefault(client_ip, deque())
        horizon = now - settings.rate_limit_window
        while window and window[0] <= horizon:
            window.popleft()

        if len(window) >= settings.rate_limit_requests:
            return int(window[0] - horizon) + 1

        window.append(now)
        self._admitted += 1
        if self._admitted % PRUNE_EVERY == 0:
            self._prune(horizon)
        return None

    def _prune(self, horizon: float) -> None:
        idle = [ip for ip, window in self._windows.items() if not window or window[-1] <= horizon]
        for ip in idle:
            del self._windows[ip]
        if idle:
            logger.debug("Forgot %d idle client(s)", len(idle))

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        retry_after = self._admit(client_ip, time.time())
        if retry_after is None:
            return await call_next(request)

        logger.warning(
            "Rate limit exceeded for %s: %d requests in %ds",
            client_ip,
            settings.rate_limit_requests,
            settings.rate_limit_window,
        )
        # Raised errors would bypass the app's exception handlers here
        exc = RateLimitExceededError(retry_after=retry_after)
        return JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "message": exc.message,
                "details": exc.context,
                "request_id": request_id_var.get(""),
            },
            headers={"Retry-After": str(exc.retry_after)},
        )
