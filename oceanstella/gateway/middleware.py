"""
Ocean Stella - Security Middleware

Request/response middleware for:
- Request ID injection for tracing
- Access-token attach (request.state.identity)
- Security headers
- Request logging with timing

The attach step never rejects a request: a missing, expired or tampered
os_at cookie simply leaves identity as None for the guards to judge.
"""

import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from oceanstella.auth.cookies import ACCESS_COOKIE
from oceanstella.auth.tokens import InvalidTokenError, verify_access_token

logger = logging.getLogger(__name__)


class SecurityMiddleware(BaseHTTPMiddleware):
    """
    Security-focused middleware for all incoming requests.

    Responsibilities:
    1. Inject X-Request-ID header for tracing
    2. Decode the access cookie and attach its claims
    3. Add security headers to response
    4. Log method, path, status and duration
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process each request through security pipeline."""

        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        self._attach_identity(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Cache-Control"] = "no-store"

        logger.info(
            "%s %s -> %d (%.1fms) request_id=%s",
            request.method, request.url.path, response.status_code, duration_ms, request_id,
        )
        return response

    @staticmethod
    def _attach_identity(request: Request) -> None:
        request.state.identity = None
        token = request.cookies.get(ACCESS_COOKIE)
        if not token:
            return
        try:
            request.state.identity = verify_access_token(token)
        except InvalidTokenError:
            pass
