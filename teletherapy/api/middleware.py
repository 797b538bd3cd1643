"""API middleware for request logging and shared-key authentication."""

import hmac
import logging
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


def _client(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with its status and timing.

    Sets ``X-Process-Time`` and echoes (or assigns) ``X-Request-ID`` so a
    slot lookup can be traced through the logs.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        started = time.perf_counter()

        response = await call_next(request)

        duration = time.perf_counter() - started
        logger.info(
            "%s %s status=%d duration=%.3fs client=%s request_id=%s",
            request.method, request.url.path, response.status_code, duration,
            _client(request), request_id,
        )
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        response.headers["X-Request-ID"] = request_id
        return response


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Require the shared API key on everything under ``protected_prefix``."""

    def __init__(self, app, api_key: str, protected_prefix: str = "/api/"):
        super().__init__(app)
        self.api_key = api_key
        self.protected_prefix = protected_prefix

    @staticmethod
    def _provided_key(request: Request) -> Optional[str]:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            return auth_header[7:]
        return request.headers.get("X-API-Key")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not request.url.path.startswith(self.protected_prefix):
            return await call_next(request)

        provided = self._provided_key(request)
        if not provided or not hmac.compare_digest(provided, self.api_key):
            logger.warning("Rejected %s %s from %s: bad API key", request.method, request.url.path, _client(request))
            return JSONResponse(
                status_code=401,
                content={"error": "Unauthorized", "detail": "Invalid or missing API key"},
            )
        return await call_next(request)
