"""
Request logging middleware.

Logs incoming HTTP requests with timing information.
"""

import logging
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log HTTP requests with timing information.

    Logs method, path, client address, upload size, status code and
    duration. Static assets and health checks are skipped by default.
    Every response carries X-Request-ID and X-Process-Time headers.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        logger_instance: logging.Logger | None = None,
        skip_prefixes: tuple[str, ...] = ("/assets", "/health"),
    ) -> None:
        super().__init__(app)
        self._logger = logger_instance or logger
        self._skip_prefixes = skip_prefixes

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        path = request.url.path
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex

        if path.startswith(self._skip_prefixes):
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        start_time = time.time()
        context = {
            "method": request.method,
            "path": path,
            "client_ip": get_client_ip(request),
            "request_id": request_id,
            "content_length": request.headers.get("content-length"),
        }
        self._logger.info("Request started", extra={"event": "request_started", **context})

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self._logger.error(
                "Request failed",
                extra={
                    "event": "request_failed",
                    **context,
                    "error": str(e),
                    "duration_ms": round(duration_ms, 2),
                },
                exc_info=True,
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        self._logger.info(
            "Request completed",
            extra={
                "event": "request_completed",
                **context,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}"
        response.headers["X-Request-ID"] = request_id
        return response


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Checks forwarded headers for proxied requests.
    """
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"
