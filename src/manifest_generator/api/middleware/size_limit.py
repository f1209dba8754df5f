"""
Upload size limit middleware.

Rejects request bodies above the configured maximum before they are
spooled to disk.
"""

import logging
from typing import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import HTMLResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from manifest_generator.api.middleware.logging import get_client_ip
from manifest_generator.config import DEFAULT_MAX_UPLOAD_SIZE

logger = logging.getLogger(__name__)


def format_size(size_bytes: int) -> str:
    """
    Format byte size as human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "10.0 MB")
    """
    for unit, divisor in [("GB", 1024**3), ("MB", 1024**2), ("KB", 1024)]:
        if size_bytes >= divisor:
            return f"{size_bytes / divisor:.1f} {unit}"
    return f"{size_bytes} bytes"


class SizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware to enforce a request body size limit.

    Requests whose Content-Length exceeds the limit receive 413 with the
    generic error page.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        max_request_size: int = DEFAULT_MAX_UPLOAD_SIZE,
        error_page: str = "",
    ) -> None:
        super().__init__(app)
        self._max_request_size = max_request_size
        self._error_page = error_page

        logger.info(
            "SizeLimitMiddleware initialized",
            extra={
                "max_request_size": self._max_request_size,
                "max_request_size_formatted": format_size(self._max_request_size),
            },
        )

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                request_size = int(content_length)
            except ValueError:
                # Malformed header, let the server reject it
                request_size = 0

            if request_size > self._max_request_size:
                logger.warning(
                    "Request size limit exceeded",
                    extra={
                        "event": "request_size_exceeded",
                        "path": request.url.path,
                        "client_ip": get_client_ip(request),
                        "content_length_formatted": format_size(request_size),
                        "max_size_formatted": format_size(self._max_request_size),
                    },
                )
                return HTMLResponse(self._error_page, status_code=413)

        return await call_next(request)
