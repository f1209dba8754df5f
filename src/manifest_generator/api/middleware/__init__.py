"""
API middleware.

Request logging and upload size limiting.
"""

from manifest_generator.api.middleware.logging import RequestLoggingMiddleware, get_client_ip
from manifest_generator.api.middleware.size_limit import SizeLimitMiddleware, format_size

__all__ = [
    "RequestLoggingMiddleware",
    "SizeLimitMiddleware",
    "format_size",
    "get_client_ip",
]
