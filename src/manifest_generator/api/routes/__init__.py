"""
API route handlers.
"""

from manifest_generator.api.routes import health, publish

__all__ = ["health", "publish"]
