"""
Manifest Generator HTTP service.

FastAPI application exposing the upload endpoints.
"""

from manifest_generator.api.app import create_app

__all__ = ["create_app"]
