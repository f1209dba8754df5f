"""
API response schemas.
"""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Overall status")
    version: str = Field(description="Service version")
    timestamp: str = Field(description="ISO timestamp of the check")
    scheduler: str = Field(description="Deletion scheduler status")
    pending_deletions: int = Field(description="Buckets waiting for deferred deletion")
    expiration: str = Field(description="Configured bucket lifetime")
