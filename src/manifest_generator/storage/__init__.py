"""
Manifest Generator Storage Module.

Provides per-request bucket provisioning, artifact publication and
teardown on S3.
"""

from .client import create_s3_client
from .provisioner import (
    LIFECYCLE_CONFIGURATION,
    StorageProvisioner,
    SweepResult,
    generate_bucket_name,
)
from .publisher import Publisher

__all__ = [
    "LIFECYCLE_CONFIGURATION",
    "Publisher",
    "StorageProvisioner",
    "SweepResult",
    "create_s3_client",
    "generate_bucket_name",
]
