"""
S3 client construction.

One client is created per process and shared by every component; boto3
clients are thread-safe and carry no per-request state.
"""

import logging

import boto3
from botocore.config import Config

from manifest_generator.config import Settings

logger = logging.getLogger(__name__)


def create_s3_client(settings: Settings):
    """
    Create the S3 client used by the service.

    Explicit credentials from settings take precedence; otherwise boto3's
    default credential chain applies.

    Args:
        settings: Service settings

    Returns:
        botocore S3 client
    """
    kwargs = {
        "region_name": settings.aws_region,
        "config": Config(retries={"max_attempts": 3, "mode": "standard"}),
    }
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        kwargs["aws_access_key_id"] = settings.aws_access_key_id
        kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
    else:
        logger.info("No explicit AWS credentials configured, using default chain")

    client = boto3.client("s3", **kwargs)
    logger.info(f"S3 client initialized for region: {settings.aws_region}")
    return client
