"""
Bucket provisioning and teardown.

Each request gets its own bucket named "apps-<uuid>", created public
read/write with a tag-based lifecycle rule that expires objects tagged
delete=true after one day, as a safety net for the application-level
deletion timer.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from botocore.exceptions import BotoCoreError, ClientError

from manifest_generator.core.exceptions import (
    ProvisionFailureError,
    PublishFailureError,
    StorageError,
)
from manifest_generator.core.models import (
    BUCKET_PREFIX,
    ContainerVisibility,
    StorageContainer,
)

logger = logging.getLogger(__name__)

DELETE_TAG_KEY = "delete"
DELETE_TAG_VALUE = "true"
FALLBACK_EXPIRATION_DAYS = 1

LIFECYCLE_CONFIGURATION = {
    "Rules": [
        {
            "ID": "Delete rule",
            "Filter": {"Tag": {"Key": DELETE_TAG_KEY, "Value": DELETE_TAG_VALUE}},
            "Expiration": {"Days": FALLBACK_EXPIRATION_DAYS},
            "Status": "Enabled",
        }
    ]
}

_MISSING_BUCKET_CODES = {"NoSuchBucket", "404"}


def generate_bucket_name() -> str:
    return f"{BUCKET_PREFIX}{uuid.uuid4()}"


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


@dataclass
class SweepResult:
    """Outcome of a recovery sweep over existing buckets."""

    destroyed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


class StorageProvisioner:
    """
    Creates, narrows and destroys per-request buckets.

    The S3 client is injected and shared; this class keeps no
    per-request state of its own.
    """

    def __init__(
        self,
        client,
        *,
        region: str = "us-east-1",
        storage_domain: str = "s3.amazonaws.com",
        sweep_workers: int = 8,
    ):
        """
        Initialize the provisioner.

        Args:
            client: boto3 S3 client
            region: Region buckets are created in
            storage_domain: Domain used to build public object URLs
            sweep_workers: Parallelism of the recovery sweep
        """
        self._client = client
        self._region = region
        self._storage_domain = storage_domain
        self._sweep_workers = sweep_workers

    def public_url(self, bucket: str, key: str) -> str:
        """Public HTTPS URL of an object."""
        return f"https://{bucket}.{self._storage_domain}/{key}"

    def provision(self) -> StorageContainer:
        """
        Create a new public bucket with the fallback lifecycle rule.

        Returns:
            StorageContainer in WRITABLE_PUBLIC

        Raises:
            ProvisionFailureError: If the bucket cannot be fully set up;
                a partially configured bucket is removed first
        """
        name = generate_bucket_name()
        logger.info(f"Creating bucket '{name}'...")

        create_kwargs = {"Bucket": name, "ObjectOwnership": "ObjectWriter"}
        if self._region != "us-east-1":
            create_kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self._region}

        try:
            self._client.create_bucket(**create_kwargs)
        except (ClientError, BotoCoreError) as e:
            raise ProvisionFailureError(
                f"Failed to create bucket: {e}", bucket=name, operation="create_bucket"
            ) from e

        operation = "delete_public_access_block"
        try:
            self._client.delete_public_access_block(Bucket=name)
            operation = "put_bucket_acl"
            self._client.put_bucket_acl(Bucket=name, ACL="public-read-write")
            operation = "put_bucket_lifecycle_configuration"
            self._client.put_bucket_lifecycle_configuration(
                Bucket=name, LifecycleConfiguration=LIFECYCLE_CONFIGURATION
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to configure bucket '{name}' ({operation}): {e}")
            try:
                self.destroy(name)
            except StorageError as cleanup_error:
                logger.error(f"Failed to remove half-created bucket '{name}': {cleanup_error}")
            raise ProvisionFailureError(
                f"Failed to configure bucket: {e}", bucket=name, operation=operation
            ) from e

        logger.info(f"Bucket '{name}' created")
        return StorageContainer(name=name)

    def narrow_to_read_only(self, container: StorageContainer) -> None:
        """
        Restrict the bucket ACL to public read.

        Raises:
            ContainerStateError: If the bucket is not OBJECTS_PUBLIC
            PublishFailureError: If the ACL change fails
        """
        container.require(ContainerVisibility.OBJECTS_PUBLIC)
        logger.info(f"Making bucket '{container.name}' read-only...")
        try:
            self._client.put_bucket_acl(Bucket=container.name, ACL="public-read")
        except (ClientError, BotoCoreError) as e:
            raise PublishFailureError(
                f"Failed to narrow bucket ACL: {e}",
                bucket=container.name,
                operation="put_bucket_acl",
            ) from e
        container.transition(ContainerVisibility.READ_ONLY_PUBLIC)

    def destroy(self, container: StorageContainer | str) -> bool:
        """
        Delete every object in a bucket, then the bucket itself.

        A bucket that no longer exists is not an error.

        Args:
            container: StorageContainer or bucket name

        Returns:
            True if the bucket was deleted by this call, False if it was already gone

        Raises:
            StorageError: For backend failures other than a missing bucket
        """
        name = container.name if isinstance(container, StorageContainer) else container
        logger.info(f"Preparing to delete bucket '{name}'...")

        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=name):
                for obj in page.get("Contents", []):
                    logger.info(f"\tdeleting '{obj['Key']}' (size: {obj.get('Size')})")
                    self._client.delete_object(Bucket=name, Key=obj["Key"])
            logger.info(f"Deleting bucket '{name}'...")
            self._client.delete_bucket(Bucket=name)
        except ClientError as e:
            if _error_code(e) not in _MISSING_BUCKET_CODES:
                raise StorageError(
                    f"Failed to delete bucket: {e}", bucket=name, operation="destroy"
                ) from e
            logger.info(f"Bucket '{name}' already gone")
            deleted = False
        except BotoCoreError as e:
            raise StorageError(
                f"Failed to delete bucket: {e}", bucket=name, operation="destroy"
            ) from e
        else:
            logger.info(f"Bucket '{name}' deleted.")
            deleted = True

        if isinstance(container, StorageContainer):
            container.mark_deleted()
        return deleted

    def destroy_all(self, prefix_only: bool = True) -> SweepResult:
        """
        Destroy leftover buckets from earlier runs, in parallel.

        Args:
            prefix_only: Only touch buckets named with the service prefix.
                False deletes every bucket visible to the credentials.

        Returns:
            SweepResult listing destroyed, failed and skipped buckets

        Raises:
            StorageError: If the bucket list cannot be read
        """
        try:
            response = self._client.list_buckets()
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"Failed to list buckets: {e}", operation="list_buckets"
            ) from e

        result = SweepResult()
        targets: list[str] = []
        for bucket in response.get("Buckets", []):
            name = bucket["Name"]
            if prefix_only and not name.startswith(BUCKET_PREFIX):
                result.skipped.append(name)
            else:
                targets.append(name)

        if not prefix_only:
            logger.warning(f"Sweeping ALL {len(targets)} visible buckets")
        logger.info(f"Recovery sweep: {len(targets)} bucket(s) to delete")

        if not targets:
            return result

        with ThreadPoolExecutor(max_workers=self._sweep_workers) as executor:
            futures = {executor.submit(self.destroy, name): name for name in targets}
            for future in as_completed(futures):
                name = futures[future]
                try:
                    future.result()
                    result.destroyed.append(name)
                except StorageError as e:
                    logger.error(f"Sweep failed for bucket '{name}': {e}")
                    result.failed[name] = str(e)

        return result
