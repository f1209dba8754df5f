"""
Artifact publication.

Uploads the package and its manifest into a bucket, then opens them up in
a fixed order: package ACL, manifest ACL, bucket narrowed to read-only.
Nothing becomes public unless both uploads succeeded.
"""

import logging
from pathlib import Path

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from manifest_generator.core.exceptions import PublishFailureError
from manifest_generator.core.models import (
    MANIFEST_KEY,
    PACKAGE_KEY,
    ContainerVisibility,
    PublishedArtifact,
    PublishResult,
    StorageContainer,
)
from manifest_generator.storage.provisioner import (
    DELETE_TAG_KEY,
    DELETE_TAG_VALUE,
    StorageProvisioner,
)

logger = logging.getLogger(__name__)

PACKAGE_CONTENT_TYPE = "application/octet-stream"
MANIFEST_CONTENT_TYPE = "application/xml"

_UPLOAD_ERRORS = (ClientError, BotoCoreError, S3UploadFailedError, OSError)


class Publisher:
    """Publishes a package and its manifest into a provisioned bucket."""

    def __init__(self, client, provisioner: StorageProvisioner):
        self._client = client
        self._provisioner = provisioner
        self._tagging = f"{DELETE_TAG_KEY}={DELETE_TAG_VALUE}"

    def publish(
        self,
        container: StorageContainer,
        package: Path | bytes,
        manifest_text: str,
    ) -> PublishResult:
        """
        Upload both artifacts and make them publicly readable.

        Args:
            container: Bucket in WRITABLE_PUBLIC
            package: Local package file, or its raw bytes
            manifest_text: Rendered installer manifest

        Returns:
            PublishResult with the two published artifacts; the bucket is
            READ_ONLY_PUBLIC afterwards

        Raises:
            PublishFailureError: If an upload or ACL change fails
            ContainerStateError: If the bucket is not in WRITABLE_PUBLIC
        """
        container.require(ContainerVisibility.WRITABLE_PUBLIC)

        logger.info(f"Uploading file into bucket '{container.name}'...")
        self._upload_package(container, package)
        logger.info("Uploading manifest file...")
        self._upload_manifest(container, manifest_text)

        for key in (PACKAGE_KEY, MANIFEST_KEY):
            self._make_public(container, key)

        self._provisioner.narrow_to_read_only(container)

        return PublishResult(
            container=container,
            package=self._artifact(container, PACKAGE_KEY),
            manifest=self._artifact(container, MANIFEST_KEY),
        )

    def _artifact(self, container: StorageContainer, key: str) -> PublishedArtifact:
        return PublishedArtifact(
            bucket=container.name,
            key=key,
            url=self._provisioner.public_url(container.name, key),
        )

    def _upload_package(self, container: StorageContainer, package: Path | bytes) -> None:
        try:
            if isinstance(package, bytes):
                self._client.put_object(
                    Bucket=container.name,
                    Key=PACKAGE_KEY,
                    Body=package,
                    ContentType=PACKAGE_CONTENT_TYPE,
                    Tagging=self._tagging,
                )
            else:
                self._client.upload_file(
                    str(package),
                    container.name,
                    PACKAGE_KEY,
                    ExtraArgs={
                        "ContentType": PACKAGE_CONTENT_TYPE,
                        "Tagging": self._tagging,
                    },
                )
        except _UPLOAD_ERRORS as e:
            raise PublishFailureError(
                f"Failed to upload package: {e}",
                bucket=container.name,
                operation="upload_package",
            ) from e
        container.record_upload(PACKAGE_KEY)

    def _upload_manifest(self, container: StorageContainer, manifest_text: str) -> None:
        try:
            self._client.put_object(
                Bucket=container.name,
                Key=MANIFEST_KEY,
                Body=manifest_text.encode("utf-8"),
                ContentType=MANIFEST_CONTENT_TYPE,
                Tagging=self._tagging,
            )
        except (ClientError, BotoCoreError) as e:
            raise PublishFailureError(
                f"Failed to upload manifest: {e}",
                bucket=container.name,
                operation="upload_manifest",
            ) from e
        container.record_upload(MANIFEST_KEY)

    def _make_public(self, container: StorageContainer, key: str) -> None:
        container.require_uploaded(key)
        logger.info(f"Making object '{key}' in bucket '{container.name}' public...")
        try:
            self._client.put_object_acl(Bucket=container.name, Key=key, ACL="public-read")
        except (ClientError, BotoCoreError) as e:
            raise PublishFailureError(
                f"Failed to make object public: {e}",
                bucket=container.name,
                operation="put_object_acl",
                details={"key": key},
            ) from e
        container.mark_object_public(key)
