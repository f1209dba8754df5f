"""
Manifest Generator Exception Hierarchy.

Defines the error taxonomy of the publishing pipeline. Every error carries
structured details for logging, and an HTTP status code the service uses
when answering with the generic error page.
"""

from typing import Any


class ManifestGeneratorError(Exception):
    """
    Base exception for all Manifest Generator errors.

    All custom exceptions inherit from this class, allowing
    generic catch blocks and consistent error handling.
    """

    status_code: int = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        """
        Initialize a ManifestGeneratorError.

        Args:
            message: Human-readable error message
            details: Optional structured data for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation with details."""
        base = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{base} ({details_str})"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class MetadataNotFoundError(ManifestGeneratorError):
    """
    Raised when an archive has no Payload/<name>.app/Info.plist entry.

    Also raised when the file is not a readable zip archive at all.
    """

    status_code = 400

    def __init__(
        self,
        message: str = "No application metadata found in archive",
        *,
        archive_path: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if archive_path:
            details["archive_path"] = archive_path

        super().__init__(message, details=details)
        self.archive_path = archive_path


class DecodeFailureError(ManifestGeneratorError):
    """
    Raised when a property list cannot be decoded.

    Both the binary and the XML decoding strategies were attempted
    and neither produced a dictionary.
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Property list could not be decoded",
        *,
        attempts: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if attempts:
            details["attempts"] = attempts

        super().__init__(message, details=details)
        self.attempts = attempts or []


class FetchFailureError(ManifestGeneratorError):
    """Raised when a remote package link cannot be downloaded."""

    status_code = 400

    def __init__(
        self,
        message: str = "Package could not be fetched",
        *,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if url:
            details["url"] = url

        super().__init__(message, details=details)
        self.url = url


class StorageError(ManifestGeneratorError):
    """
    Errors in bucket operations.

    Base class for failures reported by the storage backend, carrying
    the bucket and the operation that failed.
    """

    def __init__(
        self,
        message: str,
        *,
        bucket: str | None = None,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if bucket:
            details["bucket"] = bucket
        if operation:
            details["operation"] = operation

        super().__init__(message, details=details)
        self.bucket = bucket
        self.operation = operation


class ProvisionFailureError(StorageError):
    """Raised when a bucket cannot be created. Nothing is left to clean up."""


class PublishFailureError(StorageError):
    """Raised when an upload or ACL change fails after the bucket exists."""


class ScheduleFailureError(ManifestGeneratorError):
    """
    Raised when deferred deletion cannot be registered.

    Non-fatal for a request: the bucket lifecycle rule still expires
    the tagged objects.
    """

    def __init__(
        self,
        message: str = "Deferred deletion could not be scheduled",
        *,
        bucket: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if bucket:
            details["bucket"] = bucket

        super().__init__(message, details=details)
        self.bucket = bucket


class ContainerStateError(ManifestGeneratorError):
    """Raised when a bucket visibility transition is not allowed."""

    def __init__(
        self,
        message: str,
        *,
        bucket: str | None = None,
        current: str | None = None,
        requested: str | None = None,
    ):
        details: dict[str, Any] = {}
        if bucket:
            details["bucket"] = bucket
        if current:
            details["current"] = current
        if requested:
            details["requested"] = requested

        super().__init__(message, details=details)
        self.bucket = bucket
        self.current = current
        self.requested = requested


class ConfigurationError(ManifestGeneratorError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, details=details)
        self.config_key = config_key


class PipelineError(ManifestGeneratorError):
    """Raised for unexpected failures inside the publishing pipeline."""

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stage:
            details["stage"] = stage

        super().__init__(message, details=details)
        self.stage = stage
