"""
Manifest Generator Core Module.

Provides the domain models and the error taxonomy of the pipeline.
"""

__all__ = [
    "AppMetadata",
    "ContainerVisibility",
    "ExpirationPolicy",
    "InstallLink",
    "ObjectState",
    "PipelineResult",
    "PipelineState",
    "PublishResult",
    "PublishedArtifact",
    "StorageContainer",
    "TimeUnit",
    # Exceptions
    "ManifestGeneratorError",
    "MetadataNotFoundError",
    "DecodeFailureError",
    "FetchFailureError",
    "StorageError",
    "ProvisionFailureError",
    "PublishFailureError",
    "ScheduleFailureError",
    "ContainerStateError",
    "ConfigurationError",
    "PipelineError",
]

from manifest_generator.core.exceptions import (
    ConfigurationError,
    ContainerStateError,
    DecodeFailureError,
    FetchFailureError,
    ManifestGeneratorError,
    MetadataNotFoundError,
    PipelineError,
    ProvisionFailureError,
    PublishFailureError,
    ScheduleFailureError,
    StorageError,
)
from manifest_generator.core.models import (
    AppMetadata,
    ContainerVisibility,
    ExpirationPolicy,
    InstallLink,
    ObjectState,
    PipelineResult,
    PipelineState,
    PublishResult,
    PublishedArtifact,
    StorageContainer,
    TimeUnit,
)
