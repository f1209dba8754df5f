"""
Core domain models for the publishing pipeline.

Defines application metadata, the bucket visibility state machine,
published artifacts, expiration policy and pipeline results.
"""

import html
import threading
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator

from manifest_generator.core.exceptions import (
    ContainerStateError,
    ManifestGeneratorError,
)

BUCKET_PREFIX = "apps-"
PACKAGE_KEY = "application.ipa"
MANIFEST_KEY = "application.plist"

INSTALL_LINK_TEMPLATE = '<a href="itms-services://?action=download-manifest&url={url}">{name}</a>'


class AppMetadata(BaseModel):
    """Identifying metadata extracted from an application package."""

    model_config = ConfigDict(frozen=True)

    display_name: str | None = Field(
        default=None, description="CFBundleDisplayName, falling back to CFBundleName"
    )
    bundle_id: str | None = Field(default=None, description="CFBundleIdentifier")
    version: str | None = Field(default=None, description="CFBundleShortVersionString")

    @classmethod
    def from_properties(cls, properties: dict) -> "AppMetadata":
        """Build metadata from a decoded Info.plist dictionary."""
        display_name = properties.get("CFBundleDisplayName")
        if display_name is None:
            display_name = properties.get("CFBundleName")
        return cls(
            display_name=_as_text(display_name),
            bundle_id=_as_text(properties.get("CFBundleIdentifier")),
            version=_as_text(properties.get("CFBundleShortVersionString")),
        )

    def missing_fields(self) -> list[str]:
        """Return names of fields that were absent from the package."""
        return [name for name, value in self.model_dump().items() if value is None]


def _as_text(value: object) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


class TimeUnit(Enum):
    """Units accepted for the expiration delay."""

    SECONDS = "SECONDS"
    MINUTES = "MINUTES"
    HOURS = "HOURS"
    DAYS = "DAYS"

    @property
    def seconds(self) -> int:
        """Number of seconds in one unit."""
        return {
            TimeUnit.SECONDS: 1,
            TimeUnit.MINUTES: 60,
            TimeUnit.HOURS: 60 * 60,
            TimeUnit.DAYS: 24 * 60 * 60,
        }[self]


class ExpirationPolicy(BaseModel):
    """How long a published bucket stays alive."""

    model_config = ConfigDict(frozen=True)

    delay: PositiveInt = Field(default=30, description="Delay before deletion")
    unit: TimeUnit = Field(default=TimeUnit.MINUTES, description="Unit of the delay")

    @field_validator("unit", mode="before")
    @classmethod
    def validate_unit(cls, v):
        """Accept unit names in any case."""
        if isinstance(v, str):
            return TimeUnit(v.strip().upper())
        return v

    def to_seconds(self) -> float:
        """Return the delay in seconds."""
        return float(self.delay * self.unit.seconds)

    def describe(self) -> str:
        """Human-readable form used on the result page, e.g. '30 minutes'."""
        unit = self.unit.value.lower()
        if self.delay == 1:
            unit = unit[:-1]
        return f"{self.delay} {unit}"


class ContainerVisibility(Enum):
    """Visibility states of a per-request bucket."""

    WRITABLE_PUBLIC = "writable_public"
    OBJECTS_PUBLIC = "objects_public"
    READ_ONLY_PUBLIC = "read_only_public"
    DELETED = "deleted"


class ObjectState(Enum):
    """Visibility of a single object inside a bucket."""

    UPLOADED = "uploaded"
    PUBLIC = "public"


_ALLOWED_TRANSITIONS: dict[ContainerVisibility, set[ContainerVisibility]] = {
    ContainerVisibility.WRITABLE_PUBLIC: {
        ContainerVisibility.OBJECTS_PUBLIC,
        ContainerVisibility.DELETED,
    },
    ContainerVisibility.OBJECTS_PUBLIC: {
        ContainerVisibility.READ_ONLY_PUBLIC,
        ContainerVisibility.DELETED,
    },
    ContainerVisibility.READ_ONLY_PUBLIC: {ContainerVisibility.DELETED},
    ContainerVisibility.DELETED: set(),
}


@dataclass
class StorageContainer:
    """
    A uniquely named public bucket and its visibility state.

    Records every upload and object ACL change so that the ordering
    rules hold regardless of the storage backend:
    - an object can only be made public after its upload completed
    - the bucket only becomes OBJECTS_PUBLIC once every required object is public
    - the bucket can only be narrowed to read-only from OBJECTS_PUBLIC

    Deletion is allowed from any state and is idempotent.
    """

    name: str
    visibility: ContainerVisibility = ContainerVisibility.WRITABLE_PUBLIC
    required_keys: tuple[str, ...] = (PACKAGE_KEY, MANIFEST_KEY)
    objects: dict[str, ObjectState] = field(default_factory=dict)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def is_deleted(self) -> bool:
        return self.visibility is ContainerVisibility.DELETED

    def transition(self, target: ContainerVisibility) -> None:
        """Move to a new visibility state, rejecting illegal transitions."""
        with self._lock:
            if target is ContainerVisibility.DELETED:
                self.visibility = target
                return
            if target not in _ALLOWED_TRANSITIONS[self.visibility]:
                raise ContainerStateError(
                    f"Cannot move bucket from {self.visibility.value} to {target.value}",
                    bucket=self.name,
                    current=self.visibility.value,
                    requested=target.value,
                )
            self.visibility = target

    def require(self, state: ContainerVisibility) -> None:
        """Raise unless the bucket is currently in the given state."""
        with self._lock:
            if self.visibility is not state:
                raise ContainerStateError(
                    f"Bucket must be {state.value}, is {self.visibility.value}",
                    bucket=self.name,
                    current=self.visibility.value,
                    requested=state.value,
                )

    def record_upload(self, key: str) -> None:
        """Record that an upload of the given key completed."""
        with self._lock:
            self.require(ContainerVisibility.WRITABLE_PUBLIC)
            self.objects[key] = ObjectState.UPLOADED

    def require_uploaded(self, key: str) -> None:
        """Raise unless the given key was uploaded into this bucket."""
        with self._lock:
            if key not in self.objects:
                raise ContainerStateError(
                    f"Object '{key}' cannot be made public before it is uploaded",
                    bucket=self.name,
                    current=self.visibility.value,
                    requested=ObjectState.PUBLIC.value,
                )

    def mark_object_public(self, key: str) -> None:
        """Record a public-read ACL on an uploaded object."""
        with self._lock:
            self.require(ContainerVisibility.WRITABLE_PUBLIC)
            self.require_uploaded(key)
            self.objects[key] = ObjectState.PUBLIC
            if all(self.objects.get(k) is ObjectState.PUBLIC for k in self.required_keys):
                self.transition(ContainerVisibility.OBJECTS_PUBLIC)

    def mark_deleted(self) -> None:
        with self._lock:
            self.objects.clear()
            self.transition(ContainerVisibility.DELETED)


class PublishedArtifact(BaseModel):
    """An object published into a bucket together with its public URL."""

    model_config = ConfigDict(frozen=True)

    bucket: str = Field(description="Bucket holding the object")
    key: str = Field(description="Object key")
    url: str = Field(description="Public HTTPS URL of the object")


@dataclass
class PublishResult:
    """Outcome of a successful publication."""

    container: StorageContainer
    package: PublishedArtifact
    manifest: PublishedArtifact

    @property
    def artifacts(self) -> list[PublishedArtifact]:
        return [self.package, self.manifest]


class InstallLink(BaseModel):
    """Over-the-air install link pointing at a published manifest."""

    model_config = ConfigDict(frozen=True)

    manifest_url: str
    display_name: str | None = None

    @property
    def href(self) -> str:
        return f"itms-services://?action=download-manifest&url={self.manifest_url}"

    def render(self) -> str:
        """Render the link as an HTML anchor element."""
        return INSTALL_LINK_TEMPLATE.format(
            url=html.escape(self.manifest_url, quote=True),
            name=html.escape(self.display_name or ""),
        )


class PipelineState(Enum):
    """States a single publishing request moves through."""

    IDLE = "idle"
    PROVISIONED = "provisioned"
    METADATA_EXTRACTED = "metadata_extracted"
    MANIFEST_RENDERED = "manifest_rendered"
    PUBLISHED = "published"
    SCHEDULED = "scheduled"
    RESPONDED = "responded"
    FAILED = "failed"


@dataclass
class PipelineResult:
    """Final outcome of one pipeline run."""

    state: PipelineState
    bucket: str | None = None
    metadata: AppMetadata | None = None
    artifacts: list[PublishedArtifact] = field(default_factory=list)
    install_link: InstallLink | None = None
    error: ManifestGeneratorError | None = None
    failed_stage: PipelineState | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.RESPONDED
