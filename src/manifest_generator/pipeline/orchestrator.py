"""
Pipeline Orchestrator - one publishing request end to end.

Runs provision → inspect → render → publish → schedule for a single
uploaded package and owns the failure and cleanup policy:
- any failure after provisioning deletes the bucket immediately (best-effort)
- the uploaded package file is released on every exit path
- a failed deletion schedule is logged and tolerated, since the bucket
  lifecycle rule still expires the objects
"""

import atexit
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

from manifest_generator.config import Settings
from manifest_generator.core.exceptions import (
    ManifestGeneratorError,
    PipelineError,
    ScheduleFailureError,
)
from manifest_generator.core.models import (
    PACKAGE_KEY,
    AppMetadata,
    ExpirationPolicy,
    InstallLink,
    PipelineResult,
    PipelineState,
    PublishResult,
    StorageContainer,
)
from manifest_generator.inspector.archive import ArchiveInspector
from manifest_generator.lifecycle.scheduler import DeletionScheduler
from manifest_generator.manifest.generator import TemplateStore, render_manifest
from manifest_generator.storage.provisioner import StorageProvisioner
from manifest_generator.storage.publisher import Publisher

logger = logging.getLogger(__name__)

_FORWARD = {
    PipelineState.IDLE: PipelineState.PROVISIONED,
    PipelineState.PROVISIONED: PipelineState.METADATA_EXTRACTED,
    PipelineState.METADATA_EXTRACTED: PipelineState.MANIFEST_RENDERED,
    PipelineState.MANIFEST_RENDERED: PipelineState.PUBLISHED,
    PipelineState.PUBLISHED: PipelineState.SCHEDULED,
    PipelineState.SCHEDULED: PipelineState.RESPONDED,
}


_deferred_paths: set[Path] = set()
_deferred_lock = threading.Lock()
_exit_handler_registered = False


def _delete_deferred() -> None:
    with _deferred_lock:
        paths = list(_deferred_paths)
        _deferred_paths.clear()
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete {path} at exit: {e}")


def _defer_deletion(path: Path) -> None:
    """Queue a path for deletion at interpreter exit."""
    global _exit_handler_registered
    with _deferred_lock:
        _deferred_paths.add(path)
        if not _exit_handler_registered:
            atexit.register(_delete_deferred)
            _exit_handler_registered = True


def release_local_file(path: Path) -> bool:
    """
    Delete a request-owned local file.

    If it cannot be deleted now, deletion is retried at interpreter exit.

    Returns:
        True if the file was deleted immediately
    """
    try:
        path.unlink(missing_ok=True)
        return True
    except OSError as e:
        logger.warning(f"Failed to delete {path}, deferring to exit: {e}")
        _defer_deletion(path)
        return False


@dataclass
class RunContext:
    """Mutable state of one pipeline run."""

    package_path: Path
    filename: str | None = None
    state: PipelineState = PipelineState.IDLE
    container: StorageContainer | None = None
    metadata: AppMetadata | None = None
    manifest: str | None = None
    published: PublishResult | None = None
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])

    def advance(self, target: PipelineState) -> None:
        """Move one step forward; skipping a step is a programming error."""
        expected = _FORWARD.get(self.state)
        if target is not expected:
            raise PipelineError(
                f"Illegal pipeline transition {self.state.value} -> {target.value}",
                stage=self.state.value,
            )
        self.state = target
        self.history.append(target)


class Orchestrator:
    """
    Composes inspector, provisioner, publisher and scheduler.

    Instances are shared across requests; all per-request state lives in
    a RunContext local to run().
    """

    def __init__(
        self,
        provisioner: StorageProvisioner,
        publisher: Publisher,
        scheduler: DeletionScheduler,
        inspector: ArchiveInspector | None = None,
        templates: TemplateStore | None = None,
        expiration: ExpirationPolicy | None = None,
    ):
        self._provisioner = provisioner
        self._publisher = publisher
        self._scheduler = scheduler
        self._inspector = inspector or ArchiveInspector()
        self._templates = templates or TemplateStore()
        self._expiration = expiration or ExpirationPolicy()

    @classmethod
    def from_settings(cls, settings: Settings, client) -> "Orchestrator":
        """Wire all components around a shared S3 client."""
        provisioner = StorageProvisioner(
            client,
            region=settings.aws_region,
            storage_domain=settings.storage_domain,
            sweep_workers=settings.worker_pool_size,
        )
        return cls(
            provisioner=provisioner,
            publisher=Publisher(client, provisioner),
            scheduler=DeletionScheduler(provisioner),
            templates=TemplateStore(settings.template_dir),
            expiration=settings.expiration_policy,
        )

    @property
    def provisioner(self) -> StorageProvisioner:
        return self._provisioner

    @property
    def scheduler(self) -> DeletionScheduler:
        return self._scheduler

    @property
    def templates(self) -> TemplateStore:
        return self._templates

    @property
    def expiration(self) -> ExpirationPolicy:
        return self._expiration

    def run(self, package_path: Path, filename: str | None = None) -> PipelineResult:
        """
        Publish one package.

        The package file is owned by the pipeline from here on and is
        deleted before this method returns.

        Args:
            package_path: Local archive file
            filename: Original upload name, for logging

        Returns:
            PipelineResult in RESPONDED or FAILED
        """
        ctx = RunContext(package_path=Path(package_path), filename=filename)
        policy = self._expiration
        logger.info(f"Processing file '{filename or ctx.package_path.name}'")

        error: ManifestGeneratorError | None = None
        failed_stage: PipelineState | None = None
        try:
            self._execute(ctx, policy)
        except ManifestGeneratorError as e:
            error, failed_stage = e, ctx.state
            logger.error(f"Pipeline failed at {ctx.state.value}: {e}")
        except Exception as e:
            failed_stage = ctx.state
            logger.exception(f"Unexpected pipeline failure at {ctx.state.value}")
            error = PipelineError(f"Unexpected error: {e}", stage=ctx.state.value)
            error.__cause__ = e
        finally:
            release_local_file(ctx.package_path)

        if error is not None:
            self._cleanup_failed(ctx)
            return PipelineResult(
                state=PipelineState.FAILED,
                bucket=ctx.container.name if ctx.container else None,
                metadata=ctx.metadata,
                error=error,
                failed_stage=failed_stage,
            )

        ctx.advance(PipelineState.RESPONDED)
        published = ctx.published
        link = InstallLink(
            manifest_url=published.manifest.url,
            display_name=ctx.metadata.display_name,
        )
        logger.info(f"Generated link is: {link.render()}")
        return PipelineResult(
            state=ctx.state,
            bucket=ctx.container.name,
            metadata=ctx.metadata,
            artifacts=published.artifacts,
            install_link=link,
        )

    def _execute(self, ctx: RunContext, policy: ExpirationPolicy) -> None:
        ctx.container = self._provisioner.provision()
        ctx.advance(PipelineState.PROVISIONED)

        ctx.metadata = self._inspector.extract_metadata(ctx.package_path)
        ctx.advance(PipelineState.METADATA_EXTRACTED)

        logger.info("Generating manifest file...")
        package_url = self._provisioner.public_url(ctx.container.name, PACKAGE_KEY)
        ctx.manifest = render_manifest(
            self._templates.manifest_template(), ctx.metadata, package_url
        )
        ctx.advance(PipelineState.MANIFEST_RENDERED)

        ctx.published = self._publisher.publish(ctx.container, ctx.package_path, ctx.manifest)
        ctx.advance(PipelineState.PUBLISHED)

        try:
            self._scheduler.schedule_deletion(ctx.container, policy)
        except ScheduleFailureError as e:
            logger.warning(
                f"Deletion of bucket '{ctx.container.name}' left to lifecycle rule: {e}"
            )
        ctx.advance(PipelineState.SCHEDULED)

    def _cleanup_failed(self, ctx: RunContext) -> None:
        """Delete the bucket of a failed run, if one was provisioned."""
        if ctx.container is None:
            return
        if not self._scheduler.cancel_and_delete_now(ctx.container):
            logger.error(
                f"Bucket '{ctx.container.name}' could not be deleted, "
                "relying on lifecycle rule"
            )
