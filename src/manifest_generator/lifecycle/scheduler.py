"""
Deferred bucket deletion.

Every published bucket gets a single-shot timer that destroys it once the
expiration policy elapses. Timers run on their own daemon threads, are
keyed by bucket name and are independent of each other; the failure path
can pre-empt a timer by deleting the bucket immediately.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum

from manifest_generator.core.exceptions import ScheduleFailureError, StorageError
from manifest_generator.core.models import ExpirationPolicy, StorageContainer
from manifest_generator.storage.provisioner import StorageProvisioner

logger = logging.getLogger(__name__)


class SchedulerStatus(Enum):
    """Status of the deletion scheduler."""

    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class ScheduledDeletion:
    """A pending deletion of one bucket."""

    bucket: str
    delay_seconds: float
    scheduled_at: float
    timer: threading.Timer

    @property
    def due_at(self) -> float:
        return self.scheduled_at + self.delay_seconds


class DeletionScheduler:
    """
    Schedules and performs bucket deletion.

    Deletion failures are logged and never retried; the bucket lifecycle
    rule set at provisioning time still expires the tagged objects.
    """

    def __init__(self, provisioner: StorageProvisioner):
        self._provisioner = provisioner
        self._pending: dict[str, ScheduledDeletion] = {}
        self._lock = threading.Lock()
        self._status = SchedulerStatus.RUNNING

    @property
    def status(self) -> SchedulerStatus:
        return self._status

    def schedule_deletion(
        self,
        container: StorageContainer,
        policy: ExpirationPolicy,
    ) -> ScheduledDeletion:
        """
        Register a timer that destroys the bucket after the policy delay.

        Args:
            container: Bucket to delete
            policy: Expiration policy

        Returns:
            The ScheduledDeletion record

        Raises:
            ScheduleFailureError: If the scheduler is stopped or the timer cannot start
        """
        if self._status is SchedulerStatus.STOPPED:
            raise ScheduleFailureError("Scheduler is stopped", bucket=container.name)

        delay = policy.to_seconds()
        timer = threading.Timer(delay, self._fire, args=(container,))
        timer.daemon = True
        timer.name = f"delete-{container.name}"

        entry = ScheduledDeletion(
            bucket=container.name,
            delay_seconds=delay,
            scheduled_at=time.monotonic(),
            timer=timer,
        )

        with self._lock:
            previous = self._pending.pop(container.name, None)
            if previous is not None:
                previous.timer.cancel()
            self._pending[container.name] = entry

        try:
            timer.start()
        except RuntimeError as e:
            with self._lock:
                self._pending.pop(container.name, None)
            raise ScheduleFailureError(
                f"Failed to start deletion timer: {e}", bucket=container.name
            ) from e

        logger.info(
            f"Bucket '{container.name}' scheduled for deletion in {policy.describe()}"
        )
        return entry

    def _fire(self, container: StorageContainer) -> None:
        with self._lock:
            entry = self._pending.get(container.name)
            if entry is None or entry.timer is not threading.current_thread():
                return
        # The entry stays pending until the bucket is actually gone
        try:
            self._destroy(container)
        finally:
            with self._lock:
                if self._pending.get(container.name) is entry:
                    del self._pending[container.name]

    def _destroy(self, container: StorageContainer) -> bool:
        try:
            self._provisioner.destroy(container)
            return True
        except StorageError as e:
            logger.error(f"Failed to delete bucket '{container.name}': {e}")
            return False

    def cancel(self, bucket: str) -> bool:
        """
        Cancel a pending deletion without deleting anything.

        Returns:
            True if a pending timer was cancelled
        """
        with self._lock:
            entry = self._pending.pop(bucket, None)
        if entry is None:
            return False
        entry.timer.cancel()
        return True

    def cancel_and_delete_now(self, container: StorageContainer) -> bool:
        """
        Cancel any pending timer and delete the bucket synchronously.

        Best-effort: failures are logged, not retried and not raised.

        Returns:
            True if the bucket is gone afterwards
        """
        self.cancel(container.name)
        return self._destroy(container)

    def pending(self) -> list[str]:
        """Names of buckets whose deletion has not finished yet."""
        with self._lock:
            return sorted(self._pending)

    def shutdown(self, delete_pending: bool = False) -> None:
        """
        Stop the scheduler and cancel all pending timers.

        Args:
            delete_pending: Delete the buckets of cancelled timers right away
        """
        self._status = SchedulerStatus.STOPPED
        with self._lock:
            entries = list(self._pending.values())
            self._pending.clear()

        for entry in entries:
            entry.timer.cancel()
            if delete_pending:
                self._destroy(StorageContainer(name=entry.bucket))

        if entries:
            logger.info(f"Cancelled {len(entries)} pending deletion(s)")
