"""Tests for deferred bucket deletion."""

import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from manifest_generator.core.exceptions import ScheduleFailureError, StorageError
from manifest_generator.core.models import ExpirationPolicy, StorageContainer
from manifest_generator.lifecycle import DeletionScheduler, SchedulerStatus


@pytest.fixture
def provisioner() -> MagicMock:
    return MagicMock(name="provisioner")


@pytest.fixture
def scheduler(provisioner: MagicMock):
    sched = DeletionScheduler(provisioner)
    yield sched
    sched.shutdown()


ONE_SECOND = ExpirationPolicy(delay=1, unit="SECONDS")
ONE_HOUR = ExpirationPolicy(delay=1, unit="HOURS")


class TestScheduleDeletion:
    """Tests for DeletionScheduler.schedule_deletion."""

    def test_timer_uses_policy_delay(self, scheduler: DeletionScheduler) -> None:
        entry = scheduler.schedule_deletion(StorageContainer(name="apps-1"), ExpirationPolicy())
        assert entry.delay_seconds == 1800
        assert entry.timer.interval == 1800
        assert entry.timer.daemon
        assert entry.due_at == pytest.approx(entry.scheduled_at + 1800)
        assert scheduler.pending() == ["apps-1"]

    def test_deletes_after_delay_not_before(
        self, scheduler: DeletionScheduler, provisioner: MagicMock
    ) -> None:
        fired = threading.Event()
        provisioner.destroy.side_effect = lambda container: fired.set()
        container = StorageContainer(name="apps-1")

        started = time.monotonic()
        entry = scheduler.schedule_deletion(container, ONE_SECOND)
        assert provisioner.destroy.call_count == 0

        assert fired.wait(timeout=5)
        entry.timer.join(timeout=5)
        assert time.monotonic() - started >= 0.9
        provisioner.destroy.assert_called_once_with(container)
        assert scheduler.pending() == []

    def test_pending_until_deletion_finishes(
        self, scheduler: DeletionScheduler, provisioner: MagicMock
    ) -> None:
        """A bucket stays pending while its deletion is still running."""
        started = threading.Event()
        release = threading.Event()

        def slow_destroy(container: StorageContainer) -> None:
            started.set()
            release.wait(timeout=5)

        provisioner.destroy.side_effect = slow_destroy
        entry = scheduler.schedule_deletion(StorageContainer(name="apps-1"), ONE_SECOND)

        assert started.wait(timeout=5)
        assert scheduler.pending() == ["apps-1"]

        release.set()
        entry.timer.join(timeout=5)
        assert scheduler.pending() == []

    def test_timers_are_independent(self, scheduler: DeletionScheduler) -> None:
        scheduler.schedule_deletion(StorageContainer(name="apps-1"), ONE_HOUR)
        scheduler.schedule_deletion(StorageContainer(name="apps-2"), ONE_HOUR)
        assert scheduler.pending() == ["apps-1", "apps-2"]

    def test_rescheduling_replaces_timer(self, scheduler: DeletionScheduler) -> None:
        container = StorageContainer(name="apps-1")
        first = scheduler.schedule_deletion(container, ONE_HOUR)
        second = scheduler.schedule_deletion(container, ONE_HOUR)
        assert first.timer.finished.is_set()
        assert not second.timer.finished.is_set()
        assert scheduler.pending() == ["apps-1"]

    def test_deletion_failure_is_logged(
        self, scheduler: DeletionScheduler, provisioner: MagicMock
    ) -> None:
        done = threading.Event()

        def fail(container: StorageContainer) -> None:
            done.set()
            raise StorageError("boom", bucket=container.name)

        provisioner.destroy.side_effect = fail
        scheduler.schedule_deletion(StorageContainer(name="apps-1"), ONE_SECOND)
        assert done.wait(timeout=5)
        assert provisioner.destroy.call_count == 1

    def test_stopped_scheduler_rejects(self, scheduler: DeletionScheduler) -> None:
        scheduler.shutdown()
        assert scheduler.status is SchedulerStatus.STOPPED
        with pytest.raises(ScheduleFailureError):
            scheduler.schedule_deletion(StorageContainer(name="apps-1"), ONE_HOUR)

    def test_timer_start_failure(self, scheduler: DeletionScheduler) -> None:
        with patch("threading.Timer.start", side_effect=RuntimeError("can't start new thread")):
            with pytest.raises(ScheduleFailureError) as exc_info:
                scheduler.schedule_deletion(StorageContainer(name="apps-1"), ONE_HOUR)
        assert exc_info.value.bucket == "apps-1"
        assert scheduler.pending() == []


class TestCancellation:
    """Tests for cancel, cancel_and_delete_now and shutdown."""

    def test_cancel(self, scheduler: DeletionScheduler, provisioner: MagicMock) -> None:
        entry = scheduler.schedule_deletion(StorageContainer(name="apps-1"), ONE_HOUR)
        assert scheduler.cancel("apps-1") is True
        assert entry.timer.finished.is_set()
        assert scheduler.cancel("apps-1") is False
        provisioner.destroy.assert_not_called()

    def test_cancel_and_delete_now(
        self, scheduler: DeletionScheduler, provisioner: MagicMock
    ) -> None:
        container = StorageContainer(name="apps-1")
        scheduler.schedule_deletion(container, ONE_HOUR)

        assert scheduler.cancel_and_delete_now(container) is True

        provisioner.destroy.assert_called_once_with(container)
        assert scheduler.pending() == []

    def test_cancel_and_delete_now_without_timer(
        self, scheduler: DeletionScheduler, provisioner: MagicMock
    ) -> None:
        container = StorageContainer(name="apps-1")
        assert scheduler.cancel_and_delete_now(container) is True
        provisioner.destroy.assert_called_once_with(container)

    def test_cancel_and_delete_now_swallows_errors(
        self, scheduler: DeletionScheduler, provisioner: MagicMock
    ) -> None:
        """Immediate deletion is best-effort and never raises."""
        provisioner.destroy.side_effect = StorageError("boom")
        assert scheduler.cancel_and_delete_now(StorageContainer(name="apps-1")) is False

    def test_shutdown_cancels_without_deleting(
        self, scheduler: DeletionScheduler, provisioner: MagicMock
    ) -> None:
        entry = scheduler.schedule_deletion(StorageContainer(name="apps-1"), ONE_HOUR)
        scheduler.shutdown()
        assert entry.timer.finished.is_set()
        assert scheduler.pending() == []
        provisioner.destroy.assert_not_called()

    def test_shutdown_can_delete_pending(
        self, scheduler: DeletionScheduler, provisioner: MagicMock
    ) -> None:
        scheduler.schedule_deletion(StorageContainer(name="apps-1"), ONE_HOUR)
        scheduler.shutdown(delete_pending=True)
        provisioner.destroy.assert_called_once()
        assert provisioner.destroy.call_args.args[0].name == "apps-1"
