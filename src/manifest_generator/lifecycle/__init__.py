"""
Bucket lifecycle.

Deferred and immediate deletion of per-request buckets.
"""

from .scheduler import DeletionScheduler, ScheduledDeletion, SchedulerStatus

__all__ = [
    "DeletionScheduler",
    "ScheduledDeletion",
    "SchedulerStatus",
]
