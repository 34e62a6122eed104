"""Task orchestration: bounded-concurrency scheduling with per-id dedup."""

from .scheduler import SchedulerStatus, TaskScheduler, UpdateCallback

__all__ = ["SchedulerStatus", "TaskScheduler", "UpdateCallback"]
