"""Exception types raised by the processing core."""
from __future__ import annotations

from typing import Optional


class ProcessingError(Exception):
    """Base class for processing-core errors."""


class MissingPayloadError(ProcessingError):
    """Raised when a task is submitted without a recording reference."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__("No recording reference found")


class TaskCancelledError(ProcessingError):
    """Describes a task whose execution was cancelled through the scheduler."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__("Processing cancelled")


class DurableStoreError(ProcessingError):
    """Raised by durable key-value backends when an I/O operation fails.

    Attributes:
        operation: Backend operation that failed (get, set, delete, list_keys)
        key: Storage key involved, if any
    """

    def __init__(self, operation: str, key: Optional[str], cause: Exception) -> None:
        self.operation = operation
        self.key = key
        self.cause = cause
        target = f" for '{key}'" if key else ""
        super().__init__(f"Durable store {operation} failed{target}: {cause}")
