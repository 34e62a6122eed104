"""Asynchronous processing and caching core for Scribe recordings.

Turns a raw recording reference into a transcript, an optional translation and
a summary. The package is organised leaves-first:

    utils.retry          RetryingCall - exponential backoff around fallible calls
    cache                CacheStore   - TTL/usage-weighted cache with durable mirror
    pipeline             Ordered stages (transcribe -> translate -> summarize)
    orchestration        TaskScheduler - bounded concurrency with per-id dedup

Usage::

    from scribe_processing import (
        CacheStore, ProcessingPipeline, ProcessingTask, StageOperations, TaskScheduler,
    )

    operations = StageOperations(transcribe=my_transcribe, summarize=my_summarize)
    scheduler = TaskScheduler(ProcessingPipeline.default(operations), max_concurrent=2)
    final = await scheduler.process(ProcessingTask(id="note-1", payload_ref=uri), save_note)
"""

from .cache import CacheStore, InMemoryDurableStore, SQLiteDurableStore
from .errors import MissingPayloadError, ProcessingError, TaskCancelledError
from .models import ProcessingTask, TaskResult, TaskStage, TranscriptionOutcome
from .orchestration import SchedulerStatus, TaskScheduler
from .pipeline import CachedStageOperations, ProcessingPipeline, StageOperations
from .utils.retry import RetryConfig, RetryingCall

__version__ = "1.0.0"

__all__ = [
    "CacheStore",
    "CachedStageOperations",
    "InMemoryDurableStore",
    "MissingPayloadError",
    "ProcessingError",
    "ProcessingPipeline",
    "ProcessingTask",
    "RetryConfig",
    "RetryingCall",
    "SQLiteDurableStore",
    "SchedulerStatus",
    "StageOperations",
    "TaskCancelledError",
    "TaskResult",
    "TaskScheduler",
    "TaskStage",
    "TranscriptionOutcome",
]
