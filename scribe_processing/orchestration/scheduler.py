"""Bounded-concurrency scheduler driving tasks through the processing pipeline.

Guarantees:
- At most ``max_concurrent`` tasks run pipeline stages at the same time.
- At most one execution per task id is in flight; a duplicate submit gets
  the in-flight execution back.
- Every execution resolves to the final ``ProcessingTask`` (COMPLETED or
  FAILED). Stage errors never escape the execution.

Everything here runs on one event loop. The registry and the counters are
only touched between awaits, so no locks are needed.
"""
from __future__ import annotations

import asyncio
import functools
import inspect
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ..errors import MissingPayloadError, TaskCancelledError
from ..models import ProcessingTask, TaskStage
from ..pipeline import PipelineStage, ProcessingPipeline
from ..utils.performance import PerformanceMonitor
from ..utils.retry import RetryConfig, RetryingCall

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[ProcessingTask], Any]

METRICS_LOG_INTERVAL = 5


@dataclass
class SchedulerStatus:
    """Snapshot of scheduler load.

    Attributes:
        queue_size: Registered executions, admitted or waiting for a slot
        current_processing: Executions holding a slot
        max_concurrent: Slot count
    """

    queue_size: int
    current_processing: int
    max_concurrent: int

    @property
    def waiting(self) -> int:
        return max(0, self.queue_size - self.current_processing)

    def to_dict(self) -> Dict[str, int]:
        return {
            "queue_size": self.queue_size,
            "current_processing": self.current_processing,
            "max_concurrent": self.max_concurrent,
            "waiting": self.waiting,
        }


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


class TaskScheduler:
    """Runs processing tasks with a concurrency ceiling and per-id dedup.

    Example:
        scheduler = TaskScheduler(ProcessingPipeline.default(operations), max_concurrent=2)
        final = await scheduler.process(task, save_note)
        if final.stage is TaskStage.FAILED:
            logger.warning(final.error)
    """

    def __init__(
        self,
        pipeline: Optional[ProcessingPipeline] = None,
        max_concurrent: int = 2,
        retry_config: Optional[RetryConfig] = None,
        retrying_call: Optional[RetryingCall] = None,
        monitor: Optional[PerformanceMonitor] = None,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self.pipeline = pipeline
        self.max_concurrent = max_concurrent
        self.retrying_call = retrying_call or RetryingCall(retry_config)
        self.monitor = monitor or PerformanceMonitor()

        # Created on first use so it binds to the loop that runs the tasks
        self._slots: Optional[asyncio.Semaphore] = None
        self._registry: Dict[str, asyncio.Task] = {}
        self._cancelling: Dict[str, asyncio.Task] = {}
        self._cancel_requested: Set[asyncio.Task] = set()
        self._started: Set[asyncio.Task] = set()
        self._current_processing = 0
        self._completed_count = 0
        self._run_ids = itertools.count(1)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def submit(
        self,
        task: ProcessingTask,
        on_update: Optional[UpdateCallback] = None,
        *,
        pipeline: Optional[ProcessingPipeline] = None,
    ) -> asyncio.Task:
        """Start processing ``task`` unless an execution for its id is in flight.

        Must be called from a running event loop. The task object passed in
        is not mutated; callbacks and the returned execution carry copies.

        Args:
            task: Task to process
            on_update: Called with a snapshot after each stage and at the end
            pipeline: Overrides the scheduler's pipeline for this task

        Returns:
            The execution, resolving to the final ``ProcessingTask``
        """
        existing = self._registry.get(task.id)
        if existing is not None:
            logger.info(f"Task {task.id} is already being processed")
            return existing

        active_pipeline = pipeline or self.pipeline
        if active_pipeline is None:
            raise ValueError("No pipeline configured for TaskScheduler")

        working = task.snapshot()
        if working.is_terminal:
            working.stage = TaskStage.QUEUED
            working.error = None

        previous = self._cancelling.get(task.id)
        execution = asyncio.get_running_loop().create_task(
            self._run(working, on_update, active_pipeline, previous), name=f"process-{task.id}"
        )
        self._registry[task.id] = execution
        return execution

    async def process(
        self,
        task: ProcessingTask,
        on_update: Optional[UpdateCallback] = None,
        *,
        pipeline: Optional[ProcessingPipeline] = None,
    ) -> ProcessingTask:
        """Submit ``task`` and wait for its final state.

        Cancelling the caller does not cancel a shared execution.
        """
        execution = self.submit(task, on_update, pipeline=pipeline)
        return await asyncio.shield(execution)

    def cancel(self, task_id: str) -> bool:
        """Cancel the in-flight execution for ``task_id``.

        The id is deregistered immediately. The execution ends FAILED with
        "Processing cancelled". A resubmitted execution for the same id waits
        for the cancelled one to settle before it reports anything.

        Returns:
            True if an execution was in flight
        """
        execution = self._registry.pop(task_id, None)
        if execution is None:
            return False

        logger.info(f"Cancelling processing for task: {task_id}")
        self._cancel_requested.add(execution)
        self._cancelling[task_id] = execution
        # Not-yet-started executions notice the request on their first step
        if execution in self._started:
            execution.cancel()
        return True

    def is_processing(self, task_id: str) -> bool:
        return task_id in self._registry

    def get_status(self) -> SchedulerStatus:
        return SchedulerStatus(
            queue_size=len(self._registry),
            current_processing=self._current_processing,
            max_concurrent=self.max_concurrent,
        )

    def resume(
        self,
        tasks: Iterable[ProcessingTask],
        on_update: Optional[UpdateCallback] = None,
    ) -> List[asyncio.Task]:
        """Re-submit interrupted tasks (recording present, transcript missing).

        Returns:
            Executions started by this call
        """
        started = []
        for task in tasks:
            if task.needs_processing and not self.is_processing(task.id):
                logger.info(f"Resuming processing for task: {task.id}")
                started.append(self.submit(task, on_update))
        return started

    async def shutdown(self) -> List[ProcessingTask]:
        """Cancel every in-flight execution and wait for them to settle."""
        executions = list(self._registry.values()) + list(self._cancelling.values())
        for task_id in list(self._registry):
            self.cancel(task_id)
        results = await asyncio.gather(*executions, return_exceptions=True)
        return [result for result in results if isinstance(result, ProcessingTask)]

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    async def _run(
        self,
        task: ProcessingTask,
        on_update: Optional[UpdateCallback],
        pipeline: ProcessingPipeline,
        previous: Optional[asyncio.Task] = None,
    ) -> ProcessingTask:
        execution = asyncio.current_task()
        self._started.add(execution)
        run_label = f"{task.id}#{next(self._run_ids)}"
        admitted = False

        try:
            if previous is not None and not previous.done():
                await asyncio.wait({previous})
            if execution in self._cancel_requested:
                raise TaskCancelledError(task.id)
            if not task.payload_ref:
                raise MissingPayloadError(task.id)

            slots = self._slot_semaphore()
            if slots.locked():
                logger.info(f"Processing queue full, task {task.id} waiting for a slot")
            await slots.acquire()
            admitted = True
            self._current_processing += 1

            logger.info(f"Starting background processing for task: {task.id}")
            self.monitor.start_timer(run_label)
            await self._run_stages(task, on_update, pipeline, run_label)

            task.mark_completed()
            await self._report(on_update, task)
            self.monitor.end_timer(run_label, metric="processing")
            logger.info(f"Processing completed for task: {task.id}")

            self._completed_count += 1
            if self._completed_count % METRICS_LOG_INTERVAL == 0:
                self.monitor.log_metrics()
            return task

        except asyncio.CancelledError:
            if execution not in self._cancel_requested:
                raise
            await self._fail(task, on_update, TaskCancelledError(task.id))
            return task

        except TaskCancelledError as e:
            await self._fail(task, on_update, e)
            return task

        except Exception as e:
            logger.error(f"Failed to process task {task.id}: {_error_message(e)}")
            await self._fail(task, on_update, e)
            return task

        finally:
            if admitted:
                self._current_processing -= 1
                self._slots.release()
            self.monitor.cancel_timer(run_label)
            self._started.discard(execution)
            self._cancel_requested.discard(execution)
            if self._registry.get(task.id) is execution:
                del self._registry[task.id]
            if self._cancelling.get(task.id) is execution:
                del self._cancelling[task.id]

    def _slot_semaphore(self) -> asyncio.Semaphore:
        if self._slots is None:
            self._slots = asyncio.Semaphore(self.max_concurrent)
        return self._slots

    async def _run_stages(
        self,
        task: ProcessingTask,
        on_update: Optional[UpdateCallback],
        pipeline: ProcessingPipeline,
        run_label: str,
    ) -> None:
        for stage in pipeline:
            if not stage.should_run(task, pipeline.context):
                logger.debug(f"Skipping {stage.name} for task {task.id}")
                continue

            task.stage = stage.stage
            logger.info(f"Running {stage.name} for task: {task.id}")
            output = await self._execute_stage(stage, task, pipeline, run_label)
            stage.apply(task, output)
            await self._report(on_update, task)

    async def _execute_stage(
        self,
        stage: PipelineStage,
        task: ProcessingTask,
        pipeline: ProcessingPipeline,
        run_label: str,
    ) -> Any:
        timer = f"{run_label}:{stage.name}"
        self.monitor.start_timer(timer)
        try:
            output = await self.retrying_call.run(
                functools.partial(stage.execute, task, pipeline.context)
            )
        except BaseException:
            # Only successful stages are recorded
            self.monitor.cancel_timer(timer)
            raise
        self.monitor.end_timer(timer, metric=stage.name)
        return output

    async def _fail(
        self,
        task: ProcessingTask,
        on_update: Optional[UpdateCallback],
        error: BaseException,
    ) -> None:
        task.mark_failed(_error_message(error))
        try:
            await self._report(on_update, task)
        except Exception as update_error:
            logger.error(f"Failed to update task {task.id} with error state: {update_error}")

    async def _report(self, on_update: Optional[UpdateCallback], task: ProcessingTask) -> None:
        if on_update is None:
            return
        result = on_update(task.snapshot())
        if inspect.isawaitable(result):
            await result
