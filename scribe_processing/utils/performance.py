"""Lightweight timing metrics for tasks and pipeline stages."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class TimingSummary:
    """Aggregate of the samples recorded for one label (seconds)."""

    average: float
    count: int
    latest: float

    def to_dict(self) -> Dict[str, float]:
        return {"average": self.average, "count": self.count, "latest": self.latest}


class PerformanceMonitor:
    """Records durations per label.

    Timers are keyed by label, so concurrent tasks must use distinct labels
    for in-flight timers (the scheduler prefixes them with the task id) and
    ``end_timer`` files the sample under ``metric`` when given.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.perf_counter
        self._timers: Dict[str, float] = {}
        self._samples: Dict[str, List[float]] = {}

    def start_timer(self, label: str) -> None:
        self._timers[label] = self._clock()

    def end_timer(self, label: str, metric: Optional[str] = None) -> float:
        """Stop a timer and record its duration.

        Args:
            label: Label passed to ``start_timer``
            metric: Label to record the sample under, defaults to ``label``

        Returns:
            Elapsed seconds, or 0.0 if the timer was never started
        """
        started = self._timers.pop(label, None)
        if started is None:
            logger.warning(f"Timer '{label}' was not started")
            return 0.0

        duration = self._clock() - started
        self._samples.setdefault(metric or label, []).append(duration)
        logger.debug(f"{metric or label}: {duration:.3f}s")
        return duration

    def cancel_timer(self, label: str) -> None:
        """Drop a running timer without recording a sample."""
        self._timers.pop(label, None)

    def get_average_time(self, label: str) -> float:
        samples = self._samples.get(label)
        if not samples:
            return 0.0
        return sum(samples) / len(samples)

    def get_metrics(self) -> Dict[str, TimingSummary]:
        """Summaries for every label with at least one sample."""
        return {
            label: TimingSummary(
                average=sum(samples) / len(samples),
                count=len(samples),
                latest=samples[-1],
            )
            for label, samples in self._samples.items()
            if samples
        }

    def log_metrics(self) -> None:
        metrics = self.get_metrics()
        logger.info("Performance metrics:")
        for label, summary in sorted(metrics.items()):
            logger.info(f"  {label}: avg {summary.average:.3f}s ({summary.count} samples)")

    def clear_metrics(self) -> None:
        self._samples.clear()
        self._timers.clear()
