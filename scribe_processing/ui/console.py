"""Rich console rendering of scheduler, cache and timing diagnostics."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..cache import CacheStats
from ..orchestration import SchedulerStatus
from ..utils.performance import TimingSummary

Metrics = Mapping[str, Union[TimingSummary, Mapping[str, Any]]]


def _format_timestamp(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value).strftime("%H:%M:%S")


def _as_summary(value: Union[TimingSummary, Mapping[str, Any]]) -> Dict[str, Any]:
    if isinstance(value, TimingSummary):
        return value.to_dict()
    return dict(value)


def build_status_table(status: SchedulerStatus) -> Table:
    table = Table(title="Scheduler", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("In flight", str(status.queue_size))
    table.add_row("Processing", f"{status.current_processing}/{status.max_concurrent}")
    table.add_row("Waiting for slot", str(status.waiting))
    return table


def build_cache_table(stats: CacheStats) -> Table:
    table = Table(title="Cache", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Entries", str(stats.size))
    table.add_row("Hit rate", f"{stats.hit_rate * 100:.1f}%")
    table.add_row("Hits / misses", f"{stats.hits} / {stats.misses}")
    table.add_row("Memory (est.)", f"{stats.memory_usage / 1024:.1f} KB")
    table.add_row("Avg. accesses", f"{stats.average_access_count:.2f}")
    table.add_row("Eviction rate", f"{stats.eviction_rate * 100:.1f}%")
    table.add_row("Oldest entry", _format_timestamp(stats.oldest_item))
    table.add_row("Newest entry", _format_timestamp(stats.newest_item))
    return table


def build_timing_table(metrics: Metrics) -> Table:
    table = Table(title="Stage Timings", show_header=True)
    table.add_column("Stage", style="cyan")
    table.add_column("Average", style="green", justify="right")
    table.add_column("Latest", justify="right")
    table.add_column("Samples", style="bold", justify="right")

    for label in sorted(metrics):
        summary = _as_summary(metrics[label])
        table.add_row(
            label,
            f"{summary.get('average', 0.0):.2f}s",
            f"{summary.get('latest', 0.0):.2f}s",
            str(summary.get("count", 0)),
        )
    return table


def render_diagnostics(
    status: Optional[SchedulerStatus] = None,
    stats: Optional[CacheStats] = None,
    metrics: Optional[Metrics] = None,
    console: Optional[Console] = None,
) -> Console:
    """Print scheduler status, cache statistics and stage timings.

    Args:
        status: Result of ``TaskScheduler.get_status()``
        stats: Result of ``CacheStore.get_stats()``
        metrics: Result of ``PerformanceMonitor.get_metrics()``
        console: Target console, stderr by default

    Returns:
        The console used, so callers can reuse or inspect it
    """
    console = console or Console(stderr=True)
    console.print(Panel("[bold]Processing Diagnostics[/bold]", style="blue", padding=(0, 1)))

    if status is not None:
        console.print(build_status_table(status))
    if stats is not None:
        console.print(build_cache_table(stats))
    if metrics:
        console.print(build_timing_table(metrics))
    elif metrics is not None:
        console.print("[yellow]No timings recorded yet[/yellow]")
    return console
