"""Console output for diagnostics."""

from .console import build_cache_table, build_status_table, build_timing_table, render_diagnostics

__all__ = ["build_cache_table", "build_status_table", "build_timing_table", "render_diagnostics"]
