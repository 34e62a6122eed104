"""Utility modules for the processing core."""

from .logging_factory import LoggingFactory, get_logger
from .performance import PerformanceMonitor, TimingSummary
from .retry import (
    RetryConfig,
    RetryingCall,
    RetryState,
    calculate_delay,
    retry_async,
    retry_call,
)

__all__ = [
    "LoggingFactory",
    "PerformanceMonitor",
    "RetryConfig",
    "RetryState",
    "RetryingCall",
    "TimingSummary",
    "calculate_delay",
    "get_logger",
    "retry_async",
    "retry_call",
]
