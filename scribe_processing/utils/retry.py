"""Retry utilities with exponential backoff for collaborator calls."""
from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
AsyncF = TypeVar("AsyncF", bound=Callable[..., Any])

SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_retries: Retries after the initial attempt (total calls = max_retries + 1)
        base_delay: Delay in seconds after the first failed attempt
        max_delay: Ceiling in seconds for any single delay
        attempt_timeout: Optional per-attempt timeout in seconds
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    attempt_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.attempt_timeout is not None and self.attempt_timeout <= 0:
            raise ValueError("attempt_timeout must be positive when set")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def calculate_backoff_delay(self, attempt: int) -> float:
        """Delay to wait after the given 0-based attempt failed."""
        return calculate_delay(attempt, self.base_delay, self.max_delay)


@dataclass
class RetryState:
    """Progress of a single ``RetryingCall.run`` invocation.

    Attributes:
        attempt: 0-based index of the attempt that just failed
        last_error: Exception raised by that attempt
        next_delay: Seconds to wait before the next attempt
    """

    attempt: int
    last_error: BaseException
    next_delay: float


def calculate_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Calculate the backoff delay after a failed attempt.

    Args:
        attempt: 0-based index of the attempt that failed
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds

    Returns:
        ``min(base_delay * 2**attempt, max_delay)``
    """
    if attempt < 0:
        raise ValueError("attempt must be non-negative")
    return min(base_delay * (2**attempt), max_delay)


def _operation_name(operation: Callable[..., Any]) -> str:
    if isinstance(operation, functools.partial):
        return _operation_name(operation.func)
    return getattr(operation, "__qualname__", None) or getattr(operation, "__name__", repr(operation))


class RetryingCall:
    """Runs an async operation, retrying failed attempts with exponential backoff.

    Every ``Exception`` counts as a failed attempt. Cancellation is not an
    ``Exception`` and aborts both a running attempt and a pending backoff sleep.

    Example:
        retrying = RetryingCall(RetryConfig(max_retries=3))
        text = await retrying.run(lambda: api.transcribe(uri, None))
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: SleepFunc = asyncio.sleep,
        on_retry: Optional[Callable[[RetryState], Any]] = None,
    ) -> None:
        self.config = config or RetryConfig()
        self._sleep = sleep
        self._on_retry = on_retry

    async def _attempt(self, operation: Callable[[], Awaitable[T]], config: RetryConfig) -> T:
        if config.attempt_timeout is None:
            return await operation()
        return await asyncio.wait_for(operation(), timeout=config.attempt_timeout)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        config: Optional[RetryConfig] = None,
    ) -> T:
        """Invoke ``operation`` until it succeeds or the retry budget is spent.

        Args:
            operation: Zero-argument callable returning an awaitable
            config: Overrides the instance configuration for this call

        Returns:
            The first successful result

        Raises:
            Exception: The exception from the final attempt, unchanged
        """
        retry_config = config or self.config
        name = _operation_name(operation)

        for attempt in range(retry_config.max_retries + 1):
            try:
                return await self._attempt(operation, retry_config)
            except Exception as e:
                if attempt >= retry_config.max_retries:
                    logger.error(
                        f"All {retry_config.max_attempts} attempts failed for {name}: {e!r}"
                    )
                    raise

                delay = retry_config.calculate_backoff_delay(attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{retry_config.max_attempts} failed for {name}: {e!r}. "
                    f"Retrying in {delay:.2f}s..."
                )
                if self._on_retry is not None:
                    self._on_retry(RetryState(attempt=attempt, last_error=e, next_delay=delay))
                await self._sleep(delay)

        # range() always yields at least one attempt
        raise AssertionError("unreachable")


async def retry_call(
    operation: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
) -> T:
    """Run ``operation`` once through a default ``RetryingCall``."""
    return await RetryingCall(config).run(operation)


def retry_async(config: Optional[RetryConfig] = None, **overrides: Any) -> Callable[[AsyncF], AsyncF]:
    """Decorator for asynchronous functions with retry logic.

    Args:
        config: RetryConfig instance
        **overrides: Individual RetryConfig fields, used when ``config`` is None

    Returns:
        Decorated async function with retry logic

    Example:
        @retry_async(max_retries=2, base_delay=0.5)
        async def summarize(text, language):
            ...
    """
    retry_config = config if config is not None else RetryConfig(**overrides)
    retrying = RetryingCall(retry_config)

    def decorator(func: AsyncF) -> AsyncF:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await retrying.run(functools.partial(func, *args, **kwargs))

        return wrapper  # type: ignore

    return decorator
