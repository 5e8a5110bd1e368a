"""Retry utility with capped exponential backoff.

Transient failures (by default TransientWorkerError) are retried with a
delay of min(base_delay * 2^attempt, max_delay). Any other exception is
treated as fatal and re-raised on the spot. When every attempt fails
transiently, RetriesExhaustedError is raised, chained from the last error.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, TypeVar

from recording_processor.utils.errors import (
    RetriesExhaustedError,
    TransientWorkerError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff bounds, in seconds."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows 0-based ``attempt``."""
        return min(self.base_delay * (2**attempt), self.max_delay)


def is_transient_error(exc: BaseException) -> bool:
    """Default classification: only TransientWorkerError is retryable."""
    return isinstance(exc, TransientWorkerError)


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    is_transient: Callable[[BaseException], bool] = is_transient_error,
    name: str | None = None,
) -> T:
    """Await ``operation()`` until it succeeds or the policy gives up.

    Args:
        operation: Zero-argument coroutine factory. Called once per attempt.
        policy: Attempt budget and backoff bounds.
        is_transient: Predicate deciding whether a failure is retryable.
        name: Label used in log lines (defaults to the callable's name).

    Returns:
        The operation's result.

    Raises:
        RetriesExhaustedError: After ``policy.max_attempts`` transient failures.
        Exception: Any fatal error, on the attempt it occurred, with
            ``_retry_count`` set to the number of retries already made.
    """
    label = name or getattr(operation, "__name__", "operation")
    last_error: BaseException | None = None

    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except Exception as exc:
            if not is_transient(exc):
                exc._retry_count = attempt  # type: ignore[attr-defined]
                raise
            last_error = exc
            if attempt + 1 < policy.max_attempts:
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Retry %d/%d for %s after %.1fs: %s",
                    attempt + 1,
                    policy.max_attempts - 1,
                    label,
                    delay,
                    exc,
                    extra={"attempt": attempt + 1, "error": str(exc)},
                )
                await asyncio.sleep(delay)

    raise RetriesExhaustedError(
        f"{label} failed after {policy.max_attempts} attempts: {last_error}",
        attempts=policy.max_attempts,
        last_error=last_error,  # type: ignore[arg-type]
        recording_id=getattr(last_error, "recording_id", None),
    ) from last_error


def retry_with_backoff(
    policy: RetryPolicy | None = None,
    is_transient: Callable[[BaseException], bool] = is_transient_error,
) -> Callable:
    """Decorator form of run_with_retry for async functions.

    Args:
        policy: Retry policy (default RetryPolicy()).
        is_transient: Predicate deciding whether a failure is retryable.

    Returns:
        Decorator that wraps an async function with retry logic.
    """
    effective = policy or RetryPolicy()

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await run_with_retry(
                lambda: func(*args, **kwargs),
                effective,
                is_transient=is_transient,
                name=func.__name__,
            )

        return wrapper

    return decorator
