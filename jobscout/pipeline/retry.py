"""Single bounded retry policy shared by description fetches and oracle calls."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from .errors import PipelineError, RateLimited, is_retryable

T = TypeVar("T")

BackoffFn = Callable[[int], float]
SleepFn = Callable[[float], Awaitable[None]]


def linear_backoff(base_delay: float) -> BackoffFn:
    """Delay after failed attempt `n` is `n * base_delay` seconds."""

    def _backoff(attempt: int) -> float:
        return max(0.0, attempt * base_delay)

    return _backoff


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    backoff: BackoffFn = field(default_factory=lambda: linear_backoff(2.0))
    retryable: Callable[[BaseException], bool] = is_retryable
    sleep: SleepFn = asyncio.sleep
    # ceiling for a server Retry-After hint; backoff delays are never shortened by it
    max_delay: float = 10.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.max_delay < 0:
            raise ValueError("max_delay must be >= 0")

    def delay_for(self, attempt: int, exc: BaseException) -> float:
        delay = self.backoff(attempt)
        if isinstance(exc, RateLimited) and exc.retry_after is not None:
            delay = max(delay, min(exc.retry_after, self.max_delay))
        return delay

    def max_total_delay(self) -> float:
        """Worst-case cumulative sleep, with every Retry-After hint at the cap; time spent in the calls is not counted."""
        return sum(max(self.backoff(attempt), self.max_delay) for attempt in range(1, self.max_attempts))

    async def run(self, fn: Callable[[int], Awaitable[T]], *, label: str = "call") -> T:
        """
        Await `fn(attempt)` until it succeeds, raises a non-retryable error, or the
        attempt ceiling is reached. The last error is re-raised in the latter two
        cases, with `attempt` recorded on pipeline errors.
        """
        last_exc: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await fn(attempt)
            except Exception as exc:
                last_exc = exc
                if isinstance(exc, PipelineError):
                    exc.attempt = attempt
                if not self.retryable(exc):
                    raise
                if attempt == self.max_attempts:
                    logger.error(
                        "{} failed after {} attempts: {}: {}",
                        label,
                        self.max_attempts,
                        type(exc).__name__,
                        exc,
                    )
                    raise
                delay = self.delay_for(attempt, exc)
                logger.warning(
                    "{} attempt {}/{} failed ({}: {}), retrying in {:.1f}s",
                    label,
                    attempt,
                    self.max_attempts,
                    type(exc).__name__,
                    exc,
                    delay,
                )
                if delay > 0:
                    await self.sleep(delay)
        raise last_exc  # type: ignore[misc]
