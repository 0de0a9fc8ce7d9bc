from __future__ import annotations

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base error for the resolution and scoring stages."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        listing_id: Optional[str] = None,
        status: Optional[int] = None,
        attempt: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.listing_id = listing_id
        self.status = status
        self.attempt = attempt
        self.data = data or {}


class InvalidInput(PipelineError):
    """Raised when a listing identifier is missing or blank."""


class RateLimited(PipelineError):
    """Raised when the upstream explicitly throttles the request."""

    retryable = True

    def __init__(self, message: str, *, retry_after: Optional[float] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class UpstreamError(PipelineError):
    """Raised on a non-success, non-throttle status; never retried."""


class EmptyResult(PipelineError):
    """Raised when the upstream answered successfully but with nothing usable."""


class TransportError(PipelineError):
    """Raised on network-level failures (connect, read, timeout)."""

    retryable = True


class ParseError(PipelineError):
    """Raised when oracle text carries no usable score."""


class CacheError(PipelineError):
    """Raised by cache backends; callers log it and carry on without the cache."""


class SetupError(PipelineError):
    """Raised before any work is scheduled when the pipeline cannot run at all."""


class EmailDeliveryError(PipelineError):
    """Raised when the report email cannot be sent."""


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, PipelineError) and exc.retryable


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value.strip()))
    except ValueError:
        return None
