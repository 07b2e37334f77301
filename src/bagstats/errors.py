"""Exception types shared across the aggregation and monitoring layers."""

from __future__ import annotations

from typing import Optional


class BagStatsError(RuntimeError):
    """Base class for recoverable errors raised by this package."""


class ValidationError(BagStatsError, ValueError):
    """Raised when caller input (e.g. a wallet address) is malformed."""


class UpstreamError(BagStatsError):
    """Raised when a mandatory upstream source is unreachable or rejects a call."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(BagStatsError, LookupError):
    """Raised when a requested record does not exist."""


class PartialDataWarning(UserWarning):
    """Category for optional sources that failed; logged, never raised."""


__all__ = [
    "BagStatsError",
    "NotFoundError",
    "PartialDataWarning",
    "UpstreamError",
    "ValidationError",
]
