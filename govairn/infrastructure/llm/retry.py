"""
Bounded retry policy for completion requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import httpx

# 408 / 409 / 429 and the 5xx family are worth another attempt
RETRYABLE_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    """
    max_attempts counts the first call; backoff grows linearly:
    attempt 1 fails -> wait 1x, attempt 2 fails -> wait 2x, ...
    """
    max_attempts: int = 3
    backoff_seconds: float = 1.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds cannot be negative")

    def attempts(self) -> Iterator[int]:
        return iter(range(1, self.max_attempts + 1))

    def delay_for(self, attempt: int) -> float:
        """Wait after failed `attempt` (1-based)."""
        return self.backoff_seconds * attempt

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    @staticmethod
    def is_retryable_status(status_code: int) -> bool:
        return status_code in RETRYABLE_STATUS_CODES

    @staticmethod
    def is_retryable_error(exc: BaseException) -> bool:
        return isinstance(exc, (httpx.TransportError, httpx.TimeoutException))
