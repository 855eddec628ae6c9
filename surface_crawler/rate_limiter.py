"""
Rate Limiting
=============
Minimum-interval request pacing plus the exponential backoff policy used
by page fetch retries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def exponential_backoff(attempt: int, base_ms: float = 1000) -> float:
    """
    Backoff delay for a retry attempt.

    Args:
        attempt: Zero-based attempt number.
        base_ms: Delay for attempt 0, in milliseconds.

    Returns:
        ``base_ms * 2 ** attempt`` in milliseconds.
    """
    return base_ms * (2 ** attempt)


class RateLimiter:
    """
    Enforces a minimum interval between consecutive ``wait()`` releases.

    The first call never waits.  Not safe for concurrent callers; the crawl
    loop awaits it sequentially.
    """

    def __init__(
        self,
        interval_seconds: float = 1.5,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            interval_seconds: Minimum seconds between releases.
            clock: Monotonic time source (seconds).
        """
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._last_release: Optional[float] = None

    async def wait(self) -> float:
        """
        Suspend until the interval since the previous release has elapsed.

        Returns:
            Seconds actually slept (0 if no wait was needed).
        """
        slept = 0.0
        if self._last_release is not None:
            elapsed = self._clock() - self._last_release
            remaining = self.interval_seconds - elapsed
            if remaining > 0:
                logger.debug(f"[RATE] Waiting {remaining:.2f}s")
                await asyncio.sleep(remaining)
                slept = remaining
        self._last_release = self._clock()
        return slept

    def reset(self) -> None:
        """Forget the last release so the next ``wait()`` returns at once."""
        self._last_release = None


class RetryPolicy:
    """
    Decides whether a fetch attempt should be retried and how long to wait.
    """

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

    _RETRYABLE_MESSAGE_MARKERS = ("429", "500", "502", "503", "504", "timeout")

    def __init__(self, max_retries: int = 3, base_delay_ms: float = 1000):
        """
        Args:
            max_retries: Additional attempts after the first one.
            base_delay_ms: Backoff base passed to ``exponential_backoff``.
        """
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms

    def should_retry(self, status_code: int, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        return status_code in self.RETRYABLE_STATUS_CODES

    def should_retry_error(self, error: BaseException, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        message = str(error).lower()
        return any(marker in message for marker in self._RETRYABLE_MESSAGE_MARKERS)

    def delay_seconds(self, attempt: int) -> float:
        return exponential_backoff(attempt, self.base_delay_ms) / 1000
