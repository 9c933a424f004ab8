"""Caller-supplied deadline shared by every ERP call, poll and backoff wait.

A Deadline bounds an entire operation (e.g. one execute-transaction request).
Waits go through an Event so a cancelled deadline wakes sleepers immediately
instead of holding a worker for the full polling ceiling.
"""

import threading
import time
from typing import Callable, Optional

from .errors import DeadlineExceeded


class Deadline:
    """Absolute deadline with cooperative cancellation.

    Example:
        deadline = Deadline.after(60)
        client.execute_query(sql, deadline)
        deadline.wait(0.5)  # raises DeadlineExceeded if expired/cancelled
    """

    def __init__(
        self,
        expires_at: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._expires_at = expires_at
        self._clock = clock
        self._cancelled = threading.Event()

    @classmethod
    def after(cls, seconds: float, clock: Callable[[], float] = time.monotonic) -> "Deadline":
        return cls(expires_at=clock() + seconds, clock=clock)

    @classmethod
    def never(cls) -> "Deadline":
        return cls(expires_at=None)

    def remaining(self) -> Optional[float]:
        """Seconds left, or None for an unbounded deadline."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        if self.cancelled:
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def cancel(self) -> None:
        self._cancelled.set()

    def check(self) -> None:
        """Raise DeadlineExceeded if the deadline has passed or was cancelled."""
        if self.cancelled:
            raise DeadlineExceeded("Operation cancelled")
        if self.expired:
            raise DeadlineExceeded("Operation deadline exceeded")

    def timeout(self, default: float) -> float:
        """Per-call timeout: the default, capped by the time remaining."""
        self.check()
        remaining = self.remaining()
        if remaining is None:
            return default
        return min(default, remaining)

    def wait(self, seconds: float) -> None:
        """Sleep up to `seconds`, waking early on cancellation.

        Raises:
            DeadlineExceeded: If cancelled, or if the deadline ends before
                the full wait could complete
        """
        self.check()
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._cancelled.wait(remaining)
            raise DeadlineExceeded("Operation deadline exceeded while waiting")
        if self._cancelled.wait(seconds):
            raise DeadlineExceeded("Operation cancelled")
