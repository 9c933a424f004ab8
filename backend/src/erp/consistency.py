"""Polling until an asynchronously processed ERP write becomes visible.

The ERP acknowledges batched line writes before it has processed them.
Finalizing a batch whose lines are not yet visible silently loses data on
the ERP side, so callers confirm visibility here before the terminal step.
"""

import logging
from typing import Callable, Optional

from .deadline import Deadline
from .errors import DeadlineExceeded, ERPError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_INTERVAL_SECONDS = 0.5


class ConsistencyWaiter:
    """Fixed-interval visibility poller.

    Args:
        max_attempts: Predicate evaluations before giving up
        interval_seconds: Wait between evaluations
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ):
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds

    def wait_until_visible(
        self,
        predicate: Callable[[], bool],
        deadline: Deadline,
        max_attempts: Optional[int] = None,
        interval_seconds: Optional[float] = None,
    ) -> bool:
        """Poll `predicate` until it holds.

        Returns:
            True as soon as the predicate holds, False once the attempt
            budget is spent. False is a timeout, not a failure of the
            predicate itself.

        Raises:
            DeadlineExceeded: If the caller's deadline ends while polling
        """
        attempts = self.max_attempts if max_attempts is None else max_attempts
        interval = self.interval_seconds if interval_seconds is None else interval_seconds

        for attempt in range(1, attempts + 1):
            deadline.check()
            try:
                if predicate():
                    logger.debug(f"Write visible after {attempt} poll(s)")
                    return True
            except DeadlineExceeded:
                raise
            except ERPError as e:
                logger.warning(f"Visibility poll {attempt}/{attempts} failed: {e}")

            if attempt < attempts:
                deadline.wait(interval)

        logger.warning(f"Write not visible after {attempts} poll(s)")
        return False
