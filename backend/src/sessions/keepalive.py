"""Keep-alive worker for operator ERP sessions.

The ERP reclaims idle sessions after a short window. Every tick the worker
reads the tokens whose scheduled ping time has passed and pings each one
concurrently with its own timeout:

- ping ok          -> reschedule (now + interval)
- ping failed      -> leave due, retried next tick
- session missing  -> drop the schedule entry

One token's failure or slowness never blocks the others.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from erp.ports import ERPGatewayPort
from observability.metrics import active_sessions, keepalive_pings_total

from .errors import SessionStoreUnavailable
from .registry import SessionRegistry, mask_token

logger = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 5.0
DEFAULT_PING_TIMEOUT_SECONDS = 5.0
DEFAULT_MAX_WORKERS = 8

PING_OK = "ok"
PING_FAILED = "failed"
PING_DROPPED = "dropped"


@dataclass
class KeepAliveStats:
    """Result of one keep-alive tick."""
    due: int = 0
    renewed: int = 0
    failed: int = 0
    dropped: int = 0

    def record(self, result: str) -> None:
        if result == PING_OK:
            self.renewed += 1
        elif result == PING_DROPPED:
            self.dropped += 1
        else:
            self.failed += 1


class KeepAliveWorker:
    """Pings due operator sessions on a fixed tick.

    Args:
        registry: Session registry holding the schedule
        gateway: ERP gateway used to ping sessions
        tick_seconds: Time between ticks (a fraction of the ping interval)
        ping_timeout_seconds: Timeout for a single ping
        max_workers: Concurrent pings per tick
    """

    def __init__(
        self,
        registry: SessionRegistry,
        gateway: ERPGatewayPort,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        ping_timeout_seconds: float = DEFAULT_PING_TIMEOUT_SECONDS,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.registry = registry
        self.gateway = gateway
        self.tick_seconds = tick_seconds
        self.ping_timeout_seconds = ping_timeout_seconds
        self.max_workers = max_workers
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_tick(self) -> KeepAliveStats:
        stats = KeepAliveStats()
        try:
            tokens = self.registry.get_due_tokens()
        except SessionStoreUnavailable as e:
            logger.warning(f"Keep-alive tick skipped: {e}")
            return stats

        stats.due = len(tokens)
        if tokens:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(tokens))) as executor:
                futures = {executor.submit(self._ping_one, token): token for token in tokens}
                for future, token in futures.items():
                    try:
                        result = future.result()
                    except Exception:
                        logger.exception(f"Keep-alive ping crashed for session {mask_token(token)}")
                        result = PING_FAILED
                    stats.record(result)
                    keepalive_pings_total.labels(result=result).inc()

            logger.debug(
                "Keep-alive tick finished",
                extra={"due": stats.due, "renewed": stats.renewed,
                       "failed": stats.failed, "dropped": stats.dropped},
            )

        try:
            active_sessions.set(self.registry.count_active())
        except SessionStoreUnavailable as e:
            logger.debug(f"Active session gauge not updated: {e}")
        return stats

    def _ping_one(self, token: str) -> str:
        try:
            session = self.registry.get_session(token)
            if session is None:
                self.registry.drop_schedule(token)
                return PING_DROPPED

            if not self.gateway.keep_alive(session.external_session_handle, self.ping_timeout_seconds):
                logger.warning(f"Keep-alive failed for session {mask_token(token)}, retrying next tick")
                return PING_FAILED

            if not self.registry.reschedule_after_ping(token):
                return PING_DROPPED
            return PING_OK
        except SessionStoreUnavailable as e:
            logger.warning(f"Keep-alive for session {mask_token(token)} hit store error: {e}")
            return PING_FAILED

    # In-process runner

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        stop_event = stop_event or self._stop_event
        logger.info(f"Keep-alive worker started (tick {self.tick_seconds}s)")
        while not stop_event.is_set():
            self.run_tick()
            stop_event.wait(self.tick_seconds)
        logger.info("Keep-alive worker stopped")

    def start(self) -> threading.Thread:
        """Run the worker on a daemon thread."""
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name="session-keepalive", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
