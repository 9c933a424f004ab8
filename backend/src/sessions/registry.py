"""Operator session registry backed by Redis.

Each session lives in a hash `session:<token>` whose key TTL gives sliding
expiration. Every live session also has exactly one member in the sorted
set `sessions:keepalive`, scored by the epoch second of its next keep-alive
ping. Mutations that touch both structures run in a single MULTI/EXEC
pipeline so a session is never registered without its schedule entry.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

from redis import Redis
from redis.exceptions import RedisError

from .errors import SessionExpired, SessionStoreUnavailable

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session:"
KEEPALIVE_SCHEDULE_KEY = "sessions:keepalive"

DEFAULT_SESSION_TTL_SECONDS = 50 * 60
# Must stay well below the ERP's idle session kill window
DEFAULT_KEEPALIVE_INTERVAL_SECONDS = 15


def session_key(token: str) -> str:
    return f"{SESSION_KEY_PREFIX}{token}"


def mask_token(token: str) -> str:
    """Token suffix safe to put in logs."""
    return f"...{token[-8:]}" if len(token) > 8 else "***"


@dataclass
class Session:
    operator_token: str
    external_session_handle: str
    created_at: float
    last_activity_at: float

    def to_hash(self) -> Dict[str, str]:
        return {
            "handle": self.external_session_handle,
            "created_at": repr(self.created_at),
            "last_activity_at": repr(self.last_activity_at),
        }

    @classmethod
    def from_hash(cls, token: str, data: Dict[str, str]) -> "Session":
        return cls(
            operator_token=token,
            external_session_handle=data.get("handle", ""),
            created_at=float(data.get("created_at") or 0),
            last_activity_at=float(data.get("last_activity_at") or 0),
        )


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except RedisError as e:
        logger.error(f"Session store error during {operation}: {e}")
        raise SessionStoreUnavailable(f"Session store unavailable ({operation})") from e


class SessionRegistry:
    """Registry of operator sessions with a keep-alive schedule.

    Args:
        redis: Client created with decode_responses=True
        ttl_seconds: Sliding inactivity window
        keepalive_interval_seconds: Delay until the next scheduled ping
        clock: Wall clock (epoch seconds)
    """

    def __init__(
        self,
        redis: Redis,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        keepalive_interval_seconds: int = DEFAULT_KEEPALIVE_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.keepalive_interval_seconds = keepalive_interval_seconds
        self._clock = clock

    def _next_ping_at(self, now: float) -> float:
        return now + self.keepalive_interval_seconds

    def register(self, token: str, handle: str) -> Session:
        """Store a new session and schedule its first keep-alive."""
        now = self._clock()
        session = Session(
            operator_token=token,
            external_session_handle=handle,
            created_at=now,
            last_activity_at=now,
        )
        key = session_key(token)

        with _store_errors("register"):
            pipe = self.redis.pipeline(transaction=True)
            pipe.delete(key)
            pipe.hset(key, mapping=session.to_hash())
            pipe.expire(key, self.ttl_seconds)
            pipe.zadd(KEEPALIVE_SCHEDULE_KEY, {token: self._next_ping_at(now)})
            pipe.execute()

        logger.info("Session registered", extra={"session": mask_token(token)})
        return session

    def validate_and_refresh(self, token: str) -> str:
        """Slide the session's expiry and postpone its keep-alive.

        Returns:
            The external session handle

        Raises:
            SessionExpired: Session missing; its stale schedule entry is removed
        """
        key = session_key(token)
        now = self._clock()

        def refresh(pipe) -> Optional[str]:
            handle = pipe.hget(key, "handle")
            pipe.multi()
            if not handle:
                pipe.zrem(KEEPALIVE_SCHEDULE_KEY, token)
                return None
            pipe.hset(key, "last_activity_at", repr(now))
            pipe.expire(key, self.ttl_seconds)
            pipe.zadd(KEEPALIVE_SCHEDULE_KEY, {token: self._next_ping_at(now)})
            return handle

        with _store_errors("validate"):
            handle = self.redis.transaction(refresh, key, value_from_callable=True)

        if not handle:
            raise SessionExpired()
        return handle

    def get_session(self, token: str) -> Optional[Session]:
        """Read a session without touching its expiry."""
        with _store_errors("read"):
            data = self.redis.hgetall(session_key(token))
        if not data:
            return None
        return Session.from_hash(token, data)

    def revoke(self, token: str) -> None:
        """Destroy a session and its schedule entry. Idempotent."""
        with _store_errors("revoke"):
            pipe = self.redis.pipeline(transaction=True)
            pipe.delete(session_key(token))
            pipe.zrem(KEEPALIVE_SCHEDULE_KEY, token)
            pipe.execute()
        logger.info("Session revoked", extra={"session": mask_token(token)})

    def count_active(self) -> int:
        with _store_errors("count"):
            return sum(1 for _ in self.redis.scan_iter(match=f"{SESSION_KEY_PREFIX}*", count=500))

    # Keep-alive schedule

    def get_due_tokens(self, now: Optional[float] = None) -> List[str]:
        """Tokens whose next ping time is at or before `now`."""
        now = self._clock() if now is None else now
        with _store_errors("schedule read"):
            return list(self.redis.zrangebyscore(KEEPALIVE_SCHEDULE_KEY, "-inf", now))

    def reschedule_after_ping(self, token: str) -> bool:
        """Push the token's next ping forward after a successful keep-alive.

        Runs under WATCH on the session key, so a session revoked mid-ping
        is not resurrected in the schedule.

        Returns:
            False if the session no longer exists (its entry is removed)
        """
        key = session_key(token)

        def reschedule(pipe) -> bool:
            exists = pipe.exists(key)
            pipe.multi()
            if not exists:
                pipe.zrem(KEEPALIVE_SCHEDULE_KEY, token)
                return False
            pipe.zadd(KEEPALIVE_SCHEDULE_KEY, {token: self._next_ping_at(self._clock())})
            return True

        with _store_errors("reschedule"):
            return self.redis.transaction(reschedule, key, value_from_callable=True)

    def drop_schedule(self, token: str) -> None:
        with _store_errors("schedule drop"):
            self.redis.zrem(KEEPALIVE_SCHEDULE_KEY, token)

    def next_ping_at(self, token: str) -> Optional[float]:
        with _store_errors("schedule read"):
            return self.redis.zscore(KEEPALIVE_SCHEDULE_KEY, token)

    def ping(self) -> bool:
        """Connectivity check for health endpoints."""
        with _store_errors("ping"):
            return bool(self.redis.ping())
