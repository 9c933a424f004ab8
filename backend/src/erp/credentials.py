"""System-wide ERP bearer credential cache.

Holds the one credential the backend uses for system-attributed ERP calls
(queries, history writes, device registration). The credential is an
immutable value replaced wholesale on refresh; readers pick up the current
reference without locking, refreshes are serialized on an injected lock so
concurrent callers wait for one login instead of issuing their own.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .deadline import Deadline
from .errors import CredentialUnavailable, DeadlineExceeded

logger = logging.getLogger(__name__)

# Default lifetime of a system token from issuance (4 min 50 s)
DEFAULT_CREDENTIAL_TTL_SECONDS = 290.0
DEFAULT_SAFETY_MARGIN_SECONDS = 10.0


@dataclass(frozen=True)
class Credential:
    """Opaque bearer token plus the instant it stops being trusted."""
    token: str
    expires_at: float

    def is_valid(self, now: float, safety_margin: float = 0.0) -> bool:
        return bool(self.token) and now + safety_margin < self.expires_at


LoginFunc = Callable[[Deadline], str]


class CredentialCache:
    """Cache of the system credential with expiry-driven renewal.

    Args:
        login: Performs the system login exchange and returns a bearer token.
            Must raise on failure.
        ttl_seconds: Lifetime assigned to a freshly issued token
        safety_margin_seconds: Renew this long before expiry
        lock: Lock serializing refreshes (injected so callers can share it)
        clock: Monotonic clock, overridable in tests

    Example:
        cache = CredentialCache(login=client.system_login)
        token = cache.get_credential(Deadline.after(10))
    """

    def __init__(
        self,
        login: LoginFunc,
        ttl_seconds: float = DEFAULT_CREDENTIAL_TTL_SECONDS,
        safety_margin_seconds: float = DEFAULT_SAFETY_MARGIN_SECONDS,
        lock: Optional[threading.Lock] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._login = login
        self._ttl = ttl_seconds
        self._safety_margin = safety_margin_seconds
        self._lock = lock or threading.Lock()
        self._clock = clock
        self._credential: Optional[Credential] = None
        self.refresh_count = 0

    @property
    def current(self) -> Optional[Credential]:
        return self._credential

    @property
    def has_valid_credential(self) -> bool:
        return self._usable(self._credential)

    def _usable(self, credential: Optional[Credential]) -> bool:
        return credential is not None and credential.is_valid(self._clock(), self._safety_margin)

    def get_credential(self, deadline: Deadline) -> str:
        """Return a valid system token, refreshing it if needed.

        Raises:
            CredentialUnavailable: If the refresh login fails
        """
        credential = self._credential
        if self._usable(credential):
            return credential.token

        with self._lock:
            # Another caller may have refreshed while we waited on the lock
            credential = self._credential
            if self._usable(credential):
                return credential.token
            return self._refresh_locked(deadline).token

    def refresh(self, deadline: Deadline) -> Credential:
        """Force a system login and replace the cached credential."""
        with self._lock:
            return self._refresh_locked(deadline)

    def invalidate(self, stale_token: Optional[str] = None) -> None:
        """Drop the cached credential so the next read forces a refresh.

        Args:
            stale_token: Token the caller saw rejected. When given, the cache
                is only cleared if it still holds that token, so a refresh
                completed by another caller is not thrown away.
        """
        with self._lock:
            credential = self._credential
            if credential is None:
                return
            if stale_token is not None and credential.token != stale_token:
                return
            self._credential = None
            logger.info("System ERP credential invalidated")

    def _refresh_locked(self, deadline: Deadline) -> Credential:
        try:
            token = self._login(deadline)
        except DeadlineExceeded:
            raise
        except CredentialUnavailable:
            self._credential = None
            raise
        except Exception as e:
            self._credential = None
            logger.error(f"System login to ERP failed: {e}")
            raise CredentialUnavailable("System login to ERP failed", external_message=str(e)) from e

        if not token:
            self._credential = None
            raise CredentialUnavailable("ERP login returned no bearer token")

        credential = Credential(token=token, expires_at=self._clock() + self._ttl)
        self._credential = credential
        self.refresh_count += 1
        logger.info(
            "System ERP credential refreshed",
            extra={"ttl_seconds": self._ttl, "refresh_count": self.refresh_count},
        )
        return credential
