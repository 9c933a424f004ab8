"""Operator session registry and ERP keep-alive.

Maps operator tokens to ERP session handles with sliding expiration, and
keeps those ERP sessions alive while the operator's token is live.
"""

from .errors import SessionError, SessionExpired, SessionStoreUnavailable
from .registry import Session, SessionRegistry
from .keepalive import KeepAliveWorker, KeepAliveStats

__all__ = [
    "SessionError",
    "SessionExpired",
    "SessionStoreUnavailable",
    "Session",
    "SessionRegistry",
    "KeepAliveWorker",
    "KeepAliveStats",
]
