"""Process-wide service container and FastAPI dependency providers.

Every long-lived object (the ERP client with its credential cache, the Redis
session registry, the orchestrator) is built once here and handed to
endpoints through Depends(). Tests replace them with
app.dependency_overrides.

Usage:
    @router.post("/execute-transaction")
    def execute(orchestrator: TransactionOrchestrator = Depends(get_orchestrator)):
        ...
"""

import threading
from functools import lru_cache

from redis import Redis

from config import get_settings
from erp.client import SankhyaClient, SankhyaConfig
from erp.consistency import ConsistencyWaiter
from observability.metrics import erp_credential_refreshes_total, record_erp_call
from sessions.keepalive import KeepAliveWorker
from sessions.registry import SessionRegistry
from transactions.orchestrator import TransactionOrchestrator
from auth.service import OperatorAuthService


@lru_cache()
def get_erp_client() -> SankhyaClient:
    """ERP client owning the system credential cache (one per process)."""
    settings = get_settings()
    return SankhyaClient(
        SankhyaConfig.from_settings(settings),
        lock=threading.Lock(),
        on_attempt=record_erp_call,
        on_refresh=lambda result: erp_credential_refreshes_total.labels(result=result).inc(),
    )


@lru_cache()
def get_redis() -> Redis:
    return Redis.from_url(get_settings().REDIS_URL, decode_responses=True)


@lru_cache()
def get_session_registry() -> SessionRegistry:
    settings = get_settings()
    return SessionRegistry(
        get_redis(),
        ttl_seconds=settings.session_ttl_seconds,
        keepalive_interval_seconds=settings.KEEPALIVE_INTERVAL_SECONDS,
    )


@lru_cache()
def get_orchestrator() -> TransactionOrchestrator:
    settings = get_settings()
    return TransactionOrchestrator(
        get_erp_client(),
        ConsistencyWaiter(
            max_attempts=settings.VISIBILITY_MAX_ATTEMPTS,
            interval_seconds=settings.VISIBILITY_INTERVAL_SECONDS,
        ),
        timeout_seconds=settings.TRANSACTION_TIMEOUT_SECONDS,
    )


@lru_cache()
def get_auth_service() -> OperatorAuthService:
    return OperatorAuthService(get_erp_client(), get_session_registry())


@lru_cache()
def get_keepalive_worker() -> KeepAliveWorker:
    settings = get_settings()
    return KeepAliveWorker(
        get_session_registry(),
        get_erp_client(),
        tick_seconds=settings.KEEPALIVE_TICK_SECONDS,
        ping_timeout_seconds=settings.KEEPALIVE_PING_TIMEOUT_SECONDS,
        max_workers=settings.KEEPALIVE_MAX_WORKERS,
    )
