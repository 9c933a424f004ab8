"""Health check utilities.

The BFF itself is stateless; the session registry in Redis is the only
component whose loss makes the node unable to serve operators.
"""

import time
from enum import Enum
from typing import Dict, Optional
from dataclasses import dataclass

from erp.credentials import CredentialCache
from sessions.errors import SessionStoreUnavailable
from sessions.registry import SessionRegistry

from .logging_config import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health check status enum."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class ComponentHealth:
    """Health status for a single component."""
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None


def check_session_store_health(registry: SessionRegistry) -> ComponentHealth:
    """Check Redis connectivity through the session registry."""
    try:
        start = time.perf_counter()
        registry.ping()
        latency_ms = (time.perf_counter() - start) * 1000

        return ComponentHealth(
            status=HealthStatus.HEALTHY,
            message="Session store connection OK",
            latency_ms=round(latency_ms, 2)
        )
    except SessionStoreUnavailable as e:
        logger.error(f"Session store health check failed: {e}")
        return ComponentHealth(
            status=HealthStatus.UNHEALTHY,
            message=f"Session store error: {e}"
        )


def check_erp_credential_health(credentials: CredentialCache) -> ComponentHealth:
    """Report whether a usable system credential is cached.

    Does not call the ERP; an expired credential is refreshed lazily by the
    next call, so its absence only degrades the node.
    """
    if credentials.has_valid_credential:
        return ComponentHealth(status=HealthStatus.HEALTHY, message="System credential cached")
    return ComponentHealth(
        status=HealthStatus.DEGRADED,
        message="No valid system credential; next ERP call will authenticate"
    )


def get_overall_health(components: Dict[str, ComponentHealth]) -> HealthStatus:
    """Determine overall health from component statuses."""
    if all(c.status == HealthStatus.HEALTHY for c in components.values()):
        return HealthStatus.HEALTHY

    if any(c.status == HealthStatus.UNHEALTHY for c in components.values()):
        return HealthStatus.UNHEALTHY

    return HealthStatus.DEGRADED
