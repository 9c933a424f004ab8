"""Observability API endpoints.

Provides metrics, health checks, and readiness probes for monitoring.
"""

import os
import socket
import time

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from dependencies import get_erp_client, get_session_registry
from erp.client import SankhyaClient
from sessions.errors import SessionStoreUnavailable
from sessions.registry import SessionRegistry

from .health import (
    check_erp_credential_health,
    check_session_store_health,
    get_overall_health,
    HealthStatus,
)
from .logging_config import get_logger
from .metrics import active_sessions

logger = get_logger(__name__)

router = APIRouter(tags=["Observability"])

_STARTED_AT = time.monotonic()
NODE_ID = os.getenv("NODE_ID") or socket.gethostname()


@router.get(
    "/metrics",
    summary="Prometheus metrics endpoint",
    include_in_schema=False,
)
def metrics():
    """Expose Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


@router.get(
    "/health",
    summary="Health check endpoint",
    description="Session store and ERP credential status, active sessions, uptime",
)
def health_check(
    registry: SessionRegistry = Depends(get_session_registry),
    client: SankhyaClient = Depends(get_erp_client),
):
    """Check health of the node.

    Returns 200 while the session store answers, 503 otherwise. A missing
    system credential only degrades the node since it is renewed on demand.
    """
    components = {
        "session_store": check_session_store_health(registry),
        "erp_credential": check_erp_credential_health(client.credentials),
    }
    overall_status = get_overall_health(components)

    sessions = None
    if components["session_store"].status == HealthStatus.HEALTHY:
        try:
            sessions = registry.count_active()
            active_sessions.set(sessions)
        except SessionStoreUnavailable as e:
            logger.warning(f"Could not count active sessions: {e}")

    response_data = {
        "status": overall_status.value,
        "node_id": NODE_ID,
        "uptime_seconds": round(time.monotonic() - _STARTED_AT, 1),
        "active_sessions": sessions,
        "components": {
            name: {
                "status": comp.status.value,
                "message": comp.message,
                "latency_ms": comp.latency_ms,
            }
            for name, comp in components.items()
        }
    }

    status_code = 200 if overall_status != HealthStatus.UNHEALTHY else 503

    return JSONResponse(content=response_data, status_code=status_code)


@router.get(
    "/ready",
    summary="Readiness check endpoint",
    description="Returns readiness status (for Kubernetes readiness probes)",
)
def readiness_check(registry: SessionRegistry = Depends(get_session_registry)):
    """Ready once the session store is reachable."""
    store_health = check_session_store_health(registry)

    if store_health.status == HealthStatus.HEALTHY:
        return {
            "status": "ready",
            "message": "Application is ready to serve traffic"
        }
    return JSONResponse(
        content={
            "status": "not_ready",
            "message": store_health.message
        },
        status_code=503
    )
