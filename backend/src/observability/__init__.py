"""Observability module for the warehouse BFF.

Provides structured logging, request correlation, metrics and health checks.
"""

from .logging_config import configure_logging, get_logger
from .metrics import (
    transactions_total,
    transaction_duration_seconds,
    erp_calls_total,
    erp_credential_refreshes_total,
    operator_logins_total,
    keepalive_pings_total,
    active_sessions,
    record_erp_call,
)
from .request_id import request_id_var, get_request_id, set_request_id, generate_request_id
from .health import HealthStatus, ComponentHealth
from .middleware import RequestIDMiddleware

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    # Metrics
    "transactions_total",
    "transaction_duration_seconds",
    "erp_calls_total",
    "erp_credential_refreshes_total",
    "operator_logins_total",
    "keepalive_pings_total",
    "active_sessions",
    "record_erp_call",
    # Request ID
    "request_id_var",
    "get_request_id",
    "set_request_id",
    "generate_request_id",
    # Health
    "HealthStatus",
    "ComponentHealth",
    # Middleware
    "RequestIDMiddleware",
]
