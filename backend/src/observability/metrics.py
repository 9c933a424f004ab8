"""Prometheus metrics for the warehouse BFF.

Defines and exposes operational metrics for monitoring and alerting.
"""

from prometheus_client import Counter, Histogram, Gauge

# Transaction metrics
transactions_total = Counter(
    "wms_bff_transactions_total",
    "Total stock transactions executed",
    ["kind", "outcome"]  # kind: baixa|transferencia|picking|correcao, outcome: success|<error class>
)

transaction_duration_seconds = Histogram(
    "wms_bff_transaction_duration_seconds",
    "End-to-end duration of a stock transaction in seconds",
    ["kind"],
    buckets=[0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0]
)

# ERP gateway metrics
erp_calls_total = Counter(
    "wms_bff_erp_calls_total",
    "ERP service call attempts",
    ["service", "outcome"]  # outcome: success|transient|hard_error
)

erp_credential_refreshes_total = Counter(
    "wms_bff_erp_credential_refreshes_total",
    "System credential refreshes against the ERP",
    ["result"]  # result: success|error
)

# Session metrics
operator_logins_total = Counter(
    "wms_bff_operator_logins_total",
    "Operator login attempts",
    ["result"]  # result: success|user_not_found|not_authorized|device_pending|invalid_credentials|error
)

keepalive_pings_total = Counter(
    "wms_bff_keepalive_pings_total",
    "Keep-alive pings sent for operator sessions",
    ["result"]  # result: ok|failed|dropped
)

active_sessions = Gauge(
    "wms_bff_active_sessions",
    "Operator sessions currently registered"
)


def record_erp_call(service_name: str, outcome) -> None:
    """Invoker hook: count one ERP call attempt."""
    erp_calls_total.labels(service=service_name, outcome=getattr(outcome, "value", outcome)).inc()
