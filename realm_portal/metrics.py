"""
Prometheus Metrics
==================
Metric definitions for signed admin-panel traffic.
"""

import re

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

PORTAL_REGISTRY = CollectorRegistry()

ADMIN_REQUEST_LATENCY = Histogram(
    name="portal_admin_request_duration_seconds",
    documentation="Time spent on signed requests to the admin panel",
    labelnames=["method", "endpoint", "status"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=PORTAL_REGISTRY,
)

ADMIN_REQUEST_TOTAL = Counter(
    name="portal_admin_requests_total",
    documentation="Total signed requests to the admin panel",
    labelnames=["method", "endpoint", "status"],
    registry=PORTAL_REGISTRY,
)

VERIFICATION_OUTCOMES = Counter(
    name="portal_signature_verifications_total",
    documentation="Signature verification outcomes",
    labelnames=["outcome"],
    registry=PORTAL_REGISTRY,
)


def record_admin_call(method: str, endpoint: str, status: str, duration_seconds: float) -> None:
    """
    Record metrics for one admin-panel call.

    Args:
        method: HTTP method
        endpoint: Request path
        status: success, error, timeout, unavailable or config_error
        duration_seconds: Request duration in seconds
    """
    labels = {
        "method": method,
        "endpoint": _normalize_endpoint(endpoint),
        "status": status,
    }
    ADMIN_REQUEST_LATENCY.labels(**labels).observe(duration_seconds)
    ADMIN_REQUEST_TOTAL.labels(**labels).inc()


def record_verification(outcome: str) -> None:
    VERIFICATION_OUTCOMES.labels(outcome=outcome).inc()


def get_metrics_text() -> tuple:
    """Return (payload, content type) for a /metrics endpoint."""
    return generate_latest(PORTAL_REGISTRY), CONTENT_TYPE_LATEST


def _normalize_endpoint(endpoint: str) -> str:
    # Drop query strings and collapse numeric ids to keep cardinality low
    endpoint = endpoint.split("?", 1)[0]
    return re.sub(r'/\d+(?=/|$)', '/{id}', endpoint)
