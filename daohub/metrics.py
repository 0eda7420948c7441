"""Prometheus metrics shared by the request handlers and the admin endpoints."""

from prometheus_client import CollectorRegistry, Counter

registry = CollectorRegistry()

request_counter = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
    registry=registry,
)
csrf_failures = Counter(
    "csrf_failures_total",
    "Rejected CSRF validations",
    ["reason"],
    registry=registry,
)
blockchain_time_fallbacks = Counter(
    "blockchain_time_fallbacks_total",
    "Chain time reads that degraded to the local clock",
    ["source"],
    registry=registry,
)
