"""Prometheus metric definitions for the gateway adapter."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


gateway_requests_total = Counter(
    "gateway_requests_total",
    "Outbound requests to the payment processor",
    ["service", "operation", "outcome"],
)
gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Outbound processor request duration seconds",
    ["service", "operation"],
)
signature_failures_total = Counter(
    "signature_failures_total",
    "Inbound events rejected by signature verification",
    ["service", "scheme"],
)
payment_outcomes_total = Counter(
    "payment_outcomes_total",
    "Canonical payment outcomes handed to the host",
    ["service", "source", "state"],
)
outcomes_skipped_total = Counter(
    "outcomes_skipped_total",
    "Outcomes not applied because they were duplicates or regressions",
    ["service", "source", "reason"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
