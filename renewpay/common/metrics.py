"""Prometheus metric definitions for the webhook service."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


webhook_requests_total = Counter(
    "webhook_requests_total",
    "Total webhook notifications received",
    ["service", "status"],
)
webhook_outcomes_total = Counter(
    "webhook_outcomes_total",
    "Webhook handling outcomes by terminal result",
    ["service", "outcome"],
)
schedule_failures_total = Counter(
    "schedule_failures_total",
    "Next-charge registrations rejected or unreachable after a recorded payment",
    ["service"],
)
provider_request_seconds = Histogram(
    "provider_request_seconds",
    "Payment provider request duration seconds",
    ["service", "operation"],
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
