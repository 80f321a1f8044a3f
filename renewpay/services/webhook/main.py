"""HTTP surface for PortOne subscription payment webhooks."""

from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from renewpay.common.config import settings
from renewpay.common.db import SessionLocal
from renewpay.common.logging import configure_logging, trace_id_ctx
from renewpay.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from renewpay.common.startup import log_startup_config
from renewpay.common.tracing import instrument_app, setup_tracing
from renewpay.services.webhook.provider import PortOneClient
from renewpay.services.webhook.repository import PaymentRecordWriter
from renewpay.services.webhook.service import WebhookOrchestrator

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    ["SERVICE_NAME", "POSTGRES_DSN", "PORTONE_API_URL", "PORTONE_API_SECRET", "PROVIDER_TIMEOUT_SECONDS"],
)
provider = PortOneClient(
    secret=settings.portone_api_secret,
    base_url=settings.portone_api_url,
    timeout=settings.provider_timeout_seconds,
    currency=settings.schedule_currency,
    service_name=settings.service_name,
)
service = WebhookOrchestrator(PaymentRecordWriter(SessionLocal), provider, service_name=settings.service_name)


def get_orchestrator() -> WebhookOrchestrator:
    return service


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Release the provider connection pool on shutdown."""

    yield
    await provider.close()


app = FastAPI(title="PortOne Subscription Webhook", lifespan=lifespan)
instrument_app(app)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


@app.post("/api/portone")
async def portone_webhook(
    request: Request,
    orchestrator: WebhookOrchestrator = Depends(get_orchestrator),
    x_trace_id: str | None = Header(default=None),
):
    """Record a paid subscription period and schedule the next charge.

    Always answers with a JSON body carrying `success`; the status code mirrors
    the failure class (or the provider's own status for lookup failures).
    """

    trace_id_ctx.set(x_trace_id or str(uuid4()))
    try:
        payload = await request.json()
    except ValueError:
        # Not JSON; the validator rejects it as a non-object body.
        payload = None
    result = await orchestrator.handle(payload)
    return JSONResponse(result.body(), status_code=result.status_code)


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
