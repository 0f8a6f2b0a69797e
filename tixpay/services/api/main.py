"""HTTP surface for the Dwolla payment method.

Dispatches `tix_action` requests on the tickets URL to the checkout, redirect,
callback and webhook entry points and turns their typed outcomes into HTTP
responses. The host mounts the app built by `create_app`.
"""

from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

import httpx
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, RedirectResponse, Response

from tixpay.common.config import GatewaySettings, get_settings
from tixpay.common.host import TicketingHost
from tixpay.common.logging import configure_logging, logger, trace_id_ctx
from tixpay.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from tixpay.common.outcomes import (
    CallbackVerdict,
    ErrorCategory,
    Ignored,
    PaymentOutcome,
    Redirect,
    Rejection,
)
from tixpay.common.startup import log_startup_config
from tixpay.common.tracing import instrument_app, setup_tracing
from tixpay.services.checkout.service import CheckoutInitiator, UnsupportedCurrencyError
from tixpay.services.gateway.client import GatewayClient
from tixpay.services.notifications.service import NotificationStateMachine
from tixpay.services.refunds.service import RefundProcessor


STATUS_BY_CATEGORY = {
    ErrorCategory.INPUT: 400,
    ErrorCategory.AUTHENTICITY: 403,
    ErrorCategory.BUSINESS: 422,
    ErrorCategory.CONSISTENCY: 409,
    ErrorCategory.TRANSPORT: 502,
}


def to_response(result) -> Response:
    """Render any entry-point result as an HTTP response."""

    if result is None:
        return JSONResponse(status_code=502, content={"error": "Cannot retrieve transaction details."})
    if isinstance(result, Redirect):
        return RedirectResponse(result.url, status_code=303)
    if isinstance(result, Rejection):
        if result.category == ErrorCategory.AUTHENTICITY:
            # Nothing about the failure is echoed back to an unauthenticated caller.
            return Response(status_code=403)
        return JSONResponse(status_code=STATUS_BY_CATEGORY[result.category], content={"error": result.reason})
    if isinstance(result, Ignored):
        return JSONResponse(content={"ignored": result.reason})
    if isinstance(result, CallbackVerdict):
        if result.accepted:
            return JSONResponse(content=jsonable_encoder(result.payload))
        return JSONResponse(
            status_code=STATUS_BY_CATEGORY[result.category or ErrorCategory.BUSINESS],
            content={"error": result.reason},
        )
    if isinstance(result, PaymentOutcome):
        return JSONResponse(
            content={
                "payment_token": result.payment_token,
                "state": result.state.value,
                "applied": result.applied,
                "message": result.message,
            }
        )
    raise TypeError(f"unexpected result type {type(result).__name__}")


def create_app(
    host: TicketingHost,
    settings: GatewaySettings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Wire the gateway components around a host implementation."""

    settings = settings or get_settings()
    configure_logging(settings.service_name, settings.log_level)
    log_startup_config(
        settings,
        ["sandbox", "test", "tickets_url", "refunds_source", "api_key", "api_secret", "oauth_token", "pin"],
    )

    gateway = GatewayClient(settings, http_client)
    checkout = CheckoutInitiator(settings, gateway, host)
    notifications = NotificationStateMachine(settings, gateway, host)
    refunds = RefundProcessor(settings, gateway, host)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        """Close the outbound HTTP pool with the app."""

        yield
        await gateway.close()

    app = FastAPI(title="tixpay Dwolla gateway", lifespan=lifespan)
    if settings.tracing_enabled:
        setup_tracing(settings.service_name, settings.otel_exporter_otlp_endpoint)
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

    @app.exception_handler(UnsupportedCurrencyError)
    async def unsupported_currency(_: Request, exc: UnsupportedCurrencyError):
        logger.error("checkout refused: %s", exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.api_route("/tickets", methods=["GET", "POST"])
    async def tickets(
        request: Request,
        tix_payment_method: str | None = None,
        tix_action: str | None = None,
        tix_payment_token: str | None = None,
        x_trace_id: str | None = Header(default=None),
    ):
        """Dispatch on `tix_action` for this payment method."""

        if tix_payment_method != settings.payment_method_id:
            raise HTTPException(status_code=404, detail="unknown payment method")
        trace_id_ctx.set(x_trace_id or str(uuid4()))

        if tix_action == "payment_checkout":
            result = await checkout.initiate(tix_payment_token)
        elif tix_action == "payment_redirect":
            result = await notifications.on_redirect_return(request.query_params)
        elif tix_action == "payment_callback":
            result = await notifications.on_callback(tix_payment_token, await request.body())
        elif tix_action == "payment_notify":
            result = await notifications.on_webhook_notify(
                await request.body(),
                request.headers.get(settings.webhook_signature_header),
            )
        else:
            raise HTTPException(status_code=404, detail="unknown action")
        return to_response(result)

    @app.post("/refunds/{payment_token}")
    async def refund(payment_token: str, x_trace_id: str | None = Header(default=None)):
        """Single, operator-initiated refund."""

        trace_id_ctx.set(x_trace_id or str(uuid4()))
        return to_response(await refunds.refund(payment_token))

    @app.get("/health")
    def health():
        """Container health probe endpoint."""

        return {"ok": True}

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    return app
