"""Outbound calls to Dwolla: checkout creation, transaction lookup, refunds.

Every method returns a `GatewayResponse`; transport errors, timeouts, non-2xx
statuses, malformed JSON and unexpected payload shapes all come back as
``success=False`` with a diagnostic message. Nothing here retries.
"""

import json
from decimal import Decimal
from time import perf_counter
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from tixpay.common.config import GatewaySettings
from tixpay.common.logging import logger, redact, sanitize_for_log
from tixpay.common.metrics import gateway_request_duration_seconds, gateway_requests_total
from tixpay.common.tracing import processor_span
from tixpay.services.gateway.schemas import (
    CheckoutRequest,
    CheckoutSession,
    GatewayResponse,
    RefundReceipt,
    RefundRequest,
    TransactionLookup,
)


class GatewayClient:
    """Thin async client over the off-site gateway and OAuth REST API."""

    def __init__(self, settings: GatewaySettings, http: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(
                settings.request_timeout_seconds,
                connect=settings.connect_timeout_seconds,
            ),
            headers={"Accept": "application/json"},
        )

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def checkout_url(self, checkout_id: str) -> str:
        """Hosted payment page for one checkout session."""

        return f"{self.settings.server_url}payment/checkout/{quote(str(checkout_id), safe='')}"

    async def create_checkout(self, request: CheckoutRequest) -> GatewayResponse[CheckoutSession]:
        return await self._request(
            "create_checkout",
            "POST",
            f"{self.settings.server_url}payment/request",
            CheckoutSession,
            json_body=request.model_dump(mode="json", by_alias=True),
        )

    async def get_transaction(self, transaction_id: str | None) -> GatewayResponse[TransactionLookup]:
        if not transaction_id:
            return GatewayResponse(success=False, message="Please enter a transaction ID.")
        return await self._request(
            "get_transaction",
            "GET",
            f"{self.settings.rest_api_url}transactions/{quote(str(transaction_id), safe='')}",
            TransactionLookup,
            params={"oauth_token": self.settings.oauth_token.get_secret_value()},
        )

    async def submit_refund(
        self, transaction_id: str, funds_source: str, amount: Decimal
    ) -> GatewayResponse[RefundReceipt]:
        body = RefundRequest(
            oauth_token=self.settings.oauth_token,
            pin=self.settings.pin,
            transaction_id=str(transaction_id),
            funds_source=funds_source,
            amount=amount,
        )
        return await self._request(
            "submit_refund",
            "POST",
            f"{self.settings.rest_api_url}transactions/refund",
            RefundReceipt,
            json_body=body.model_dump(mode="json", by_alias=True),
        )

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        model: type[BaseModel],
        params: dict | None = None,
        json_body: dict | None = None,
    ) -> GatewayResponse:
        """Run one request and normalize every failure mode."""

        logger.info(
            "gateway_request operation=%s method=%s body=%s",
            operation,
            method,
            sanitize_for_log(redact(json_body)),
        )
        start = perf_counter()
        try:
            with processor_span(operation, method) as span:
                resp = await self._http.request(method, url, params=params, json=json_body)
                span.set_attribute("http.response.status_code", resp.status_code)
        except httpx.TimeoutException as exc:
            return self._failure(operation, "timeout", f"Request timed out: {exc.__class__.__name__}")
        except httpx.HTTPError as exc:
            return self._failure(operation, "transport_error", f"Request failed: {exc.__class__.__name__}")
        finally:
            gateway_request_duration_seconds.labels(
                service=self.settings.service_name,
                operation=operation,
            ).observe(max(0.0, perf_counter() - start))

        if not resp.is_success:
            return self._failure(
                operation,
                "http_error",
                f"Request failed. Server responded with: {resp.status_code}",
                status_code=resp.status_code,
                raw=resp.text,
            )

        try:
            payload = json.loads(resp.text, parse_float=Decimal)
            data = model.model_validate(payload)
        except ValueError as exc:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors.
            reason = "Unexpected response shape" if isinstance(exc, ValidationError) else "Malformed JSON"
            return self._failure(
                operation,
                "malformed",
                f"{reason} from processor.",
                status_code=resp.status_code,
                raw=resp.text,
            )

        success = bool(getattr(data, "success", True))
        gateway_requests_total.labels(
            service=self.settings.service_name,
            operation=operation,
            outcome="ok" if success else "rejected",
        ).inc()
        return GatewayResponse(
            success=success,
            data=data,
            message=getattr(data, "message", None),
            status_code=resp.status_code,
            raw=resp.text,
        )

    def _failure(
        self,
        operation: str,
        outcome: str,
        message: str,
        status_code: int | None = None,
        raw: str | None = None,
    ) -> GatewayResponse:
        gateway_requests_total.labels(
            service=self.settings.service_name,
            operation=operation,
            outcome=outcome,
        ).inc()
        logger.warning(
            "gateway_request_failed operation=%s outcome=%s message=%s raw=%s",
            operation,
            outcome,
            message,
            sanitize_for_log(raw),
        )
        return GatewayResponse(success=False, message=message, status_code=status_code, raw=raw)
