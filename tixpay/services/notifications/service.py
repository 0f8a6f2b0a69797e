"""Redirect-return, pre-charge callback and webhook handling.

All three entry points funnel into `OutcomeEmitter.emit`, so a repeated or
out-of-order event can never move a payment backwards. Authoritative status
always comes from a transaction lookup or a verified webhook, never from the
redirect query alone.
"""

import json
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from tixpay.common.config import GatewaySettings
from tixpay.common.emitter import OutcomeEmitter
from tixpay.common.host import TicketingHost
from tixpay.common.logging import (
    logger,
    payment_log_context,
    payment_token_ctx,
    redact,
    sanitize_for_log,
    transaction_id_ctx,
)
from tixpay.common.metrics import signature_failures_total
from tixpay.common.outcomes import (
    CallbackVerdict,
    ErrorCategory,
    Ignored,
    PaymentOutcome,
    Redirect,
    Rejection,
)
from tixpay.common.signatures import SignatureInputError, SignatureVerifier, to_amount
from tixpay.common.statuses import PaymentState, status_from_string
from tixpay.services.gateway.client import GatewayClient
from tixpay.services.notifications.schemas import CallbackBody, RedirectReturnParams, WebhookNotification


INVALID_GATEWAY_SIGNATURE = "Error during Off-Site Gateway checkout. Invalid Gateway Signature."
USER_CANCELLED = "User Cancelled"


class NotificationStateMachine:
    """Turns processor-originated events into at most one canonical outcome each."""

    def __init__(
        self,
        settings: GatewaySettings,
        gateway: GatewayClient,
        host: TicketingHost,
        verifier: SignatureVerifier | None = None,
        emitter: OutcomeEmitter | None = None,
    ) -> None:
        self.settings = settings
        self.gateway = gateway
        self.host = host
        self.verifier = verifier or SignatureVerifier(settings.api_secret)
        self.emitter = emitter or OutcomeEmitter(host, settings.service_name)

    def _signature_failed(self, scheme: str, reason: str, payload: Any) -> None:
        signature_failures_total.labels(service=self.settings.service_name, scheme=scheme).inc()
        logger.warning("%s payload=%s", reason, sanitize_for_log(redact(payload)))

    def _check_gateway_signature(self, signature, checkout_id, amount) -> str | None:
        """Return None when valid, otherwise the diagnostic to report."""

        try:
            if self.verifier.verify_gateway(signature, checkout_id, amount):
                return None
        except SignatureInputError as exc:
            return f"{INVALID_GATEWAY_SIGNATURE} {exc}"
        return INVALID_GATEWAY_SIGNATURE

    async def _transaction_status(self, transaction_id: str | None) -> tuple[str | None, dict | None]:
        lookup = await self.gateway.get_transaction(transaction_id)
        if not lookup.success or lookup.data is None or lookup.data.response is None:
            logger.warning(
                "Cannot retrieve transaction details for %s: %s",
                transaction_id,
                lookup.message,
            )
            return None, None
        return lookup.data.response.status, lookup.data.model_dump(mode="json", by_alias=True)

    async def on_redirect_return(
        self, params: Mapping[str, Any]
    ) -> PaymentOutcome | Redirect | Rejection:
        """Purchaser came back from the hosted page, either paid or cancelled."""

        with payment_log_context():
            return await self._redirect_return(params)

    async def _redirect_return(self, params: Mapping[str, Any]) -> PaymentOutcome | Redirect | Rejection:
        raw = dict(params)
        request = RedirectReturnParams.model_validate(raw)
        payment_token = (request.tix_payment_token or "").strip()
        if not payment_token:
            return Rejection(category=ErrorCategory.INPUT, reason="empty token")
        payment_token_ctx.set(payment_token)

        order = await self.host.lookup_order(payment_token)
        if order is None:
            return Rejection(
                category=ErrorCategory.INPUT,
                reason="could not find order",
                payment_token=payment_token,
            )
        source = "redirect"

        if request.is_signed:
            failure = self._check_gateway_signature(request.signature, request.checkout_id, request.amount)
            if failure is not None:
                self._signature_failed("gateway", failure, raw)
                # Reported to the purchaser, never written: a forged return must not touch the order.
                return PaymentOutcome(
                    payment_token=payment_token,
                    state=PaymentState.FAILED,
                    message="Invalid Gateway Signature.",
                    details={"error": failure, "raw": redact(raw)},
                    skipped_reason="invalid_signature",
                )

            if request.status == "Completed":
                transaction_id = request.transaction
                reported, details = await self._transaction_status(transaction_id)
                payment_status = reported or request.status
                logger.info("Payment details for %s status=%s", transaction_id, payment_status)
                if request.postback == "failure":
                    logger.warning("Error with Dwolla postback from specified callback URL.")
                return await self.emitter.emit(
                    source,
                    payment_token,
                    status_from_string(payment_status),
                    current=order.status,
                    transaction_id=transaction_id,
                    details={"raw": redact(raw), "transaction_details": details},
                )
            return await self._failed(source, payment_token, order.status, request, raw)

        if request.error is not None and request.error_description == USER_CANCELLED:
            transaction_id = await self.host.lookup_transaction_id(payment_token)
            if transaction_id:
                transaction_id_ctx.set(str(transaction_id))
                reported, details = await self._transaction_status(transaction_id)
                if reported is not None and status_from_string(reported) in (
                    PaymentState.PENDING,
                    PaymentState.COMPLETED,
                ):
                    logger.info(
                        "False alarm on payment_cancel. This transaction is valid. details=%s",
                        sanitize_for_log(details),
                    )
                    return Redirect(
                        url=await self.host.access_link(payment_token),
                        payment_token=payment_token,
                        reason="false_alarm_cancel",
                    )
            return await self.emitter.emit(
                source,
                payment_token,
                PaymentState.CANCELLED,
                current=order.status,
                details={"raw": redact(raw)},
            )

        return await self._failed(source, payment_token, order.status, request, raw)

    async def _failed(
        self,
        source: str,
        payment_token: str,
        current: PaymentState | None,
        request: RedirectReturnParams,
        raw: dict,
    ) -> PaymentOutcome:
        error = request.error or "0"
        error_message = request.error_description or ""
        message = f"Dwolla error: {error_message} ({error})" if error_message else None
        return await self.emitter.emit(
            source,
            payment_token,
            PaymentState.FAILED,
            current=current,
            details={"error": error, "error_message": error_message, "raw": redact(raw)},
            message=message,
            authoritative=False,
        )

    async def on_callback(self, payment_token: str | None, raw_body: bytes) -> CallbackVerdict | Rejection:
        """Gatekeeping before the charge is finalized; never writes payment state."""

        with payment_log_context():
            return await self._callback(payment_token, raw_body)

    async def _callback(self, payment_token: str | None, raw_body: bytes) -> CallbackVerdict | Rejection:
        payment_token = (payment_token or "").strip()
        try:
            data = json.loads(raw_body or b"null", parse_float=Decimal)
            body = CallbackBody.model_validate(data)
        except ValueError:
            data, body = None, None
        if not payment_token or body is None or not body.checkout_id:
            return Rejection(category=ErrorCategory.INPUT, reason="empty token", payment_token=payment_token or None)
        payment_token_ctx.set(payment_token)

        order = await self.host.lookup_order(payment_token)
        if order is None:
            return Rejection(
                category=ErrorCategory.INPUT,
                reason="could not find order",
                payment_token=payment_token,
            )

        def verdict(category: ErrorCategory | None, reason: str | None) -> CallbackVerdict:
            if category is not None:
                logger.warning("callback rejected category=%s reason=%s", category.value, reason)
            return CallbackVerdict(
                accepted=category is None,
                payment_token=payment_token,
                payload=data,
                category=category,
                reason=reason,
            )

        if body.signature is None or body.amount is None:
            logger.warning("Error during Dwolla Checkout. payload=%s", sanitize_for_log(redact(data)))
            return verdict(ErrorCategory.INPUT, body.error or "Error during Dwolla Checkout.")

        failure = self._check_gateway_signature(body.signature, body.checkout_id, body.amount)
        if failure is not None:
            self._signature_failed("gateway", failure, data)
            return verdict(ErrorCategory.AUTHENTICITY, body.error or failure)

        if body.status != "Completed":
            return verdict(ErrorCategory.BUSINESS, body.error or "Error during Off-Site Gateway checkout.")

        if to_amount(body.amount) != order.total:
            logger.error("Unexpected total! signed=%s order=%s", body.amount, order.total)
            return verdict(ErrorCategory.CONSISTENCY, "Unexpected total!")

        # One final check before charging the user.
        if not await self.host.verify_order_still_valid(order):
            return verdict(ErrorCategory.CONSISTENCY, "Something went wrong, order is no longer available.")

        logger.info("callback accepted checkout_id=%s", body.checkout_id)
        return verdict(None, None)

    async def on_webhook_notify(
        self, raw_body: bytes, signature: str | None
    ) -> PaymentOutcome | Rejection | Ignored:
        """Asynchronous `TransactionStatus` notification; may repeat or arrive early."""

        with payment_log_context():
            return await self._webhook_notify(raw_body, signature)

    async def _webhook_notify(self, raw_body: bytes, signature: str | None) -> PaymentOutcome | Rejection | Ignored:
        if not self.verifier.verify_webhook(raw_body, signature):
            signature_failures_total.labels(service=self.settings.service_name, scheme="webhook").inc()
            logger.warning("Dwolla Webhook Signature failed to verify!")
            return Rejection(
                category=ErrorCategory.AUTHENTICITY,
                reason="Dwolla signature verification failed.",
            )

        try:
            data = json.loads(raw_body, parse_float=Decimal)
            notification = WebhookNotification.model_validate(data)
        except ValueError:
            logger.warning("Unreadable webhook body.")
            return Ignored(reason="malformed notification")
        logger.info("Transaction Details: %s", sanitize_for_log(redact(data)))

        if not notification.is_transaction_status:
            logger.info("No transaction data.")
            return Ignored(reason="not a transaction status notification")
        if not notification.id:
            return Ignored(reason="missing transaction id")

        transaction_id = notification.id
        transaction_id_ctx.set(transaction_id)
        attendee = await self.host.lookup_attendee_by_transaction(transaction_id)
        if attendee is None:
            logger.info("Could not match to attendee by transaction id.")
            return Ignored(reason="unknown transaction", transaction_id=transaction_id)
        if not attendee.payment_token:
            logger.info("Could not find a payment token by transaction id.")
            return Ignored(reason="no payment token", transaction_id=transaction_id)

        payment_token_ctx.set(attendee.payment_token)
        return await self.emitter.emit(
            "webhook",
            attendee.payment_token,
            status_from_string(notification.transaction.status),
            current=attendee.status,
            transaction_id=transaction_id,
            details={"raw": data},
        )
