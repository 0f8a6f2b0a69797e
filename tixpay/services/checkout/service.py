"""Checkout initiation: build the off-site gateway request and redirect."""

import re

import httpx

from tixpay.common.config import GatewaySettings
from tixpay.common.emitter import OutcomeEmitter
from tixpay.common.host import Order, TicketingHost
from tixpay.common.logging import logger, payment_log_context, payment_token_ctx
from tixpay.common.outcomes import ErrorCategory, PaymentOutcome, Redirect, Rejection
from tixpay.common.statuses import PaymentState, status_from_string
from tixpay.services.gateway.client import GatewayClient
from tixpay.services.gateway.schemas import CheckoutRequest, OrderItem, PurchaseOrder


ACTION_CALLBACK = "payment_callback"
ACTION_REDIRECT = "payment_redirect"
MAX_ITEM_TEXT = 127

_TAGS = re.compile(r"<[^>]*>")


class UnsupportedCurrencyError(RuntimeError):
    """The host offered this payment method for a currency it cannot take."""


def _clip(text: str | None) -> str:
    return _TAGS.sub("", text or "")[:MAX_ITEM_TEXT]


class CheckoutInitiator:
    """Starts a Dwolla off-site checkout for one payment token."""

    source = "checkout"

    def __init__(
        self,
        settings: GatewaySettings,
        gateway: GatewayClient,
        host: TicketingHost,
        emitter: OutcomeEmitter | None = None,
    ) -> None:
        self.settings = settings
        self.gateway = gateway
        self.host = host
        self.emitter = emitter or OutcomeEmitter(host, settings.service_name)

    def return_url(self, action: str, payment_token: str) -> str:
        """Tickets page URL carrying the token and the action discriminator."""

        url = httpx.URL(self.settings.tickets_url).copy_merge_params(
            {
                "tix_action": action,
                "tix_payment_token": payment_token,
                "tix_payment_method": self.settings.payment_method_id,
            }
        )
        return str(url)

    def build_request(self, order: Order) -> CheckoutRequest:
        items = [
            OrderItem(
                name=_clip(f"{self.settings.event_name}: {item.name}"),
                description=_clip(item.description),
                price=item.price,
                quantity=item.quantity,
            )
            for item in order.items
        ]
        return CheckoutRequest(
            key=self.settings.api_key,
            secret=self.settings.api_secret,
            callback=self.return_url(ACTION_CALLBACK, order.payment_token),
            redirect=self.return_url(ACTION_REDIRECT, order.payment_token),
            assume_costs=self.settings.assume_costs,
            allow_funding_sources=self.settings.funding_sources,
            allow_guest_checkout=self.settings.guest_checkout,
            additional_funding_sources=self.settings.additional_funding_sources,
            test=self.settings.test,
            purchase_order=PurchaseOrder(
                destination_id=self.settings.dwolla_id,
                total=order.total,
                order_items=items,
            ),
        )

    async def initiate(self, payment_token: str | None) -> Redirect | PaymentOutcome | Rejection:
        """Create the checkout session; redirect on success, fail terminally otherwise."""

        with payment_log_context():
            return await self._initiate(payment_token)

    async def _initiate(self, payment_token: str | None) -> Redirect | PaymentOutcome | Rejection:
        payment_token = (payment_token or "").strip()
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
        if order.currency.upper() not in {c.upper() for c in self.settings.supported_currencies}:
            raise UnsupportedCurrencyError(
                "The selected currency is not supported by this payment method."
            )

        response = await self.gateway.create_checkout(self.build_request(order))
        session = response.data
        if response.success and session is not None and session.checkout_id:
            logger.info("checkout created checkout_id=%s", session.checkout_id)
            return Redirect(
                url=self.gateway.checkout_url(session.checkout_id),
                payment_token=payment_token,
                reason="checkout_created",
            )

        reported = status_from_string(session.result) if session is not None and session.result else None
        error_message = (session.message if session is not None else None) or response.message or ""
        logger.error(
            "Error requesting Dwolla checkout. reported=%s message=%s",
            reported.value if reported else None,
            error_message,
        )
        return await self.emitter.emit(
            self.source,
            payment_token,
            PaymentState.FAILED,
            current=order.status,
            details={"error": error_message, "raw": response.raw},
            message="Error requesting Dwolla checkout.",
        )
