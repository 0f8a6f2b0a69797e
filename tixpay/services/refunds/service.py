"""Refunds of previously charged Dwolla transactions."""

from tixpay.common.config import GatewaySettings
from tixpay.common.emitter import OutcomeEmitter
from tixpay.common.host import TicketingHost
from tixpay.common.logging import logger, payment_log_context, sanitize_for_log, transaction_id_ctx
from tixpay.common.outcomes import ErrorCategory, PaymentOutcome, Rejection
from tixpay.common.state_machine import can_transition
from tixpay.common.statuses import PaymentState
from tixpay.services.gateway.client import GatewayClient


# Shown to purchasers/admins instead of the processor's own text.
GENERIC_REFUND_ERROR = "Unexpected error has occurred."


class RefundProcessor:
    """Submits a single refund for the transaction stored against a token."""

    source = "refund"

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

    async def refund(self, payment_token: str) -> PaymentOutcome | Rejection | None:
        """Refund the original charge.

        Returns None when the original transaction cannot be read back, which
        means "unknown", not "refund denied".
        """

        with payment_log_context(payment_token):
            return await self._refund(payment_token)

    async def _refund(self, payment_token: str) -> PaymentOutcome | Rejection | None:
        transaction_id = await self.host.lookup_transaction_id(payment_token)
        if not transaction_id:
            logger.warning("refund requested without a stored transaction id")
            return Rejection(
                category=ErrorCategory.INPUT,
                reason="No valid transaction ID.",
                payment_token=payment_token,
            )
        transaction_id = str(transaction_id)
        transaction_id_ctx.set(transaction_id)
        logger.info("Transaction ID: %s", transaction_id)

        lookup = await self.gateway.get_transaction(transaction_id)
        original = lookup.data.response if lookup.success and lookup.data is not None else None
        if original is None or original.amount is None:
            logger.error("Cannot retrieve transaction details for %s: %s", transaction_id, lookup.message)
            return None

        order = await self.host.lookup_order(payment_token)
        current = order.status if order is not None else None
        if current is not None and not can_transition(current, PaymentState.REFUNDED):
            logger.warning("refund refused, payment state is %s", current.value)
            return Rejection(
                category=ErrorCategory.BUSINESS,
                reason="Payment is not in a refundable state.",
                payment_token=payment_token,
            )

        response = await self.gateway.submit_refund(
            transaction_id,
            self.settings.refunds_source,
            original.amount,
        )
        receipt = response.data
        if response.success and receipt is not None and receipt.response is not None and receipt.response.transaction_id:
            refund_id = receipt.response.transaction_id
            logger.info("refund accepted refund_transaction_id=%s", refund_id)
            return await self.emitter.emit(
                self.source,
                payment_token,
                PaymentState.REFUNDED,
                current=current,
                transaction_id=transaction_id,
                refund_transaction_id=refund_id,
                details={"refund_transaction_details": {"raw": response.raw}},
            )

        processor_message = (receipt.message if receipt is not None else None) or response.message
        error_message = (
            f"Error during Refund Transaction. {processor_message}"
            if processor_message
            else "Error during Refund Transaction"
        )
        logger.error("%s raw=%s", error_message, sanitize_for_log(response.raw))
        return await self.emitter.emit(
            self.source,
            payment_token,
            PaymentState.REFUND_FAILED,
            current=current,
            transaction_id=transaction_id,
            details={"error": error_message, "refund_transaction_details": {"raw": response.raw}},
            message=GENERIC_REFUND_ERROR,
        )
