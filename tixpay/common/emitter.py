"""Single path by which canonical states reach the host."""

from typing import Any

from tixpay.common.host import TicketingHost
from tixpay.common.logging import logger
from tixpay.common.metrics import outcomes_skipped_total, payment_outcomes_total
from tixpay.common.outcomes import PaymentOutcome
from tixpay.common.state_machine import SETTLED_STATES, InvalidTransition, is_duplicate, validate_transition
from tixpay.common.statuses import PaymentState


class OutcomeEmitter:
    """Guards transitions locally, then delegates the atomic write to the host."""

    def __init__(self, host: TicketingHost, service_name: str = "tixpay") -> None:
        self.host = host
        self.service_name = service_name

    def _skip(self, source: str, outcome: PaymentOutcome, reason: str) -> PaymentOutcome:
        outcomes_skipped_total.labels(service=self.service_name, source=source, reason=reason).inc()
        logger.info(
            "outcome skipped source=%s state=%s reason=%s",
            source,
            outcome.state.value,
            reason,
        )
        outcome.skipped_reason = reason
        return outcome

    async def emit(
        self,
        source: str,
        payment_token: str,
        state: PaymentState,
        current: PaymentState | None = None,
        transaction_id: str | None = None,
        details: dict[str, Any] | None = None,
        message: str | None = None,
        refund_transaction_id: str | None = None,
        authoritative: bool = True,
    ) -> PaymentOutcome:
        """Hand `state` to the host unless it repeats or regresses `current`.

        Non-authoritative states come from unsigned purchaser input and never
        replace a settled state.
        """

        details = dict(details or {})
        if transaction_id is not None:
            details.setdefault("transaction_id", transaction_id)
        if refund_transaction_id is not None:
            details.setdefault("refund_transaction_id", refund_transaction_id)
        outcome = PaymentOutcome(
            payment_token=payment_token,
            state=state,
            transaction_id=transaction_id,
            refund_transaction_id=refund_transaction_id,
            message=message,
            details=details,
        )

        if is_duplicate(current, state):
            return self._skip(source, outcome, "duplicate")
        if not authoritative and current in SETTLED_STATES:
            return self._skip(source, outcome, "unverified_downgrade")
        try:
            validate_transition(current, state)
        except InvalidTransition:
            return self._skip(source, outcome, "regression")

        outcome.applied = await self.host.apply_outcome(payment_token, state, details)
        if not outcome.applied:
            return self._skip(source, outcome, "host_refused")

        payment_outcomes_total.labels(service=self.service_name, source=source, state=state.value).inc()
        logger.info("outcome applied source=%s state=%s", source, state.value)
        return outcome
