"""Ticketing host contract.

The adapter never stores orders or attendees itself. The host application
implements `TicketingHost` over its own storage; `apply_outcome` must be an
atomic compare-and-set per payment token (see `state_machine.can_transition`).
"""

from decimal import Decimal
from typing import Any, Protocol

from pydantic import BaseModel, Field

from tixpay.common.statuses import PaymentState


class LineItem(BaseModel):
    """One ticket line in the host's order."""

    name: str
    description: str = ""
    price: Decimal
    quantity: int = Field(ge=1)


class Order(BaseModel):
    """Pending order as reported by the host for a payment token."""

    payment_token: str
    total: Decimal
    currency: str = "USD"
    items: list[LineItem] = Field(default_factory=list)
    status: PaymentState | None = None

    model_config = {"frozen": True}


class AttendeeRecord(BaseModel):
    """Attendee matched by processor transaction id."""

    attendee_id: str
    payment_token: str | None = None
    transaction_id: str | None = None
    status: PaymentState | None = None


class TicketingHost(Protocol):
    async def lookup_order(self, payment_token: str) -> Order | None: ...

    async def lookup_transaction_id(self, payment_token: str) -> str | None: ...

    async def lookup_attendee_by_transaction(self, transaction_id: str) -> AttendeeRecord | None: ...

    async def apply_outcome(
        self, payment_token: str, state: PaymentState, details: dict[str, Any]
    ) -> bool:
        """Persist `state` if allowed; return False when nothing changed."""
        ...

    async def verify_order_still_valid(self, order: Order) -> bool: ...

    async def access_link(self, payment_token: str) -> str:
        """URL of the purchaser's existing tickets/receipt page."""
        ...
