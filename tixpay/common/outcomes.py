"""Typed results returned by every entry point to the transport layer."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from tixpay.common.statuses import PaymentState


class ErrorCategory(str, Enum):
    INPUT = "input"
    AUTHENTICITY = "authenticity"
    TRANSPORT = "transport"
    BUSINESS = "business"
    CONSISTENCY = "consistency"


class PaymentOutcome(BaseModel):
    """A canonical state produced for a payment token.

    `applied` is False when the state was a duplicate or a regression and the
    host was not asked (or refused) to write it.
    """

    payment_token: str
    state: PaymentState
    transaction_id: str | None = None
    refund_transaction_id: str | None = None
    message: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    applied: bool = False
    skipped_reason: str | None = None


class Redirect(BaseModel):
    """Send the purchaser's browser elsewhere; no state is emitted."""

    url: str
    payment_token: str | None = None
    reason: str


class Rejection(BaseModel):
    """The event was refused before any state mutation."""

    category: ErrorCategory
    reason: str
    payment_token: str | None = None


class Ignored(BaseModel):
    """Valid event that this deployment has nothing to do with."""

    reason: str
    transaction_id: str | None = None


class CallbackVerdict(BaseModel):
    """Gatekeeping result of the pre-charge callback."""

    accepted: bool
    payment_token: str
    payload: dict[str, Any] = Field(default_factory=dict)
    category: ErrorCategory | None = None
    reason: str | None = None

    @property
    def fatal(self) -> bool:
        return self.category == ErrorCategory.CONSISTENCY
