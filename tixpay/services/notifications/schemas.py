"""Inbound payloads from Dwolla: redirect query, callback body, webhook body."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal

from tixpay.services.gateway.schemas import Text


class RedirectReturnParams(BaseModel):
    """Query parameters on the purchaser's return from the hosted page."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    tix_payment_token: str | None = None
    tix_action: str | None = None
    signature: str | None = None
    checkout_id: Text = Field(default=None, alias="checkoutId")
    amount: Text = None
    status: str | None = None
    transaction: Text = None
    postback: str | None = None
    error: str | None = None
    error_description: str | None = None

    @property
    def is_signed(self) -> bool:
        return any(v is not None for v in (self.signature, self.checkout_id, self.amount))


class _PascalPayload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        extra="allow",
    )


class CallbackBody(_PascalPayload):
    """Server-to-server JSON posted before the charge is finalized."""

    signature: str | None = None
    checkout_id: Text = None
    amount: Text = None
    status: str | None = None
    error: str | None = None


class WebhookTransaction(_PascalPayload):
    status: str | None = None


class WebhookNotification(_PascalPayload):
    """`TransactionStatus` webhook body."""

    type: str | None = None
    subtype: str | None = None
    id: Text = None
    transaction: WebhookTransaction | None = None

    @property
    def is_transaction_status(self) -> bool:
        return self.type == "Transaction" and self.subtype == "Status" and self.transaction is not None
