"""Wire schemas for the Dwolla off-site gateway and REST endpoints."""

from decimal import Decimal
from typing import Annotated, Generic, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer, SecretStr, field_serializer
from pydantic.alias_generators import to_camel, to_pascal


# Amounts stay Decimal in memory and become JSON numbers only on the wire.
WireAmount = Annotated[Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")]

T = TypeVar("T")


def _as_text(value):
    """Ids and amounts arrive as JSON numbers or strings; keep them as text."""

    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    return value


Text = Annotated[str | None, BeforeValidator(_as_text)]


class OrderItem(BaseModel):
    """One `purchaseOrder.orderItems` entry (PascalCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    name: str = Field(max_length=127)
    description: str = Field(default="", max_length=127)
    price: WireAmount
    quantity: int


class PurchaseOrder(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    destination_id: str
    shipping: WireAmount = Decimal("0")
    tax: WireAmount = Decimal("0")
    total: WireAmount
    order_items: list[OrderItem] = Field(default_factory=list)


class CheckoutRequest(BaseModel):
    """Body of `POST payment/request`."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    key: str
    secret: SecretStr
    callback: str
    redirect: str
    assume_costs: bool = False
    allow_funding_sources: bool = True
    allow_guest_checkout: bool = True
    additional_funding_sources: bool = True
    test: bool = False
    purchase_order: PurchaseOrder

    @field_serializer("secret", when_used="json")
    def _reveal_secret(self, value: SecretStr) -> str:
        return value.get_secret_value()


class RefundRequest(BaseModel):
    """Body of `POST oauth/rest/transactions/refund`."""

    model_config = ConfigDict(populate_by_name=True)

    oauth_token: SecretStr
    pin: SecretStr
    transaction_id: str
    funds_source: str = Field(alias="fundsSource")
    amount: WireAmount

    @field_serializer("oauth_token", "pin", when_used="json")
    def _reveal(self, value: SecretStr) -> str:
        return value.get_secret_value()


class DwollaPayload(BaseModel):
    """Base for processor responses: PascalCase keys, unknown keys kept."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="allow")


class CheckoutSession(DwollaPayload):
    result: str | None = None
    checkout_id: Text = None
    message: str | None = None


class TransactionInfo(DwollaPayload):
    id: Text = None
    status: str | None = None
    amount: Decimal | None = None
    destination_id: Text = None
    source_id: Text = None
    type: str | None = None


class TransactionLookup(DwollaPayload):
    success: bool = False
    message: str | None = None
    response: TransactionInfo | None = None


class RefundInfo(DwollaPayload):
    transaction_id: Text = None
    refund_date: str | None = None
    amount: Decimal | None = None


class RefundReceipt(DwollaPayload):
    success: bool = False
    message: str | None = None
    response: RefundInfo | None = None


class GatewayResponse(BaseModel, Generic[T]):
    """Uniform result of every outbound call, including transport failures."""

    success: bool
    data: T | None = None
    message: str | None = None
    status_code: int | None = None
    raw: str | None = None
