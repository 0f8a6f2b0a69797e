"""Shared fixtures: settings, an in-memory ticketing host and a fake Dwolla."""

import hashlib
import hmac
import json
from decimal import Decimal

import httpx
import pytest

from tixpay.common.config import GatewaySettings
from tixpay.common.host import AttendeeRecord, LineItem, Order
from tixpay.common.state_machine import can_transition
from tixpay.common.statuses import PaymentState
from tixpay.services.gateway.client import GatewayClient


SECRET = "s3cret-app-secret"
TRANSACTIONS = "/oauth/rest/transactions/"


def sign_gateway(checkout_id: str, amount: str, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), f"{checkout_id}&{amount}".encode(), hashlib.sha1).hexdigest()


def sign_body(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha1).hexdigest()


def transaction_json(transaction_id: str, status: str, amount: str = "25.00", success: bool = True) -> dict:
    return {
        "Success": success,
        "Message": "Success" if success else "Transaction not found",
        "Response": {"Id": int(transaction_id), "Status": status, "Amount": float(amount), "DestinationId": "812-000-0000"}
        if success
        else None,
    }


class FakeHost:
    """Ticketing host double with compare-and-set `apply_outcome`."""

    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.states: dict[str, PaymentState] = {}
        self.transactions: dict[str, str] = {}
        self.applied: list[tuple[str, PaymentState, dict]] = []
        self.order_valid = True

    def add_order(
        self,
        payment_token: str = "tok-1",
        total: str = "25.00",
        currency: str = "USD",
        status: PaymentState | None = None,
        transaction_id: str | None = None,
        items: list[LineItem] | None = None,
    ) -> Order:
        order = Order(
            payment_token=payment_token,
            total=Decimal(total),
            currency=currency,
            items=items or [LineItem(name="General Admission", description="Day pass", price=Decimal(total), quantity=1)],
        )
        self.orders[payment_token] = order
        if status is not None:
            self.states[payment_token] = status
        if transaction_id is not None:
            self.transactions[payment_token] = transaction_id
        return order

    async def lookup_order(self, payment_token):
        order = self.orders.get(payment_token)
        if order is None:
            return None
        return order.model_copy(update={"status": self.states.get(payment_token)})

    async def lookup_transaction_id(self, payment_token):
        return self.transactions.get(payment_token)

    async def lookup_attendee_by_transaction(self, transaction_id):
        for token, txn in self.transactions.items():
            if txn == transaction_id:
                return AttendeeRecord(
                    attendee_id=f"att-{token}",
                    payment_token=token,
                    transaction_id=txn,
                    status=self.states.get(token),
                )
        return None

    async def apply_outcome(self, payment_token, state, details):
        if not can_transition(self.states.get(payment_token), state):
            return False
        self.states[payment_token] = state
        if details.get("transaction_id"):
            self.transactions[payment_token] = str(details["transaction_id"])
        self.applied.append((payment_token, state, details))
        return True

    async def verify_order_still_valid(self, order):
        return self.order_valid

    async def access_link(self, payment_token):
        return f"https://tix.example/tickets?tix_action=access_tickets&tix_access_token=acc-{payment_token}"


class FakeDwolla:
    """Routes outbound requests to canned responses and records them."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], object] = {}

    def on(self, method: str, path: str, response) -> None:
        self.routes[(method, path)] = response

    def on_json(self, method: str, path: str, payload: dict, status_code: int = 200) -> None:
        self.on(method, path, httpx.Response(status_code, text=json.dumps(payload)))

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, text="not found")
        if callable(route):
            return route(request)
        return route

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings() -> GatewaySettings:
    return GatewaySettings(
        _env_file=None,
        dwolla_id="812-000-0000",
        api_key="app-key",
        api_secret=SECRET,
        oauth_token="oauth-token",
        pin="1234",
        tickets_url="https://tix.example/tickets",
        event_name="PyCon",
    )


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def dwolla() -> FakeDwolla:
    return FakeDwolla()


@pytest.fixture
def gateway(settings, dwolla) -> GatewayClient:
    return GatewayClient(settings, dwolla.client())
