"""Outbound client normalization: every failure becomes a GatewayResponse."""

import asyncio
import json
from decimal import Decimal

import httpx

from conftest import TRANSACTIONS, transaction_json
from tixpay.services.gateway.client import GatewayClient
from tixpay.services.gateway.schemas import CheckoutRequest, PurchaseOrder


def test_transaction_lookup_parses_amount_as_decimal(gateway, dwolla):
    dwolla.on("GET", TRANSACTIONS + "123", httpx.Response(200, text='{"Success": true, "Message": "Success", '
              '"Response": {"Id": 123, "Status": "processed", "Amount": 25.10}}'))

    resp = asyncio.run(gateway.get_transaction("123"))

    assert resp.success
    assert resp.data.response.id == "123"
    assert resp.data.response.status == "processed"
    assert resp.data.response.amount == Decimal("25.10")
    sent = dwolla.calls("GET", TRANSACTIONS + "123")[0]
    assert sent.url.params["oauth_token"] == "oauth-token"
    assert sent.url.host == "uat.dwolla.com"


def test_unsuccessful_envelope_is_not_success(gateway, dwolla):
    dwolla.on_json("GET", TRANSACTIONS + "404", transaction_json("404", "", success=False))

    resp = asyncio.run(gateway.get_transaction("404"))

    assert not resp.success
    assert resp.message == "Transaction not found"


def test_non_2xx_is_normalized(gateway, dwolla):
    dwolla.on("GET", TRANSACTIONS + "1", httpx.Response(503, text="upstream down"))

    resp = asyncio.run(gateway.get_transaction("1"))

    assert not resp.success
    assert resp.status_code == 503
    assert resp.message == "Request failed. Server responded with: 503"
    assert resp.raw == "upstream down"


def test_timeout_is_normalized(gateway, dwolla):
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    dwolla.on("GET", TRANSACTIONS + "1", slow)

    resp = asyncio.run(gateway.get_transaction("1"))

    assert not resp.success
    assert resp.message.startswith("Request timed out")


def test_connection_error_is_normalized(gateway, dwolla):
    def refused(request):
        raise httpx.ConnectError("refused", request=request)

    dwolla.on("GET", TRANSACTIONS + "1", refused)

    resp = asyncio.run(gateway.get_transaction("1"))

    assert not resp.success
    assert resp.message == "Request failed: ConnectError"


def test_malformed_json_is_a_transport_failure(gateway, dwolla):
    dwolla.on("GET", TRANSACTIONS + "1", httpx.Response(200, text="<html>oops</html>"))

    resp = asyncio.run(gateway.get_transaction("1"))

    assert not resp.success
    assert resp.message == "Malformed JSON from processor."


def test_unexpected_shape_is_rejected(gateway, dwolla):
    dwolla.on_json("GET", TRANSACTIONS + "1", {"Success": True, "Response": "Invalid access token"})

    resp = asyncio.run(gateway.get_transaction("1"))

    assert not resp.success
    assert resp.message == "Unexpected response shape from processor."


def test_missing_transaction_id_makes_no_request(gateway, dwolla):
    resp = asyncio.run(gateway.get_transaction(""))

    assert not resp.success
    assert dwolla.requests == []


def test_refund_body(gateway, dwolla):
    dwolla.on_json(
        "POST",
        TRANSACTIONS + "refund",
        {"Success": True, "Message": "Success", "Response": {"TransactionId": 456, "Amount": 25.0}},
    )

    resp = asyncio.run(gateway.submit_refund("123", "Balance", Decimal("25.00")))

    assert resp.success
    assert resp.data.response.transaction_id == "456"
    body = json.loads(dwolla.calls("POST", TRANSACTIONS + "refund")[0].content)
    assert body == {
        "oauth_token": "oauth-token",
        "pin": "1234",
        "transaction_id": "123",
        "fundsSource": "Balance",
        "amount": 25.0,
    }


def test_checkout_body_uses_wire_names(gateway, dwolla, settings):
    dwolla.on_json("POST", "/payment/request", {"Result": "Success", "CheckoutId": "CHK-1"})
    request = CheckoutRequest(
        key="app-key",
        secret=settings.api_secret,
        callback="https://tix.example/cb",
        redirect="https://tix.example/rd",
        purchase_order=PurchaseOrder(destination_id="812-000-0000", total=Decimal("25.00")),
    )

    resp = asyncio.run(gateway.create_checkout(request))

    assert resp.success
    assert resp.data.checkout_id == "CHK-1"
    body = json.loads(dwolla.calls("POST", "/payment/request")[0].content)
    assert body["secret"] == "s3cret-app-secret"
    assert body["purchaseOrder"] == {
        "destinationId": "812-000-0000",
        "shipping": 0.0,
        "tax": 0.0,
        "total": 25.0,
        "orderItems": [],
    }
    assert "allowGuestCheckout" in body


def test_production_host_when_not_sandbox(settings, dwolla):
    production = settings.model_copy(update={"sandbox": False})
    client = GatewayClient(production, dwolla.client())

    assert client.checkout_url("CHK-1") == "https://www.dwolla.com/payment/checkout/CHK-1"


def test_default_client_has_bounded_timeouts(settings):
    client = GatewayClient(settings)

    assert client._http.timeout.connect == 5.0
    assert client._http.timeout.read == 5.0
    asyncio.run(client.close())
