"""Checkout initiation against the off-site gateway."""

import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from tixpay.common.host import LineItem
from tixpay.common.outcomes import ErrorCategory, PaymentOutcome, Redirect, Rejection
from tixpay.common.statuses import PaymentState
from tixpay.services.checkout.service import CheckoutInitiator, UnsupportedCurrencyError


@pytest.fixture
def initiator(settings, gateway, host):
    return CheckoutInitiator(settings, gateway, host)


def test_successful_checkout_redirects_to_hosted_page(initiator, host, dwolla):
    host.add_order("tok-1")
    dwolla.on_json("POST", "/payment/request", {"Result": "Success", "CheckoutId": "f9a1-22"})

    result = asyncio.run(initiator.initiate("tok-1"))

    assert isinstance(result, Redirect)
    assert result.url == "https://uat.dwolla.com/payment/checkout/f9a1-22"
    assert host.applied == []


def test_checkout_request_embeds_token_and_action(initiator, host, dwolla):
    host.add_order("tok-1")
    dwolla.on_json("POST", "/payment/request", {"Result": "Success", "CheckoutId": "f9a1-22"})

    asyncio.run(initiator.initiate("tok-1"))

    body = json.loads(dwolla.calls("POST", "/payment/request")[0].content)
    callback = httpx.URL(body["callback"])
    redirect = httpx.URL(body["redirect"])
    assert callback.params["tix_action"] == "payment_callback"
    assert redirect.params["tix_action"] == "payment_redirect"
    for url in (callback, redirect):
        assert url.host == "tix.example"
        assert url.params["tix_payment_token"] == "tok-1"
        assert url.params["tix_payment_method"] == "dwolla"
    assert body["key"] == "app-key"
    assert body["test"] is True
    assert body["assumeCosts"] is False
    assert body["purchaseOrder"]["destinationId"] == "812-000-0000"
    assert body["purchaseOrder"]["total"] == 25.0


def test_line_items_are_stripped_and_truncated(initiator, host, dwolla):
    long_name = "<b>Workshop</b> " + "x" * 200
    host.add_order(
        "tok-1",
        total="40.00",
        items=[
            LineItem(name=long_name, description="<i>Hands-on</i> session", price=Decimal("20.00"), quantity=2),
        ],
    )
    dwolla.on_json("POST", "/payment/request", {"Result": "Success", "CheckoutId": "c1"})

    asyncio.run(initiator.initiate("tok-1"))

    item = json.loads(dwolla.calls("POST", "/payment/request")[0].content)["purchaseOrder"]["orderItems"][0]
    assert item["Name"].startswith("PyCon: Workshop x")
    assert len(item["Name"]) == 127
    assert item["Description"] == "Hands-on session"
    assert item["Price"] == 20.0
    assert item["Quantity"] == 2


def test_gateway_refusal_is_a_terminal_failure(initiator, host, dwolla):
    host.add_order("tok-1")
    dwolla.on_json("POST", "/payment/request", {"Result": "Failure", "Message": "Invalid application credentials."})

    result = asyncio.run(initiator.initiate("tok-1"))

    assert isinstance(result, PaymentOutcome)
    assert result.state == PaymentState.FAILED
    assert result.applied
    assert result.details["error"] == "Invalid application credentials."
    assert host.states["tok-1"] == PaymentState.FAILED
    assert len(dwolla.requests) == 1


def test_transport_failure_is_a_terminal_failure(initiator, host, dwolla):
    host.add_order("tok-1")
    dwolla.on("POST", "/payment/request", httpx.Response(500, text="boom"))

    result = asyncio.run(initiator.initiate("tok-1"))

    assert result.state == PaymentState.FAILED
    assert result.details["error"] == "Request failed. Server responded with: 500"


def test_unsupported_currency_is_fatal(initiator, host, dwolla):
    host.add_order("tok-1", currency="EUR")

    with pytest.raises(UnsupportedCurrencyError):
        asyncio.run(initiator.initiate("tok-1"))
    assert dwolla.requests == []


def test_empty_token_and_unknown_order_make_no_request(initiator, dwolla):
    empty = asyncio.run(initiator.initiate("  "))
    unknown = asyncio.run(initiator.initiate("tok-missing"))

    assert isinstance(empty, Rejection) and empty.category == ErrorCategory.INPUT
    assert isinstance(unknown, Rejection) and unknown.reason == "could not find order"
    assert dwolla.requests == []
