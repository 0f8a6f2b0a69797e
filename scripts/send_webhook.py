"""Sign and deliver a Dwolla webhook body, or print a gateway signature.

Useful for replaying a `TransactionStatus` notification against a deployment
and for checking a redirect's `signature` by hand.
"""

import argparse
import asyncio
import json
import os
from pathlib import Path

import httpx

from tixpay.common.signatures import gateway_signature, webhook_signature


async def deliver(url: str, header: str, secret: str, body: bytes) -> httpx.Response:
    """POST the exact bytes that were signed."""

    async with httpx.AsyncClient(timeout=5.0) as client:
        return await client.post(
            url,
            params={"tix_payment_method": "dwolla", "tix_action": "payment_notify"},
            headers={header: webhook_signature(secret, body), "Content-Type": "application/json"},
            content=body,
        )


def main() -> None:
    """Parse CLI args and run one command."""

    parser = argparse.ArgumentParser(description="Dwolla webhook/signature helper.")
    parser.add_argument("--secret", default=os.getenv("TIXPAY_API_SECRET"), help="API secret (or TIXPAY_API_SECRET)")
    sub = parser.add_subparsers(dest="command", required=True)

    send = sub.add_parser("send", help="Sign a JSON body and POST it as a webhook")
    send.add_argument("--url", default="http://localhost:8000/tickets")
    send.add_argument("--header", default="X-Dwolla-Signature")
    send.add_argument("--json", dest="json_inline", default=None, help="Inline JSON payload")
    send.add_argument("--file", dest="json_file", default=None, help="Path to JSON file")

    sign = sub.add_parser("sign-gateway", help="Print the signature for a checkoutId/amount pair")
    sign.add_argument("--checkout-id", required=True)
    sign.add_argument("--amount", required=True)

    args = parser.parse_args()
    if not args.secret:
        raise SystemExit("Provide --secret or set TIXPAY_API_SECRET")

    if args.command == "sign-gateway":
        print(gateway_signature(args.secret, args.checkout_id, args.amount))
        return

    if bool(args.json_inline) == bool(args.json_file):
        raise SystemExit("Provide exactly one of --json or --file")
    if args.json_inline:
        body = args.json_inline.encode("utf-8")
    else:
        body = Path(args.json_file).read_bytes()
    json.loads(body)

    resp = asyncio.run(deliver(args.url, args.header, args.secret, body))
    print(f"Delivered status={resp.status_code} body={resp.text}")


if __name__ == "__main__":
    main()
