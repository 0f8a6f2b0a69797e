"""HMAC-SHA1 signature checks for Dwolla webhooks and off-site gateway returns.

The two schemes share the application secret but sign different material:

* webhooks sign the raw request body, the digest travels in a header;
* gateway redirects and callbacks sign ``"{checkoutId}&{amount}"`` with the
  amount rendered to exactly two decimals.
"""

import hashlib
import hmac
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from pydantic import SecretStr


CENTS = Decimal("0.01")


class SignatureInputError(ValueError):
    """A required signature input was not supplied."""


class MissingSignature(SignatureInputError):
    def __init__(self) -> None:
        super().__init__("Please pass a proposed signature.")


class MissingCheckoutId(SignatureInputError):
    def __init__(self) -> None:
        super().__init__("Please pass a checkout ID.")


class MissingAmount(SignatureInputError):
    def __init__(self) -> None:
        super().__init__("Please pass a total transaction amount.")


def to_amount(value) -> Decimal:
    """Parse a wire amount into a finite Decimal without passing through float."""

    if value is None or isinstance(value, bool):
        raise MissingAmount()
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise MissingAmount() from exc
    if not amount.is_finite():
        raise MissingAmount()
    try:
        amount.quantize(CENTS)
    except InvalidOperation as exc:
        # Too many digits to render to cents.
        raise MissingAmount() from exc
    return amount


def format_amount(value) -> str:
    """Fixed two-decimal rendering, no grouping separators."""

    return f"{to_amount(value).quantize(CENTS, rounding=ROUND_HALF_UP):f}"


def _hmac_sha1(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha1).hexdigest()


def gateway_signature(secret: str, checkout_id: str, amount) -> str:
    return _hmac_sha1(secret, f"{checkout_id}&{format_amount(amount)}".encode("utf-8"))


def webhook_signature(secret: str, body: bytes) -> str:
    return _hmac_sha1(secret, body)


class SignatureVerifier:
    """Checks inbound signatures against the configured API secret."""

    def __init__(self, api_secret: SecretStr | str) -> None:
        if isinstance(api_secret, SecretStr):
            api_secret = api_secret.get_secret_value()
        self._secret = api_secret

    def verify_webhook(self, body: bytes, signature: str | None) -> bool:
        """True when `signature` is the hex HMAC of the exact raw `body`."""

        if not signature:
            return False
        expected = webhook_signature(self._secret, body)
        return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8"))

    def verify_gateway(self, signature, checkout_id, amount) -> bool:
        """Check a redirect/callback signature.

        Raises a `SignatureInputError` subclass naming the missing input, so
        operators can tell a malformed return from a forged one.
        """

        if not signature:
            raise MissingSignature()
        if not checkout_id:
            raise MissingCheckoutId()
        if amount is None or amount == "":
            raise MissingAmount()
        value = to_amount(amount)
        if value != value.quantize(CENTS, rounding=ROUND_HALF_UP):
            # Sub-cent amounts would collide with their rounded neighbour.
            return False
        expected = gateway_signature(self._secret, str(checkout_id), amount)
        return hmac.compare_digest(expected.encode("ascii"), str(signature).encode("utf-8"))
