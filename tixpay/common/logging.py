"""Structured JSON logging with request/payment context fields."""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from pythonjsonlogger.json import JsonFormatter


service_name_ctx: ContextVar[str] = ContextVar("service_name", default="tixpay")
trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
payment_token_ctx: ContextVar[str] = ContextVar("payment_token", default="")
transaction_id_ctx: ContextVar[str] = ContextVar("transaction_id", default="")

_SECRET_MARKERS = ("secret", "pin", "token", "signature", "key", "password")


class ContextFilter(logging.Filter):
    """Inject service and correlation identifiers into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = service_name_ctx.get()
        record.trace_id = trace_id_ctx.get()
        record.payment_token = payment_token_ctx.get()
        record.transaction_id = transaction_id_ctx.get()
        return True


def configure_logging(service_name: str, level: str = "INFO") -> None:
    """Configure root logger once per process."""

    service_name_ctx.set(service_name)
    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter()
    handler.addFilter(context_filter)
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(service_name)s %(trace_id)s %(payment_token)s "
        "%(transaction_id)s %(message)s"
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    root.addFilter(context_filter)


@contextmanager
def payment_log_context(payment_token: str = "", transaction_id: str = ""):
    """Scope payment correlation ids to one entry point.

    Ids set inside the block (including later `.set()` calls) are restored to
    their previous values on exit.
    """

    payment = payment_token_ctx.set(payment_token)
    transaction = transaction_id_ctx.set(transaction_id)
    try:
        yield
    finally:
        payment_token_ctx.reset(payment)
        transaction_id_ctx.reset(transaction)


def sanitize_for_log(value: Any) -> str:
    """Flatten a value to one line so it cannot forge extra log entries."""

    if value is None:
        return ""
    return str(value).replace("\r\n", " ").replace("\n", " ").replace("\r", " ")


def redact(payload: Any) -> Any:
    """Return a copy of `payload` with secret-looking keys masked.

    `tix_payment_token` and `payment_token` are correlation ids, not secrets, and
    are kept so that log lines can be matched to orders.
    """

    if isinstance(payload, dict):
        cleaned = {}
        for key, value in payload.items():
            name = str(key).lower()
            if name.endswith("payment_token"):
                cleaned[key] = value
            elif any(marker in name for marker in _SECRET_MARKERS):
                cleaned[key] = "<redacted>"
            else:
                cleaned[key] = redact(value)
        return cleaned
    if isinstance(payload, list):
        return [redact(item) for item in payload]
    return payload


logger = logging.getLogger("tixpay")
