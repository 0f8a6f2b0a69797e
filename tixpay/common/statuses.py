"""Canonical payment states and the Dwolla status vocabulary mapping."""

from enum import Enum


class PaymentState(str, Enum):
    """The only payment states handed to the ticketing host."""

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    REFUNDED = "refunded"
    REFUND_FAILED = "refund_failed"


# "completed" maps to PENDING, unlike "processed" and "paid".
DWOLLA_STATUSES: dict[str, PaymentState] = {
    "processed": PaymentState.COMPLETED,
    "paid": PaymentState.COMPLETED,
    "completed": PaymentState.PENDING,
    "pending": PaymentState.PENDING,
    "failed": PaymentState.FAILED,
    "failure": PaymentState.FAILED,
    "cancelled": PaymentState.CANCELLED,
    "refunded": PaymentState.REFUNDED,
}


def status_from_string(payment_status: str | None) -> PaymentState:
    """Map a processor status to a canonical state; unknown values are Pending."""

    if not payment_status:
        return PaymentState.PENDING
    return DWOLLA_STATUSES.get(str(payment_status).strip().lower(), PaymentState.PENDING)
