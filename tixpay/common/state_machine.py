"""Canonical payment state transitions shared by the core and host stores."""

from tixpay.common.statuses import PaymentState


ALLOWED_TRANSITIONS: dict[PaymentState, set[PaymentState]] = {
    PaymentState.PENDING: {PaymentState.COMPLETED, PaymentState.CANCELLED, PaymentState.FAILED},
    PaymentState.FAILED: {PaymentState.PENDING, PaymentState.COMPLETED, PaymentState.CANCELLED},
    PaymentState.CANCELLED: {PaymentState.PENDING, PaymentState.COMPLETED, PaymentState.FAILED},
    PaymentState.COMPLETED: {PaymentState.FAILED, PaymentState.REFUNDED, PaymentState.REFUND_FAILED},
    PaymentState.REFUND_FAILED: {PaymentState.COMPLETED, PaymentState.REFUNDED},
    PaymentState.REFUNDED: set(),
}

# Money has moved; only a verified processor report may change these.
SETTLED_STATES = frozenset({PaymentState.COMPLETED, PaymentState.REFUNDED, PaymentState.REFUND_FAILED})


class InvalidTransition(ValueError):
    """A later event tried to move a payment backwards."""


def is_duplicate(current: PaymentState | None, new: PaymentState) -> bool:
    return current is not None and current == new


def validate_transition(current: PaymentState | None, new: PaymentState) -> None:
    """Raise when a transition is not allowed by the state machine.

    `current=None` means the host has no state yet, which accepts anything.
    """

    if current is None:
        return
    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Invalid transition: {current.value} -> {new.value}")


def can_transition(current: PaymentState | None, new: PaymentState) -> bool:
    """Compare-and-set predicate for host stores: true when `new` should be written."""

    if is_duplicate(current, new):
        return False
    try:
        validate_transition(current, new)
    except InvalidTransition:
        return False
    return True
