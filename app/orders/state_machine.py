# app/orders/state_machine.py

from app.orders.model import (
    AWAITING_PAYMENT,
    CANCELLED,
    FAILED,
    FULFILLED,
    PAID,
    PROCESSING,
)


class InvalidTransition(Exception):
    pass


ALLOWED = {
    AWAITING_PAYMENT: {PAID, CANCELLED},
    PAID: {PROCESSING},
    PROCESSING: {FULFILLED, FAILED},
    FULFILLED: set(),
    CANCELLED: set(),
    FAILED: set(),
}

TERMINAL_STATUSES = frozenset({FULFILLED, CANCELLED, FAILED})


def is_allowed(old: str, new: str) -> bool:
    return new in ALLOWED.get(old, set())


def assert_transition(old: str, new: str) -> None:
    if not is_allowed(old, new):
        raise InvalidTransition(f"Illegal order transition: {old} -> {new}")


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES
