import pytest

from app.orders.state_machine import InvalidTransition, assert_transition, is_allowed, is_terminal


def test_valid_transitions():
    assert_transition("AWAITING_PAYMENT", "PAID")
    assert_transition("AWAITING_PAYMENT", "CANCELLED")
    assert_transition("PAID", "PROCESSING")
    assert_transition("PROCESSING", "FULFILLED")
    assert_transition("PROCESSING", "FAILED")


def test_invalid_transition_skipping_states():
    with pytest.raises(InvalidTransition):
        assert_transition("AWAITING_PAYMENT", "PROCESSING")
    with pytest.raises(InvalidTransition):
        assert_transition("PAID", "FULFILLED")


def test_terminal_states_cannot_transition():
    for status in ("FULFILLED", "CANCELLED", "FAILED"):
        assert is_terminal(status)
        assert not is_allowed(status, "PROCESSING")
    with pytest.raises(InvalidTransition):
        assert_transition("FULFILLED", "FAILED")
    with pytest.raises(InvalidTransition):
        assert_transition("FAILED", "PAID")


def test_paid_cannot_be_cancelled():
    assert not is_allowed("PAID", "CANCELLED")
