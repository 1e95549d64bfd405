"""Test the order status state machine."""
import pytest

from core.errors import InvalidStateTransition
from patterns.workflow_states import (
    INACTIVE_STATUSES,
    OrderStatus,
    allowed_transitions,
    can_transition,
    is_terminal,
    transition,
)


def test_pending_can_confirm_or_cancel():
    assert allowed_transitions(OrderStatus.PENDING) == [
        OrderStatus.CONFIRMED,
        OrderStatus.CANCELLED,
    ]


def test_confirmed_can_complete_or_cancel():
    assert can_transition(OrderStatus.CONFIRMED, OrderStatus.COMPLETED)
    assert can_transition(OrderStatus.CONFIRMED, OrderStatus.CANCELLED)
    assert not can_transition(OrderStatus.CONFIRMED, OrderStatus.PENDING)


def test_terminal_states():
    assert is_terminal(OrderStatus.COMPLETED)
    assert is_terminal(OrderStatus.CANCELLED)
    assert not is_terminal(OrderStatus.PENDING)
    assert INACTIVE_STATUSES == {OrderStatus.COMPLETED, OrderStatus.CANCELLED}


def test_transition_accepts_plain_strings():
    record = transition("o-1", "PENDING", "CONFIRMED", actor="admin")
    assert record.from_state == "PENDING"
    assert record.to_state == "CONFIRMED"
    assert record.actor == "admin"


def test_skipping_confirmation_is_refused():
    with pytest.raises(InvalidStateTransition, match="Only confirmed orders can be completed"):
        transition("o-1", OrderStatus.PENDING, OrderStatus.COMPLETED)


def test_cancel_from_terminal_carries_details():
    with pytest.raises(InvalidStateTransition) as exc:
        transition("o-1", OrderStatus.CANCELLED, OrderStatus.CANCELLED)
    assert exc.value.message == "Cannot cancel order in current status"
    assert exc.value.details == {"from": "CANCELLED", "to": "CANCELLED", "allowed": []}
    assert exc.value.status_code == 400
