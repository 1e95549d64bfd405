"""Enum-based workflow state machine for rental orders.

Defines order states as a Python enum with explicit transition validation.
The state definitions are independent of persistence: the order service
asks this module whether a change is legal before touching the database.

Lifecycle::

    PENDING ──> CONFIRMED ──> COMPLETED
       │            │
       └────────────┴──> CANCELLED
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from core.errors import InvalidStateTransition


# ---------------------------------------------------------------------------
# State definitions
# ---------------------------------------------------------------------------

class OrderStatus(str, Enum):
    """Rental order states."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Orders in these states never block inventory.
INACTIVE_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.CANCELLED, OrderStatus.COMPLETED}
)


# ---------------------------------------------------------------------------
# Transition rules
# ---------------------------------------------------------------------------

# Allowed transitions: {current_state: [allowed_next_states]}
_ORDER_TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
    OrderStatus.PENDING: [OrderStatus.CONFIRMED, OrderStatus.CANCELLED],
    OrderStatus.CONFIRMED: [OrderStatus.COMPLETED, OrderStatus.CANCELLED],
    OrderStatus.COMPLETED: [],  # terminal
    OrderStatus.CANCELLED: [],  # terminal
}

_FAILURE_MESSAGES: dict[OrderStatus, str] = {
    OrderStatus.CANCELLED: "Cannot cancel order in current status",
    OrderStatus.CONFIRMED: "Only pending orders can be confirmed",
    OrderStatus.COMPLETED: "Only confirmed orders can be completed",
}


@dataclass
class WorkflowTransition:
    """Record of a single state transition."""

    order_id: str
    from_state: str
    to_state: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    actor: str = "system"
    metadata: dict[str, Any] = field(default_factory=dict)


def allowed_transitions(current: OrderStatus) -> list[OrderStatus]:
    return list(_ORDER_TRANSITIONS.get(OrderStatus(current), []))


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Check if a transition is allowed from the current state."""
    return OrderStatus(target) in _ORDER_TRANSITIONS.get(OrderStatus(current), [])


def is_terminal(state: OrderStatus) -> bool:
    return len(_ORDER_TRANSITIONS.get(OrderStatus(state), [])) == 0


def transition(
    order_id: str,
    current: OrderStatus,
    target: OrderStatus,
    actor: str = "system",
    metadata: dict[str, Any] | None = None,
) -> WorkflowTransition:
    """Validate a transition and return its record.

    Raises InvalidStateTransition if the lifecycle does not allow it.
    """
    current, target = OrderStatus(current), OrderStatus(target)
    if not can_transition(current, target):
        message = _FAILURE_MESSAGES.get(
            target,
            f"Cannot transition from {current.value} to {target.value}",
        )
        raise InvalidStateTransition(
            message,
            details={
                "from": current.value,
                "to": target.value,
                "allowed": [s.value for s in allowed_transitions(current)],
            },
        )

    return WorkflowTransition(
        order_id=order_id,
        from_state=current.value,
        to_state=target.value,
        actor=actor,
        metadata=metadata or {},
    )
