"""
Order State Machine

Transition rules for an order, independent of storage and transport:

    Pending → Cooking → Plating → Serving → Completed
       └──→ Cancelled

Kitchen transitions move exactly one step along the chain. Cancellation is
only reachable from Pending. Completed and Cancelled are terminal. The item
list may only change while the order is Pending.
"""

from typing import Optional

from app.core.exceptions import (
    CancellationNotAllowedError,
    InvalidTransitionError,
    OrderLockedError,
)
from app.models import OrderStatus

KITCHEN_SEQUENCE: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.COOKING,
    OrderStatus.PLATING,
    OrderStatus.SERVING,
    OrderStatus.COMPLETED,
)

TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})
ACTIVE_STATUSES = frozenset(set(OrderStatus) - TERMINAL_STATUSES)


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def next_status(status: OrderStatus) -> Optional[OrderStatus]:
    """The single kitchen step after `status`, or None at the end of the chain."""
    status = OrderStatus(status)
    if status not in KITCHEN_SEQUENCE:
        return None
    index = KITCHEN_SEQUENCE.index(status)
    if index + 1 >= len(KITCHEN_SEQUENCE):
        return None
    return KITCHEN_SEQUENCE[index + 1]


def allowed_transitions(status: OrderStatus) -> frozenset[OrderStatus]:
    status = OrderStatus(status)
    allowed = set()
    step = next_status(status)
    if step is not None:
        allowed.add(step)
    if status == OrderStatus.PENDING:
        allowed.add(OrderStatus.CANCELLED)
    return frozenset(allowed)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in allowed_transitions(current)


def validate_transition(current: OrderStatus, target: OrderStatus) -> OrderStatus:
    """
    Check a requested status change.

    Returns:
        The target status, coerced to OrderStatus

    Raises:
        CancellationNotAllowedError: cancelling anything but a Pending order
        InvalidTransitionError: skipped, repeated, backwards or terminal moves
    """
    current = OrderStatus(current)
    target = OrderStatus(target)

    if target == OrderStatus.CANCELLED and current != OrderStatus.PENDING:
        raise CancellationNotAllowedError(current.value)

    if is_terminal(current):
        raise InvalidTransitionError(
            current.value, target.value, f"Order is already {current.value}"
        )

    if not can_transition(current, target):
        expected = next_status(current)
        raise InvalidTransitionError(
            current.value,
            target.value,
            f"Cannot move order from {current.value} to {target.value}; "
            f"next step is {expected.value}",
        )

    return target


def ensure_editable(status: OrderStatus) -> None:
    """Item-list edits are only permitted while Pending."""
    if OrderStatus(status) != OrderStatus.PENDING:
        raise OrderLockedError(OrderStatus(status).value)
