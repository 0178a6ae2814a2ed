"""
Order lifecycle: state machine rules, persistence and the coordinating service.
"""

from app.services.orders.state_machine import (
    KITCHEN_SEQUENCE,
    TERMINAL_STATUSES,
    ACTIVE_STATUSES,
    is_terminal,
    next_status,
    allowed_transitions,
    can_transition,
    validate_transition,
    ensure_editable,
)
from app.services.orders.store import OrderStore
from app.services.orders.service import OrderService

__all__ = [
    "KITCHEN_SEQUENCE",
    "TERMINAL_STATUSES",
    "ACTIVE_STATUSES",
    "is_terminal",
    "next_status",
    "allowed_transitions",
    "can_transition",
    "validate_transition",
    "ensure_editable",
    "OrderStore",
    "OrderService",
]
