"""
Domain Exceptions

Every failure the ordering flow can surface to an acting user. Each class
carries the HTTP status the API maps it to, so route handlers raise the
domain error and the exception handler in app.main renders ErrorResponse.

Hierarchy:
    OrderingError
    ├── PolicyError (409)            rejected action, no state change
    │   ├── InvalidTransitionError
    │   ├── CancellationNotAllowedError
    │   └── OrderLockedError
    ├── InvalidOrderError (400)      malformed or inconsistent record
    ├── NotFoundError (404)
    │   ├── OrderNotFoundError
    │   └── MenuItemNotFoundError
    └── TransientError (503)         network failure, safe to retry
"""

from typing import Optional


class OrderingError(Exception):
    """Base class for ordering failures."""

    status_code: int = 500
    error: str = "Ordering error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.error
        super().__init__(self.detail)


class PolicyError(OrderingError):
    status_code = 409
    error = "Action not allowed"


class InvalidTransitionError(PolicyError):
    error = "Invalid status transition"

    def __init__(self, current: str, target: str, detail: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(detail or f"Cannot move order from {current} to {target}")


class CancellationNotAllowedError(InvalidTransitionError):
    error = "Cannot cancel order"

    def __init__(self, current: str):
        super().__init__(current, "Cancelled", "Cannot cancel once cooking has started")


class OrderLockedError(PolicyError):
    error = "Order is locked"

    def __init__(self, current: str):
        self.current = current
        super().__init__(f"Order items can only be changed while Pending (status: {current})")


class InvalidOrderError(OrderingError):
    status_code = 400
    error = "Invalid order"


class NotFoundError(OrderingError):
    status_code = 404
    error = "Not found"


class OrderNotFoundError(NotFoundError):
    error = "Order not found"

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order #{order_id} not found")


class MenuItemNotFoundError(NotFoundError):
    error = "Menu item not found"

    def __init__(self, item_id):
        self.item_id = item_id
        super().__init__(f"Menu item #{item_id} not found")


class TransientError(OrderingError):
    status_code = 503
    error = "Service temporarily unavailable"
