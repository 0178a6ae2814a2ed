"""
Client side of the ordering flow: the diner's cart, the HTTP client and
the live kitchen/table views.
"""

from app.client.api import OrderingClient, error_from_response
from app.client.cart import (
    CartLine,
    CartManager,
    CartOption,
    CartStorage,
    JsonFileCartStorage,
    MemoryCartStorage,
)
from app.client.views import KitchenBoard, TableTracker

__all__ = [
    "OrderingClient",
    "error_from_response",
    "CartLine",
    "CartManager",
    "CartOption",
    "CartStorage",
    "JsonFileCartStorage",
    "MemoryCartStorage",
    "KitchenBoard",
    "TableTracker",
]
