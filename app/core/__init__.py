"""
Core module initialization.
Exports configuration, logging utilities and domain errors.
"""

from app.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from app.core.exceptions import (
    OrderingError,
    PolicyError,
    InvalidTransitionError,
    CancellationNotAllowedError,
    OrderLockedError,
    InvalidOrderError,
    NotFoundError,
    OrderNotFoundError,
    MenuItemNotFoundError,
    TransientError,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "OrderingError",
    "PolicyError",
    "InvalidTransitionError",
    "CancellationNotAllowedError",
    "OrderLockedError",
    "InvalidOrderError",
    "NotFoundError",
    "OrderNotFoundError",
    "MenuItemNotFoundError",
    "TransientError",
]
