"""
Payment Service Factory

Provides a single entry point for obtaining a payment service instance.
The rest of the application stays agnostic about which implementation
is being used.

Usage:
    from app.services.payment import get_payment_service

    payment_service = get_payment_service()
    result = await payment_service.request_payment(270, table_number="7")

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from functools import lru_cache

from app.services.payment.base import BasePaymentService, PaymentResult
from app.services.payment.demo import DemoPaymentService

logger = logging.getLogger(__name__)


@lru_cache()
def get_payment_service() -> BasePaymentService:
    """
    Get the configured payment service instance.

    Only the demo service exists; Online orders receive a UPI link and
    settlement happens outside this system.
    """
    logger.info("Payment Service: Using DemoPaymentService")
    return DemoPaymentService()


def reset_payment_service() -> None:
    """Clear the cached payment service instance."""
    get_payment_service.cache_clear()
    logger.debug("Payment service cache cleared")


__all__ = [
    "get_payment_service",
    "reset_payment_service",
    "BasePaymentService",
    "PaymentResult",
    "DemoPaymentService",
]
