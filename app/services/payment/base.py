"""
Payment Service Abstract Base Class

Defines the interface contract for payment collection on Online orders.
Only a demo implementation ships: it produces the UPI link the table view
renders as a QR code and never contacts a gateway.

Design Pattern: Strategy Pattern
    - A real gateway can be added without touching the order flow

Author: Khalil Bannouri
Version: 4.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class PaymentResult:
    """
    Standardized result from payment processing.

    Attributes:
        success: Whether the payment request was accepted
        reference: Identifier stored on the order (demo: the UPI link)
        amount: Amount requested
        currency: Currency code (e.g., "INR")
        error_message: Error description if payment failed
        error_code: Machine-readable error code
    """
    success: bool
    reference: Optional[str] = None
    amount: Optional[float] = None
    currency: str = "INR"
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "reference": self.reference,
            "amount": self.amount,
            "currency": self.currency,
            "error_message": self.error_message,
            "error_code": self.error_code,
        }


class BasePaymentService(ABC):
    """
    Abstract base class for payment services.

    Example:
        >>> service = get_payment_service()
        >>> result = await service.request_payment(amount=270, table_number="7")
        >>> if result.success:
        ...     print(result.reference)
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the payment provider."""
        pass

    @abstractmethod
    async def request_payment(
        self,
        amount: float,
        table_number: str,
        currency: Optional[str] = None,
    ) -> PaymentResult:
        """
        Request payment for an order total.

        Args:
            amount: Order total
            table_number: Table the order belongs to
            currency: Currency code (defaults to configured currency)

        Returns:
            PaymentResult: Standardized result object
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify the payment service is operational."""
        pass
