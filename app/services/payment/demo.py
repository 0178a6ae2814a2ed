"""
Demo Payment Service Implementation

Builds a UPI deep link for the order total instead of charging a card.
The table view turns this link into a QR code for the diner to scan.

Behavior:
    - No network calls, no gateway
    - Optional simulated failure rate for exercising error paths
    - Link format: upi://pay?pa=<payee>&pn=<name>&am=<amount>&cu=<cur>&tn=Table<id>

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
import random
from typing import Optional
from urllib.parse import urlencode

from app.core.config import get_settings
from app.services.payment.base import BasePaymentService, PaymentResult

logger = logging.getLogger(__name__)


class DemoPaymentService(BasePaymentService):
    """
    Demo implementation of the payment service.

    Attributes:
        failure_rate: Probability of a simulated decline (0.0-1.0)
        payee_address: UPI handle receiving the payment
        payee_name: Display name shown in the payer's app
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        payee_address: Optional[str] = None,
        payee_name: Optional[str] = None,
    ):
        settings = get_settings()
        self.failure_rate = failure_rate
        self.payee_address = payee_address or settings.upi_payee_address
        self.payee_name = payee_name or settings.restaurant_name
        self.currency = settings.currency

        logger.info(
            f"DemoPaymentService initialized "
            f"(payee={self.payee_address}, failure_rate={failure_rate:.0%})"
        )

    @property
    def provider_name(self) -> str:
        return "demo"

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    def build_payment_link(self, amount: float, table_number: str, currency: str) -> str:
        query = urlencode({
            "pa": self.payee_address,
            "pn": self.payee_name,
            "am": f"{amount:.2f}",
            "cu": currency,
            "tn": f"Table{table_number}",
        })
        return f"upi://pay?{query}"

    async def request_payment(
        self,
        amount: float,
        table_number: str,
        currency: Optional[str] = None,
    ) -> PaymentResult:
        currency = currency or self.currency

        if amount <= 0:
            return PaymentResult(
                success=False,
                amount=amount,
                currency=currency,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
            )

        if self._should_fail():
            logger.debug(f"Demo: Payment declined for table {table_number}")
            return PaymentResult(
                success=False,
                amount=amount,
                currency=currency,
                error_message="Payment could not be started. Please try again.",
                error_code="processing_error",
            )

        link = self.build_payment_link(amount, table_number, currency)
        logger.info(f"Demo: Payment link for table {table_number} - {amount:.2f} {currency}")

        return PaymentResult(
            success=True,
            reference=link,
            amount=amount,
            currency=currency,
        )

    async def health_check(self) -> bool:
        return True
