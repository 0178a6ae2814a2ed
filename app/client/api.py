"""
Ordering API Client

Async httpx client used by table and kitchen front ends (and the simulation
script) to talk to the FastAPI service. Server error bodies are mapped back
to the domain exceptions; network failures become TransientError so the
acting view can offer a retry.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from typing import Any, Optional, Union

import httpx

from app.client.cart import CartManager
from app.core.config import get_settings
from app.core.exceptions import (
    InvalidOrderError,
    NotFoundError,
    OrderingError,
    PolicyError,
    TransientError,
)
from app.models import OrderStatus, PaymentMethod
from app.schemas import MenuItemResponse, OrderResponse

logger = logging.getLogger(__name__)

_ERRORS_BY_STATUS = {
    400: InvalidOrderError,
    404: NotFoundError,
    409: PolicyError,
    422: InvalidOrderError,
    503: TransientError,
}


def error_from_response(response: httpx.Response) -> OrderingError:
    """Rebuild the domain error described by an error response."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, list):
        # FastAPI request validation errors
        detail = "; ".join(str(err.get("msg", err)) for err in detail)
    error_cls = _ERRORS_BY_STATUS.get(response.status_code)
    if error_cls is None:
        error_cls = TransientError if response.status_code >= 500 else OrderingError
    return error_cls(detail or f"HTTP {response.status_code}")


class OrderingClient:
    """
    Client for the ordering API.

    Args:
        base_url: API root, defaults to localhost on API_PORT
        transport: Optional httpx transport (tests pass a MockTransport)
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        settings = get_settings()
        self.base_url = base_url or f"http://localhost:{settings.api_port}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> "OrderingClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise TransientError(f"Could not reach the ordering service: {e}") from e

        if response.status_code >= 400:
            error = error_from_response(response)
            logger.info(f"{method} {path} rejected ({response.status_code}): {error.detail}")
            raise error
        return response.json()

    # =========================================================================
    # MENU
    # =========================================================================

    async def list_menu(self, category: Optional[str] = None) -> list[MenuItemResponse]:
        params = {"category": category} if category else None
        data = await self._request("GET", "/api/menu", params=params)
        return [MenuItemResponse.model_validate(item) for item in data]

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def get_order(self, order_id: int) -> OrderResponse:
        return OrderResponse.model_validate(await self._request("GET", f"/api/orders/{order_id}"))

    async def list_orders(self, status: Optional[OrderStatus] = None) -> list[OrderResponse]:
        params = {"status": OrderStatus(status).value} if status else None
        data = await self._request("GET", "/api/orders", params=params)
        return [OrderResponse.model_validate(order) for order in data["orders"]]

    async def list_table_orders(self, table_number: Union[str, int]) -> list[OrderResponse]:
        data = await self._request("GET", f"/api/tables/{table_number}/orders")
        return [OrderResponse.model_validate(order) for order in data]

    async def submit_cart(
        self,
        cart: CartManager,
        table_number: Union[str, int],
        payment_method: Union[PaymentMethod, str] = PaymentMethod.CASH,
        note: Optional[str] = None,
    ) -> OrderResponse:
        """
        Submit the cart as a new order.

        The cart is cleared only after the server accepted the order; any
        failure leaves it untouched for a retry.
        """
        if cart.is_empty():
            raise InvalidOrderError("Cart is empty")

        payload = {
            "tableNumber": str(table_number),
            "items": cart.to_order_items(),
            "totalPrice": cart.total_price,
            "paymentMethod": PaymentMethod(payment_method).value,
        }
        if note:
            payload["note"] = note

        order = OrderResponse.model_validate(
            await self._request("POST", "/api/orders", json=payload)
        )
        cart.clear()
        logger.info(f"Order #{order.id} placed for table {order.table_number}")
        return order

    async def update_order(
        self,
        order_id: int,
        cart: CartManager,
        payment_method: Optional[Union[PaymentMethod, str]] = None,
        note: Optional[str] = None,
    ) -> OrderResponse:
        """Re-submit the cart as the new item list of a Pending order."""
        if cart.is_empty():
            raise InvalidOrderError("Cart is empty")

        payload: dict[str, Any] = {
            "items": cart.to_order_items(),
            "totalPrice": cart.total_price,
        }
        if payment_method is not None:
            payload["paymentMethod"] = PaymentMethod(payment_method).value
        if note is not None:
            payload["note"] = note

        order = OrderResponse.model_validate(
            await self._request("PATCH", f"/api/orders/{order_id}", json=payload)
        )
        cart.clear()
        return order

    async def set_status(self, order_id: int, status: Union[OrderStatus, str]) -> OrderResponse:
        data = await self._request(
            "PATCH", f"/api/orders/{order_id}", json={"status": OrderStatus(status).value}
        )
        return OrderResponse.model_validate(data)

    async def advance_order(self, order_id: int) -> OrderResponse:
        return OrderResponse.model_validate(
            await self._request("POST", f"/api/orders/{order_id}/advance")
        )

    async def cancel_order(self, order_id: int) -> OrderResponse:
        return OrderResponse.model_validate(
            await self._request("POST", f"/api/orders/{order_id}/cancel")
        )

    async def remove_item(self, order_id: int, index: int) -> OrderResponse:
        return OrderResponse.model_validate(
            await self._request("DELETE", f"/api/orders/{order_id}/items/{index}")
        )
