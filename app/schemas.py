"""
Pydantic Schemas for Request/Response Validation

Closed schemas for every record crossing the store, catalog and broadcast
boundaries. Wire names are camelCase (tableNumber, totalPrice, menuId, ...)
so the kitchen and table front ends agree on one shape; Python attributes
stay snake_case. Unknown fields are rejected rather than carried along.

Author: Khalil Bannouri
Version: 4.0.0
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.models import OrderStatus, PaymentMethod, SelectionMode

# Two-decimal tolerance between a submitted total and the recomputed one
TOTAL_TOLERANCE = 0.005


class CamelModel(BaseModel):
    """Base for wire schemas: camelCase aliases, closed field set."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


def order_total(items) -> float:
    """Sum of unit price x quantity over order items."""
    return round(sum(item.price * item.quantity for item in items), 2)


# =============================================================================
# MENU SCHEMAS
# =============================================================================

class Choice(CamelModel):
    """Selectable value inside an option group."""
    name: str = Field(..., min_length=1, max_length=60, examples=["Extra hot"])
    price: float = Field(default=0.0, ge=0, examples=[20])
    available: bool = True


class OptionGroup(CamelModel):
    """Customization axis for a menu item, e.g. Spice Level."""
    name: str = Field(..., min_length=1, max_length=60, examples=["Spice Level"])
    type: SelectionMode = Field(default=SelectionMode.SINGLE)
    choices: List[Choice] = Field(default_factory=list)

    def find_choice(self, name: str) -> Optional[Choice]:
        return next((c for c in self.choices if c.name == name), None)


class MenuItemCreate(CamelModel):
    """Request schema for creating or replacing a menu item."""
    name: str = Field(..., min_length=1, max_length=120, examples=["Paneer Tikka"])
    price: float = Field(..., ge=0, examples=[100])
    category: str = Field(..., min_length=1, max_length=60, examples=["Starters"])
    available: bool = True
    description: Optional[str] = Field(None, max_length=500)
    image: Optional[str] = Field(None, max_length=500)
    options: List[OptionGroup] = Field(default_factory=list)

    @field_validator("options")
    @classmethod
    def validate_unique_groups(cls, v: List[OptionGroup]) -> List[OptionGroup]:
        names = [group.name for group in v]
        if len(names) != len(set(names)):
            raise ValueError("Option group names must be unique per item")
        return v

    def find_group(self, name: str) -> Optional[OptionGroup]:
        return next((g for g in self.options if g.name == name), None)


class MenuItemResponse(MenuItemCreate):
    """Menu item as stored."""
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "MenuItemResponse":
        return cls(
            id=record.id,
            name=record.name,
            price=record.price,
            category=record.category,
            available=record.available,
            description=record.description,
            image=record.image,
            options=record.options or [],
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


# =============================================================================
# ORDER SCHEMAS
# =============================================================================

class SelectedOption(CamelModel):
    """Snapshot of one chosen value: group name, choice name, price delta."""
    name: str = Field(..., min_length=1, examples=["Spice Level"])
    choice: str = Field(..., min_length=1, examples=["Extra hot"])
    price: float = Field(default=0.0, ge=0, examples=[20])


class OrderItemSchema(CamelModel):
    """Single line in an order, snapshotted at submission."""
    menu_id: int = Field(..., examples=[1])
    name: str = Field(..., min_length=1, max_length=120, examples=["Paneer Tikka"])
    price: float = Field(..., ge=0, examples=[120])
    quantity: int = Field(..., ge=1, examples=[2])
    selected_options: List[SelectedOption] = Field(default_factory=list)

    @property
    def line_total(self) -> float:
        return round(self.price * self.quantity, 2)


def _coerce_table_number(v: Any) -> Any:
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    return v


class OrderEdit(CamelModel):
    """Replace-edit of a Pending order: the whole cart re-submitted."""
    items: List[OrderItemSchema] = Field(..., min_length=1)
    total_price: Optional[float] = Field(None, ge=0)
    payment_method: Optional[PaymentMethod] = None
    note: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def validate_total(self):
        if self.total_price is not None:
            if abs(self.total_price - order_total(self.items)) > TOTAL_TOLERANCE:
                raise ValueError(
                    f"totalPrice {self.total_price} does not match items total "
                    f"{order_total(self.items)}"
                )
        return self

    @property
    def computed_total(self) -> float:
        return order_total(self.items)


class OrderCreate(OrderEdit):
    """Request schema for submitting a cart as a new order."""
    table_number: str = Field(..., min_length=1, max_length=20, examples=["7"])
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)

    @field_validator("table_number", mode="before")
    @classmethod
    def validate_table_number(cls, v: Any) -> Any:
        return _coerce_table_number(v)


class OrderPatch(CamelModel):
    """
    Partial update for PATCH /api/orders/{id}.

    Either a status change or an item-list replacement, never both.
    """
    status: Optional[OrderStatus] = None
    items: Optional[List[OrderItemSchema]] = None
    total_price: Optional[float] = Field(None, ge=0)
    payment_method: Optional[PaymentMethod] = None
    note: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def validate_shape(self):
        if self.status is None and self.items is None:
            raise ValueError("Provide either status or items")
        if self.status is not None and self.items is not None:
            raise ValueError("Status and items cannot be changed in one request")
        return self

    def to_edit(self) -> OrderEdit:
        """Item-list edit carrying only the fields the caller sent."""
        sent = self.model_fields_set & set(OrderEdit.model_fields)
        return OrderEdit(**{name: getattr(self, name) for name in sent})


class StatusHistoryEntry(CamelModel):
    status: OrderStatus
    at: datetime


class OrderResponse(CamelModel):
    """Response schema for a single order."""
    id: int
    table_number: str
    items: List[OrderItemSchema]
    total_price: float
    status: OrderStatus
    payment_method: PaymentMethod
    payment_reference: Optional[str] = None
    note: Optional[str] = None
    status_history: List[StatusHistoryEntry] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record) -> "OrderResponse":
        return cls(
            id=record.id,
            table_number=record.table_number,
            items=record.items or [],
            total_price=record.total_price,
            status=record.status,
            payment_method=record.payment_method,
            payment_reference=record.payment_reference,
            note=record.note,
            status_history=record.status_history or [],
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready camelCase dict, as broadcast in new-order."""
        return self.model_dump(mode="json", by_alias=True)


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


# =============================================================================
# REALTIME SCHEMAS
# =============================================================================

class StatusUpdatePayload(CamelModel):
    """Payload of update-status and status-changed events."""
    order_id: int
    table_number: str
    status: OrderStatus

    @field_validator("table_number", mode="before")
    @classmethod
    def validate_table_number(cls, v: Any) -> Any:
        return _coerce_table_number(v)


class RealtimeFrame(BaseModel):
    """Envelope of every WebSocket message: {"event": ..., "data": ...}."""
    event: str = Field(..., min_length=1)
    data: Any = None


# =============================================================================
# REPORTING & OPERATIONS
# =============================================================================

class TopItem(BaseModel):
    name: str
    quantity: int


class ReportSummary(CamelModel):
    """Admin dashboard statistics."""
    total_revenue: float
    total_orders: int
    active_orders: int
    completed_orders: int
    cancelled_orders: int
    menu_items: int
    top_items: List[TopItem]


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    broadcast: str
    timestamp: datetime
