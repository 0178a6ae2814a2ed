"""
SQLAlchemy Database Models

Two collections back the ordering flow:
- menu_items: read-mostly catalog managed by admins
- orders: one document per submitted cart, never deleted

Item lists, option groups and status history are stored as JSON columns so
every order change is a single-row update.

Author: Khalil Bannouri
Version: 4.0.0
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, Enum, Boolean, JSON

from app.database import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "Pending"
    COOKING = "Cooking"
    PLATING = "Plating"
    SERVING = "Serving"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class PaymentMethod(str, enum.Enum):
    """How the table intends to pay."""
    CASH = "Cash"
    ONLINE = "Online"


class SelectionMode(str, enum.Enum):
    """Option group selection mode."""
    SINGLE = "single"
    MULTIPLE = "multiple"


class MenuItem(Base):
    """
    Menu catalog entry.

    `options` holds the customization groups as a JSON list of
    {name, type, choices: [{name, price, available}]}.
    """
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    price = Column(Float, nullable=False)
    category = Column(String(60), nullable=False, index=True)
    available = Column(Boolean, default=True, nullable=False)
    description = Column(Text, nullable=True)
    image = Column(String(500), nullable=True)
    options = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.name} - {self.price}>"


class Order(Base):
    """
    Main Order table - one row per submitted cart.

    Items are snapshotted at creation (name, unit price, selected options) and
    are not refreshed when the catalog changes.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # =========================================================================
    # ATTRIBUTION
    # =========================================================================
    table_number = Column(String(20), nullable=False, index=True)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JSON, nullable=False, default=list)
    total_price = Column(Float, nullable=False)
    note = Column(Text, nullable=True)

    # =========================================================================
    # PAYMENT INFO
    # =========================================================================
    payment_method = Column(
        Enum(PaymentMethod),
        default=PaymentMethod.CASH,
        nullable=False,
    )
    payment_reference = Column(String(500), nullable=True)

    # =========================================================================
    # ORDER STATUS
    # =========================================================================
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )
    status_history = Column(JSON, nullable=False, default=list)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<Order #{self.id} - table {self.table_number} - {self.status.value}>"
