"""
Cart Manager

The diner's in-progress selection before submission, one cart per browsing
session. Lines are keyed by a local id independent of the menu item, so the
same dish with different customizations lives on separate lines.

Every mutation is computed on a copy of the lines, saved through the
injected CartStorage, and only then becomes the cart's state: a failed save
leaves the cart exactly as it was.

Usage:
    cart = CartManager(JsonFileCartStorage(), session_id="table-7")
    line = cart.add_item(paneer_tikka, quantity=2)
    cart.update_quantity(line.line_id, -1)
    cart.total_price

Author: Khalil Bannouri
Version: 4.0.0
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from filelock import FileLock

from app.core.config import get_settings

logger = logging.getLogger(__name__)


# =============================================================================
# CART DATA MODELS
# =============================================================================

@dataclass(frozen=True)
class CartOption:
    """Snapshot of one chosen value: group name, choice name, price delta."""
    name: str
    choice: str
    price: float = 0.0

    @classmethod
    def coerce(cls, value: Any) -> "CartOption":
        """Accept a CartOption, a SelectedOption schema or a plain dict."""
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            return cls(
                name=value["name"],
                choice=value["choice"],
                price=float(value.get("price", 0.0)),
            )
        return cls(name=value.name, choice=value.choice, price=float(value.price))

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "choice": self.choice, "price": self.price}


def normalize_options(options: Iterable[Any]) -> tuple:
    """Order-independent form of an option set: sorted by group, then choice."""
    return tuple(sorted(
        (CartOption.coerce(o) for o in options),
        key=lambda o: (o.name, o.choice),
    ))


@dataclass
class CartLine:
    """Cart line data model"""
    line_id: str
    menu_id: int
    name: str
    unit_price: float
    quantity: int
    selected_options: List[CartOption] = field(default_factory=list)

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    def matches(self, menu_id: int, options: tuple) -> bool:
        return self.menu_id == menu_id and normalize_options(self.selected_options) == options

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "lineId": self.line_id,
            "menuId": self.menu_id,
            "name": self.name,
            "unitPrice": self.unit_price,
            "quantity": self.quantity,
            "selectedOptions": [o.to_dict() for o in self.selected_options],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLine":
        return cls(
            line_id=data.get("lineId") or _new_line_id(),
            menu_id=int(data["menuId"]),
            name=data["name"],
            unit_price=float(data["unitPrice"]),
            quantity=max(1, int(data.get("quantity", 1))),
            selected_options=[CartOption.coerce(o) for o in data.get("selectedOptions", [])],
        )


def _new_line_id() -> str:
    return uuid.uuid4().hex[:12]


# =============================================================================
# STORAGE
# =============================================================================

class CartStorage(ABC):
    """Durable client-local storage for cart snapshots."""

    @abstractmethod
    def load(self, session_id: str) -> Optional[List[Dict[str, Any]]]:
        """Return the saved snapshot, or None when nothing was saved."""
        pass

    @abstractmethod
    def save(self, session_id: str, lines: List[Dict[str, Any]]) -> None:
        """Replace the saved snapshot."""
        pass


class MemoryCartStorage(CartStorage):
    """Keeps snapshots in a dict; shared by carts that get the same instance."""

    def __init__(self):
        self._snapshots: Dict[str, str] = {}

    def load(self, session_id: str) -> Optional[List[Dict[str, Any]]]:
        raw = self._snapshots.get(session_id)
        return None if raw is None else json.loads(raw)

    def save(self, session_id: str, lines: List[Dict[str, Any]]) -> None:
        self._snapshots[session_id] = json.dumps(lines)


class JsonFileCartStorage(CartStorage):
    """
    One JSON file per session under CART_DIRECTORY.

    Reads and writes are guarded by a file lock so two processes serving
    the same session never interleave a snapshot.
    """

    def __init__(self, directory: Optional[str] = None, lock_timeout: Optional[int] = None):
        settings = get_settings()
        self.directory = Path(directory or settings.cart_directory)
        self.lock_timeout = lock_timeout or settings.excel_lock_timeout

    def _path(self, session_id: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in session_id)
        return self.directory / f"cart-{safe}.json"

    def _lock(self, path: Path) -> FileLock:
        return FileLock(str(path) + ".lock", timeout=self.lock_timeout)

    def load(self, session_id: str) -> Optional[List[Dict[str, Any]]]:
        path = self._path(session_id)
        if not path.exists():
            return None
        with self._lock(path):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except ValueError:
                logger.warning(f"Discarding unreadable cart snapshot {path}")
                return None
        return data if isinstance(data, list) else None

    def save(self, session_id: str, lines: List[Dict[str, Any]]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(session_id)
        with self._lock(path):
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(lines), encoding="utf-8")
            tmp.replace(path)


# =============================================================================
# CART MANAGER
# =============================================================================

class CartManager:
    """
    Explicit cart store for one browsing session.

    Args:
        storage: Where snapshots are saved and restored from
        session_id: Browsing session the cart belongs to
    """

    def __init__(self, storage: Optional[CartStorage] = None, session_id: str = "default"):
        self.storage = storage or MemoryCartStorage()
        self.session_id = session_id
        self._lines: List[CartLine] = self._restore()

    def _restore(self) -> List[CartLine]:
        snapshot = self.storage.load(self.session_id)
        if not snapshot:
            return []
        lines = []
        for data in snapshot:
            try:
                lines.append(CartLine.from_dict(data))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed cart line in {self.session_id}: {e}")
        logger.debug(f"Cart {self.session_id} restored with {len(lines)} lines")
        return lines

    def _commit(self, lines: List[CartLine]) -> None:
        self.storage.save(self.session_id, [line.to_dict() for line in lines])
        self._lines = lines

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def lines(self) -> List[CartLine]:
        """Copies of the current lines; editing them does not touch the cart."""
        return [replace(line, selected_options=list(line.selected_options)) for line in self._lines]

    @property
    def line_count(self) -> int:
        return len(self._lines)

    @property
    def total_price(self) -> float:
        return round(sum(line.unit_price * line.quantity for line in self._lines), 2)

    def is_empty(self) -> bool:
        return not self._lines

    def find_line(self, line_id: str) -> Optional[CartLine]:
        return next((line for line in self.lines if line.line_id == line_id), None)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_item(self, menu_item, quantity: int = 1, selected_options: Iterable[Any] = ()) -> CartLine:
        """
        Add a menu item, merging into a line with the same option set.

        Unit price is the item's base price plus every selected delta.
        Quantities below 1 count as 1.
        """
        quantity = max(1, int(quantity))
        options = normalize_options(selected_options)
        unit_price = float(menu_item.price) + sum(o.price for o in options)

        lines = self.lines
        for line in lines:
            if line.matches(menu_item.id, options):
                line.quantity += quantity
                self._commit(lines)
                return replace(line)

        line = CartLine(
            line_id=_new_line_id(),
            menu_id=menu_item.id,
            name=menu_item.name,
            unit_price=unit_price,
            quantity=quantity,
            selected_options=list(options),
        )
        self._commit(lines + [line])
        logger.debug(f"Cart {self.session_id}: added {menu_item.name} x{quantity}")
        return replace(line)

    def update_quantity(self, line_id: str, delta: int) -> Optional[CartLine]:
        """Change a line's quantity; reaching 0 removes it. Returns the line or None."""
        lines = self.lines
        for line in lines:
            if line.line_id == line_id:
                line.quantity = max(0, line.quantity + delta)
                break
        else:
            return None
        self._commit([kept for kept in lines if kept.quantity > 0])
        return replace(line) if line.quantity > 0 else None

    def update_options(self, line_id: str, selected_options: Iterable[Any], unit_price: float) -> Optional[CartLine]:
        """Replace a line's options and unit price in place, without merging."""
        lines = self.lines
        for line in lines:
            if line.line_id == line_id:
                line.selected_options = list(normalize_options(selected_options))
                line.unit_price = float(unit_price)
                self._commit(lines)
                return replace(line)
        return None

    def remove_line(self, line_id: str) -> None:
        self._commit([line for line in self.lines if line.line_id != line_id])

    def load_cart(self, lines: Iterable[Any]) -> None:
        """Replace the whole cart, e.g. when resuming edit of a Pending order."""
        loaded = [
            line if isinstance(line, CartLine) else CartLine.from_dict(line)
            for line in lines
        ]
        self._commit([replace(line) for line in loaded])

    def load_order(self, order) -> None:
        """Load a submitted order's items back into the cart for editing."""
        self.load_cart(
            CartLine(
                line_id=_new_line_id(),
                menu_id=item.menu_id,
                name=item.name,
                unit_price=item.price,
                quantity=item.quantity,
                selected_options=list(normalize_options(item.selected_options)),
            )
            for item in order.items
        )
        logger.debug(f"Cart {self.session_id} loaded from Order #{order.id}")

    def clear(self) -> None:
        self._commit([])

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def to_order_items(self) -> List[Dict[str, Any]]:
        """Order item payloads in camelCase, one per line."""
        return [
            {
                "menuId": line.menu_id,
                "name": line.name,
                "price": line.unit_price,
                "quantity": line.quantity,
                "selectedOptions": [o.to_dict() for o in line.selected_options],
            }
            for line in self._lines
        ]
