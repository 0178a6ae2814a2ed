"""
Broadcast Channel Abstract Base Class

Defines the room/event contract shared by the kitchen dashboard and the
table views, and the subscription handle every view holds while open.

Rooms:
    kitchen          every kitchen dashboard
    table-<tableId>  every customer view for one table

Events:
    new-order       full Order payload, delivered to kitchen
    update-status   client-originated {orderId, tableNumber, status}
    status-changed  republished update-status, delivered to kitchen and
                    the order's table room
    order-updated   full Order payload after its items were edited,
                    delivered to kitchen and the order's table room

Delivery is best effort and at most once per connected subscriber. Nothing
is persisted or replayed: a reconnecting view re-fetches from the order store.

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from app.schemas import OrderResponse, StatusUpdatePayload

logger = logging.getLogger(__name__)

KITCHEN_ROOM = "kitchen"
TABLE_ROOM_PREFIX = "table-"

NEW_ORDER = "new-order"
UPDATE_STATUS = "update-status"
STATUS_CHANGED = "status-changed"
ORDER_UPDATED = "order-updated"


def table_room(table_id) -> str:
    """Room name for all customer views of one table."""
    return f"{TABLE_ROOM_PREFIX}{table_id}"


def is_valid_room(room: str) -> bool:
    if room == KITCHEN_ROOM:
        return True
    return room.startswith(TABLE_ROOM_PREFIX) and len(room) > len(TABLE_ROOM_PREFIX)


@dataclass(frozen=True)
class BroadcastEvent:
    """One event as delivered to a subscriber."""
    room: str
    name: str
    payload: Any

    def to_frame(self) -> dict[str, Any]:
        """WebSocket wire shape."""
        return {"event": self.name, "data": self.payload}


class SubscriptionClosed(Exception):
    """Raised by Subscription.get() once the handle is closed and drained."""


_CLOSED = object()


class Subscription:
    """
    Handle returned by joining a room.

    Buffers events for one view in a bounded queue. Closing it detaches it
    from every room it joined, so a torn-down view leaks no listeners.

    Example:
        >>> async with channel.join("kitchen") as subscription:
        ...     async for event in subscription:
        ...         board.apply(event.to_frame())
    """

    def __init__(self, channel: "BaseBroadcastChannel", maxsize: int):
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.rooms: set[str] = set()
        self.closed = False
        self.dropped = 0

    def join(self, room: str) -> "Subscription":
        self._channel._attach(self, room)
        return self

    def leave(self, room: str) -> None:
        self._channel._detach(self, room)

    def deliver(self, event: BroadcastEvent) -> bool:
        """Queue an event without blocking; a full buffer drops it."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Subscriber buffer full, dropped {event.name} for room {event.room}"
            )
            return False
        return True

    async def get(self) -> BroadcastEvent:
        if self.closed and self._queue.empty():
            raise SubscriptionClosed()
        item = await self._queue.get()
        if item is _CLOSED:
            raise SubscriptionClosed()
        return item

    def get_nowait(self) -> Optional[BroadcastEvent]:
        """Next buffered event, or None when nothing is waiting."""
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return None if item is _CLOSED else item

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._channel._detach_all(self)
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            pass

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> BroadcastEvent:
        try:
            return await self.get()
        except SubscriptionClosed:
            raise StopAsyncIteration


class BaseBroadcastChannel(ABC):
    """Abstract base class for room-based broadcast channels."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._rooms: dict[str, set[Subscription]] = {}

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def publish(self, room: str, event: str, payload: Any) -> None:
        """Fan an event out to every subscriber of a room."""
        pass

    async def start(self) -> None:
        """Open backend connections (called from the app lifespan)."""

    async def stop(self) -> None:
        """Close backend connections and every open subscription."""
        for subscription in list(self._subscriptions()):
            subscription.close()

    async def health_check(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, *rooms: str) -> Subscription:
        """Open a subscription handle, optionally joined to some rooms."""
        subscription = Subscription(self, maxsize=self.queue_size)
        for room in rooms:
            subscription.join(room)
        return subscription

    def join(self, room: str) -> Subscription:
        """Join a single room and return its handle."""
        return self.subscribe(room)

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    def _subscriptions(self) -> set[Subscription]:
        found = set()
        for members in self._rooms.values():
            found.update(members)
        return found

    def _attach(self, subscription: Subscription, room: str) -> None:
        if not is_valid_room(room):
            raise ValueError(f"Unknown room: {room!r}")
        if subscription.closed:
            raise ValueError("Subscription is closed")
        self._rooms.setdefault(room, set()).add(subscription)
        subscription.rooms.add(room)
        logger.debug(f"Subscriber joined {room} ({self.room_size(room)} in room)")

    def _detach(self, subscription: Subscription, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(subscription)
            if not members:
                del self._rooms[room]
        subscription.rooms.discard(room)

    def _detach_all(self, subscription: Subscription) -> None:
        for room in list(subscription.rooms):
            self._detach(subscription, room)

    def _dispatch_local(self, event: BroadcastEvent) -> int:
        """Deliver to subscribers in this process; returns how many got it."""
        delivered = 0
        for subscription in list(self._rooms.get(event.room, ())):
            if subscription.deliver(event):
                delivered += 1
        logger.debug(f"{event.name} → {event.room}: delivered to {delivered}")
        return delivered

    # ------------------------------------------------------------------
    # Event helpers
    # ------------------------------------------------------------------

    async def publish_new_order(self, order: OrderResponse) -> None:
        """Announce a freshly created order to the kitchen."""
        await self.publish(KITCHEN_ROOM, NEW_ORDER, order.to_payload())

    async def publish_status_changed(self, update: StatusUpdatePayload) -> None:
        """Send status-changed to the kitchen and to the order's table."""
        payload = update.model_dump(mode="json", by_alias=True)
        await self.publish(KITCHEN_ROOM, STATUS_CHANGED, payload)
        await self.publish(table_room(update.table_number), STATUS_CHANGED, payload)

    async def publish_order_updated(self, order: OrderResponse) -> None:
        """Send the edited order in full to the kitchen and its table."""
        payload = order.to_payload()
        await self.publish(KITCHEN_ROOM, ORDER_UPDATED, payload)
        await self.publish(table_room(order.table_number), ORDER_UPDATED, payload)

    async def relay(self, event: str, data: Any) -> None:
        """
        Republish a client-originated event.

        new-order goes to the kitchen unchanged; update-status is validated
        and becomes status-changed for the kitchen and the table.

        Raises:
            ValueError: unknown event or malformed payload
        """
        if event == NEW_ORDER:
            if not isinstance(data, dict):
                raise ValueError("new-order payload must be an order object")
            await self.publish(KITCHEN_ROOM, NEW_ORDER, data)
        elif event == UPDATE_STATUS:
            await self.publish_status_changed(StatusUpdatePayload.model_validate(data))
        else:
            raise ValueError(f"Unsupported event: {event!r}")
