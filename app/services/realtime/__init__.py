"""
Broadcast Channel Factory

Returns the in-memory or Redis broadcast channel based on ENV_MODE.

Usage:
    from app.services.realtime import get_broadcast_channel, KITCHEN_ROOM

    channel = get_broadcast_channel()
    subscription = channel.join(KITCHEN_ROOM)

Environment Switching:
    - ENV_MODE=development → InMemoryBroadcastChannel (one worker)
    - ENV_MODE=staging/production → RedisBroadcastChannel (many workers)

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from functools import lru_cache

from app.core.config import get_settings
from app.services.realtime.base import (
    BaseBroadcastChannel,
    BroadcastEvent,
    Subscription,
    SubscriptionClosed,
    KITCHEN_ROOM,
    NEW_ORDER,
    UPDATE_STATUS,
    STATUS_CHANGED,
    ORDER_UPDATED,
    table_room,
    is_valid_room,
)
from app.services.realtime.memory import InMemoryBroadcastChannel
from app.services.realtime.redis_channel import RedisBroadcastChannel

logger = logging.getLogger(__name__)


@lru_cache()
def get_broadcast_channel() -> BaseBroadcastChannel:
    """Get the configured broadcast channel."""
    settings = get_settings()

    if settings.use_redis_broadcast:
        logger.info(f"Broadcast Channel: Using RedisBroadcastChannel ({settings.env_mode.value} mode)")
        return RedisBroadcastChannel(queue_size=settings.broadcast_queue_size)
    logger.info("Broadcast Channel: Using InMemoryBroadcastChannel (development mode)")
    return InMemoryBroadcastChannel(queue_size=settings.broadcast_queue_size)


def reset_broadcast_channel() -> None:
    """Clear the cached channel instance."""
    get_broadcast_channel.cache_clear()


__all__ = [
    "get_broadcast_channel",
    "reset_broadcast_channel",
    "BaseBroadcastChannel",
    "BroadcastEvent",
    "Subscription",
    "SubscriptionClosed",
    "InMemoryBroadcastChannel",
    "RedisBroadcastChannel",
    "KITCHEN_ROOM",
    "NEW_ORDER",
    "UPDATE_STATUS",
    "STATUS_CHANGED",
    "ORDER_UPDATED",
    "table_room",
    "is_valid_room",
]
