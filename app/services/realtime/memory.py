"""
In-Memory Broadcast Channel

Single-process fan-out for development and tests. Rooms live in this
process only, so it is correct for exactly one API worker.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from typing import Any

from app.services.realtime.base import BaseBroadcastChannel, BroadcastEvent

logger = logging.getLogger(__name__)


class InMemoryBroadcastChannel(BaseBroadcastChannel):
    """Broadcast channel that dispatches directly to local subscribers."""

    def __init__(self, queue_size: int = 100):
        super().__init__(queue_size=queue_size)
        logger.info(f"InMemoryBroadcastChannel initialized (queue_size={queue_size})")

    @property
    def provider_name(self) -> str:
        return "memory"

    async def publish(self, room: str, event: str, payload: Any) -> None:
        self._dispatch_local(BroadcastEvent(room=room, name=event, payload=payload))
