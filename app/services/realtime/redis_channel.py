"""
Redis Broadcast Channel

Shares rooms across API workers through Redis pub/sub. Every publish goes
to one Redis channel per room; each worker pattern-subscribes to all room
channels and hands received events to its own local subscribers.

Redis pub/sub keeps nothing for absent listeners, which matches the
best-effort, no-replay delivery contract.

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.core.config import get_settings
from app.services.realtime.base import BaseBroadcastChannel, BroadcastEvent

logger = logging.getLogger(__name__)


class RedisBroadcastChannel(BaseBroadcastChannel):
    """
    Broadcast channel backed by Redis pub/sub.

    The listener task survives connection drops: it logs the error, waits
    `reconnect_delay` seconds and pattern-subscribes again. Events published
    while it is down are lost, as with any absent pub/sub listener.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        channel_prefix: Optional[str] = None,
        queue_size: int = 100,
        reconnect_delay: Optional[float] = None,
    ):
        super().__init__(queue_size=queue_size)
        settings = get_settings()
        self.redis_url = redis_url or settings.redis_url
        self.channel_prefix = channel_prefix or settings.broadcast_channel_prefix
        self.reconnect_delay = (
            settings.broadcast_reconnect_delay if reconnect_delay is None else reconnect_delay
        )
        self._redis: Optional[aioredis.Redis] = None
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None
        logger.info(f"RedisBroadcastChannel initialized (prefix={self.channel_prefix})")

    @property
    def provider_name(self) -> str:
        return "redis"

    def _channel_for(self, room: str) -> str:
        return f"{self.channel_prefix}{room}"

    async def start(self) -> None:
        self._redis = aioredis.from_url(self.redis_url, decode_responses=True)
        await self._subscribe()
        self._listener = asyncio.create_task(self._listen())
        self._listener.add_done_callback(self._listener_stopped)
        logger.info("Redis broadcast listener started")

    async def stop(self) -> None:
        await super().stop()
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        await self._close_pubsub()
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        logger.info("Redis broadcast listener stopped")

    async def health_check(self) -> bool:
        if self._redis is None:
            return False
        if self._listener is None or self._listener.done():
            logger.error("Redis broadcast listener is not running")
            return False
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.error(f"Redis broadcast health check failed: {e}")
            return False

    async def publish(self, room: str, event: str, payload: Any) -> None:
        if self._redis is None:
            raise RuntimeError("RedisBroadcastChannel.start() was not called")
        message = json.dumps({"event": event, "data": payload})
        try:
            await self._redis.publish(self._channel_for(room), message)
        except RedisError as e:
            # Subscribers converge on their next fetch
            logger.error(f"Failed to publish {event} to {room}: {e}")

    # ------------------------------------------------------------------
    # Listener
    # ------------------------------------------------------------------

    async def _subscribe(self) -> None:
        self._pubsub = self._redis.pubsub()
        await self._pubsub.psubscribe(f"{self.channel_prefix}*")

    async def _close_pubsub(self) -> None:
        if self._pubsub is None:
            return
        pubsub, self._pubsub = self._pubsub, None
        try:
            await pubsub.aclose()
        except RedisError as e:
            logger.debug(f"Error closing broadcast pub/sub: {e}")

    def _listener_stopped(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Redis broadcast listener crashed: {error!r}")

    async def _listen(self) -> None:
        while True:
            try:
                if self._pubsub is None:
                    await self._subscribe()
                    logger.info("Redis broadcast listener re-subscribed")
                async for message in self._pubsub.listen():
                    self._handle_message(message)
                logger.warning("Redis broadcast subscription ended")
            except RedisError as e:
                logger.error(f"Redis broadcast listener lost its connection: {e}")
            await self._close_pubsub()
            await asyncio.sleep(self.reconnect_delay)

    def _handle_message(self, message: dict) -> None:
        if message.get("type") != "pmessage":
            return
        channel = message["channel"]
        room = channel[len(self.channel_prefix):]
        try:
            body = json.loads(message["data"])
        except (TypeError, ValueError):
            body = None
        if not isinstance(body, dict):
            logger.warning(f"Ignoring malformed broadcast on {channel}")
            return
        self._dispatch_local(
            BroadcastEvent(room=room, name=body.get("event", ""), payload=body.get("data"))
        )
