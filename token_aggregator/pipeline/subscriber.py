"""
Redis intake: subscribe to the raw token channel and hand each message to the Aggregator.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .aggregator import Aggregator

logger = logging.getLogger(__name__)

DEFAULT_INTAKE_CHANNEL = "raw_tokens"


class RedisIntakeSubscriber:
    """Consume intake messages from a Redis pub/sub channel (redis.asyncio client)."""

    def __init__(self, client: Any, aggregator: Aggregator, channel: str = DEFAULT_INTAKE_CHANNEL) -> None:
        self._client = client
        self._aggregator = aggregator
        self._channel = channel
        self._task: Optional[asyncio.Task] = None
        self.received = 0
        self.failed = 0

    @property
    def channel(self) -> str:
        return self._channel

    async def run(self) -> None:
        pubsub = self._client.pubsub()
        await pubsub.subscribe(self._channel)
        logger.info("Listening for intake messages on %s", self._channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                self.received += 1
                try:
                    self._aggregator.handle_message(message["data"])
                except Exception:
                    self.failed += 1
                    logger.exception("Intake message on %s could not be handled", self._channel)
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
