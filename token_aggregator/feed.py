"""
Change feed: publishes ``{"address": token_address, "diff": delta}`` per changed token.

Fire-and-forget, at most once per call, no acknowledgement. Fan-out to live
clients is the transport's job; LocalChangeFeed only hands each message to the
in-process subscriber queues.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Protocol, runtime_checkable

from redis.exceptions import RedisError

from .core.errors import PublishError

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "state_changes"


def change_message(token_address: str, delta: Dict[str, Any]) -> Dict[str, Any]:
    return {"address": token_address, "diff": delta}


@runtime_checkable
class ChangePublisher(Protocol):
    async def publish(self, token_address: str, delta: Dict[str, Any]) -> None: ...


class RedisChangePublisher:
    """PUBLISH the change message as JSON on a Redis channel."""

    def __init__(self, client: Any, channel: str = DEFAULT_CHANNEL) -> None:
        self._client = client
        self._channel = channel

    @property
    def channel(self) -> str:
        return self._channel

    async def publish(self, token_address: str, delta: Dict[str, Any]) -> None:
        payload = json.dumps(change_message(token_address, delta), separators=(",", ":"), ensure_ascii=False)
        try:
            await self._client.publish(self._channel, payload)
        except RedisError as exc:
            raise PublishError(f"publish {token_address} on {self._channel}: {exc}") from exc


class LocalChangeFeed:
    """In-process feed: each subscriber gets its own unbounded asyncio.Queue."""

    def __init__(self) -> None:
        self._queues: List[asyncio.Queue] = []
        self.published = 0

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue()
        self._queues.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        if q in self._queues:
            self._queues.remove(q)

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    async def publish(self, token_address: str, delta: Dict[str, Any]) -> None:
        message = change_message(token_address, delta)
        for q in list(self._queues):
            q.put_nowait(message)
        self.published += 1
