"""
Redis token store: hash ``token:{address}`` per token, sorted set ``index:{metric}`` per metric.

A write is one MULTI/EXEC pipeline (DEL + HSET + ZADD/ZREM), so readers never
see a half-replaced record.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..core.errors import StoreError
from ..models import TokenSnapshot
from .base import COUNT_METRIC, TokenStore, check_metric, decode_fields, encode_fields, index_scores

logger = logging.getLogger(__name__)

TOKEN_KEY_PREFIX = "token:"
INDEX_KEY_PREFIX = "index:"


def token_key(token_address: str) -> str:
    return f"{TOKEN_KEY_PREFIX}{token_address}"


def index_key(metric: str) -> str:
    return f"{INDEX_KEY_PREFIX}{metric}"


class RedisTokenStore(TokenStore):
    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisTokenStore:
        return cls(aioredis.from_url(url, decode_responses=True))

    @property
    def client(self) -> Any:
        return self._client

    async def read(self, token_address: str) -> Optional[TokenSnapshot]:
        try:
            raw = await self._client.hgetall(token_key(token_address))
        except RedisError as exc:
            raise StoreError(f"read {token_address}: {exc}") from exc
        return decode_fields(raw)

    async def write(self, token_address: str, snapshot: TokenSnapshot) -> None:
        key = token_key(token_address)
        encoded = encode_fields(snapshot)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(key, mapping=encoded)
                for metric, score in index_scores(snapshot).items():
                    if score is None:
                        pipe.zrem(index_key(metric), token_address)
                    else:
                        pipe.zadd(index_key(metric), {token_address: score})
                await pipe.execute()
        except RedisError as exc:
            raise StoreError(f"write {token_address}: {exc}") from exc

    async def top_by_metric(self, metric: str, offset: int = 0, limit: int = 20) -> List[str]:
        check_metric(metric)
        if limit <= 0:
            return []
        start = max(0, int(offset))
        try:
            members = await self._client.zrevrange(index_key(metric), start, start + int(limit) - 1)
        except RedisError as exc:
            raise StoreError(f"range {metric}: {exc}") from exc
        return [m.decode("utf-8") if isinstance(m, bytes) else m for m in members]

    async def count(self) -> int:
        try:
            return int(await self._client.zcard(index_key(COUNT_METRIC)))
        except RedisError as exc:
            raise StoreError(f"count: {exc}") from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self._client.aclose()
