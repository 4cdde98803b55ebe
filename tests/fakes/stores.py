"""
Store and publisher doubles: recording publisher, failing publisher, and a store
wrapper that fails reads or writes for selected tokens.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, List, Optional, Tuple

from token_aggregator.core.errors import PublishError, StoreError
from token_aggregator.models import TokenSnapshot
from token_aggregator.store.base import TokenStore


class RecordingPublisher:
    def __init__(self) -> None:
        self.messages: List[Tuple[str, Dict[str, Any]]] = []

    async def publish(self, token_address: str, delta: Dict[str, Any]) -> None:
        self.messages.append((token_address, dict(delta)))

    def for_token(self, token_address: str) -> List[Dict[str, Any]]:
        return [d for addr, d in self.messages if addr == token_address]


class FailingPublisher(RecordingPublisher):
    """Raises PublishError for the listed tokens, records the rest."""

    def __init__(self, fail_for: Iterable[str]) -> None:
        super().__init__()
        self._fail_for = set(fail_for)

    async def publish(self, token_address: str, delta: Dict[str, Any]) -> None:
        if token_address in self._fail_for:
            raise PublishError(f"simulated publish failure for {token_address}")
        await super().publish(token_address, delta)


class FlakyStore(TokenStore):
    """
    Delegates to ``inner``; reads or writes of the listed tokens raise StoreError.
    ``read_delay_s`` and ``write_delay_s`` make every call suspend for that long.
    """

    def __init__(
        self,
        inner: TokenStore,
        *,
        fail_reads: Iterable[str] = (),
        fail_writes: Iterable[str] = (),
        read_delay_s: float = 0.0,
        write_delay_s: float = 0.0,
    ) -> None:
        self.inner = inner
        self.read_delay_s = read_delay_s
        self.write_delay_s = write_delay_s
        self.fail_reads = set(fail_reads)
        self.fail_writes = set(fail_writes)
        self.reads = 0
        self.writes = 0

    async def read(self, token_address: str) -> Optional[TokenSnapshot]:
        self.reads += 1
        if self.read_delay_s:
            await asyncio.sleep(self.read_delay_s)
        if token_address in self.fail_reads:
            raise StoreError(f"simulated read failure for {token_address}")
        return await self.inner.read(token_address)

    async def write(self, token_address: str, snapshot: TokenSnapshot) -> None:
        if token_address in self.fail_writes:
            raise StoreError(f"simulated write failure for {token_address}")
        if self.write_delay_s:
            await asyncio.sleep(self.write_delay_s)
        self.writes += 1
        await self.inner.write(token_address, snapshot)

    async def top_by_metric(self, metric: str, offset: int = 0, limit: int = 20) -> List[str]:
        return await self.inner.top_by_metric(metric, offset, limit)

    async def count(self) -> int:
        return await self.inner.count()

    async def ping(self) -> bool:
        return await self.inner.ping()
