"""
Store interface: one record per token plus one descending index per sortable metric.

Records are stored field by field, each value JSON-encoded on its own, so the
layout is the same for every backend (SQLite rows, Redis hash fields).
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Tuple, Union

from ..core.errors import UnknownSortMetricError
from ..models import TokenSnapshot

logger = logging.getLogger(__name__)

SORTABLE_METRICS: Tuple[str, ...] = ("volume", "liquidity", "market_cap", "price_change_24h")
# Metric whose index size is reported as the tracked-token count.
COUNT_METRIC = "volume"


def check_metric(metric: str) -> str:
    if metric not in SORTABLE_METRICS:
        raise UnknownSortMetricError(metric, SORTABLE_METRICS)
    return metric


def encode_fields(snapshot: TokenSnapshot) -> Dict[str, str]:
    """Snapshot -> {field: json_text} for defined fields."""
    return {k: json.dumps(v, separators=(",", ":"), ensure_ascii=False) for k, v in snapshot.to_dict().items()}


def decode_fields(raw: Mapping[Union[str, bytes], Union[str, bytes]]) -> Optional[TokenSnapshot]:
    """{field: json_text} -> snapshot; values that are not JSON are kept as plain strings."""
    if not raw:
        return None
    parsed: Dict[str, object] = {}
    for k, v in raw.items():
        key = k.decode("utf-8") if isinstance(k, bytes) else k
        text = v.decode("utf-8") if isinstance(v, bytes) else v
        try:
            parsed[key] = json.loads(text)
        except (TypeError, ValueError):
            parsed[key] = text
    return TokenSnapshot.from_dict(parsed)


def index_scores(snapshot: TokenSnapshot) -> Dict[str, Optional[float]]:
    """Score per sortable metric; None means the token leaves that index."""
    return {m: (float(getattr(snapshot, m)) if getattr(snapshot, m) is not None else None) for m in SORTABLE_METRICS}


class TokenStore(ABC):
    """
    Async key-value store for canonical snapshots.
    write() always replaces the whole record and refreshes every metric index.
    """

    @abstractmethod
    async def read(self, token_address: str) -> Optional[TokenSnapshot]:
        ...

    @abstractmethod
    async def write(self, token_address: str, snapshot: TokenSnapshot) -> None:
        ...

    @abstractmethod
    async def top_by_metric(self, metric: str, offset: int = 0, limit: int = 20) -> List[str]:
        """Token addresses ordered by metric descending, [offset, offset + limit)."""
        ...

    @abstractmethod
    async def count(self) -> int:
        ...

    @abstractmethod
    async def ping(self) -> bool:
        ...

    async def read_many(self, token_addresses: List[str]) -> List[TokenSnapshot]:
        out: List[TokenSnapshot] = []
        for addr in token_addresses:
            snap = await self.read(addr)
            if snap is not None:
                out.append(snap)
        return out

    async def close(self) -> None:
        return None
