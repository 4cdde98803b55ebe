"""
Cross-source merge: same-cycle observations of one token -> one CandidateRecord.

Each field has an explicit, ordered list of sources it may come from. The first
listed source that supplies a defined value wins; a source that is not listed
for a field never contributes to it. Metadata uses first non-empty in the same
ordering. Every source present in the input lands in ``sources_used``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..core.errors import ConfigError
from ..models import (
    METADATA_FIELDS,
    NUMERIC_FIELDS,
    CandidateRecord,
    SourceObservation,
    is_blank,
    union_sources,
)

logger = logging.getLogger(__name__)

JUPITER = "jupiter"
DEXSCREENER = "dexscreener"

# Default per-field priority. config.yaml (sources.priority) can override any entry.
DEFAULT_FIELD_PRIORITY: Dict[str, Tuple[str, ...]] = {
    "price": (JUPITER, DEXSCREENER),
    "volume": (DEXSCREENER,),
    "liquidity": (DEXSCREENER,),
    "market_cap": (DEXSCREENER,),
    "transaction_count": (DEXSCREENER,),
    "price_change_1h": (JUPITER,),
    "price_change_24h": (JUPITER,),
    "price_change_7d": (JUPITER,),
    "token_name": (DEXSCREENER, JUPITER),
    "token_ticker": (DEXSCREENER, JUPITER),
    "protocol": (DEXSCREENER, JUPITER),
}


@dataclass(frozen=True)
class SourcePriority:
    """Immutable per-field source ordering."""

    by_field: Mapping[str, Tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_FIELD_PRIORITY)
    )

    def sources_for(self, name: str) -> Tuple[str, ...]:
        return tuple(self.by_field.get(name, ()))

    def rank(self) -> List[str]:
        """All sources named anywhere in the table, highest first (first appearance order)."""
        return list(union_sources(*self.by_field.values()))

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Sequence[str]]] = None) -> SourcePriority:
        table: Dict[str, Tuple[str, ...]] = dict(DEFAULT_FIELD_PRIORITY)
        for name, sources in (overrides or {}).items():
            if name not in NUMERIC_FIELDS and name not in METADATA_FIELDS:
                raise ConfigError(f"sources.priority: unknown field '{name}'")
            if isinstance(sources, str) or not all(isinstance(s, str) for s in sources):
                raise ConfigError(f"sources.priority.{name} must be a list of source names")
            table[name] = tuple(sources)
        return cls(by_field=table)


class SourceMerger:
    """Merge one cycle's observations of a single token using a SourcePriority table."""

    def __init__(self, priority: Optional[SourcePriority] = None) -> None:
        self._priority = priority or SourcePriority()

    @property
    def priority(self) -> SourcePriority:
        return self._priority

    def merge(self, observations: Iterable[SourceObservation]) -> CandidateRecord:
        obs = list(observations)
        if not obs:
            raise ValueError("SourceMerger.merge needs at least one observation")
        address = obs[0].token_address
        if any(o.token_address != address for o in obs):
            raise ValueError(f"Observations for different tokens passed to one merge ({address})")

        # Later observations from the same source replace earlier ones.
        by_source: Dict[str, SourceObservation] = {}
        for o in obs:
            by_source[o.source] = o

        values: Dict[str, Any] = {}
        for name in NUMERIC_FIELDS:
            for source in self._priority.sources_for(name):
                o = by_source.get(source)
                if o is not None and getattr(o, name) is not None:
                    values[name] = getattr(o, name)
                    break
        for name in METADATA_FIELDS:
            for source in self._priority.sources_for(name):
                o = by_source.get(source)
                if o is not None and not is_blank(getattr(o, name)):
                    values[name] = getattr(o, name)
                    break

        ranked = [s for s in self._priority.rank() if s in by_source]
        sources_used = union_sources(ranked, by_source)

        extras: Dict[str, Any] = {}
        for source in reversed(sources_used):
            extras.update(by_source[source].extras)

        stamps = [o.fetched_at for o in obs if o.fetched_at is not None]
        return CandidateRecord(
            token_address=address,
            sources_used=sources_used,
            fetched_at=max(stamps) if stamps else None,
            extras=extras,
            **values,
        )

    def merge_batch(self, batch: Mapping[str, SourceObservation]) -> CandidateRecord:
        """Merge a ``{source: observation}`` batch as accumulated by an observation window."""
        return self.merge(batch.values())
