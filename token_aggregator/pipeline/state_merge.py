"""
Fill-rule merges.

merge_candidates: buffered candidate + new arrival (intake window coalescing).
merge_snapshot:   persisted snapshot + drained candidate -> new canonical snapshot.

Both share the same rules: a defined numeric value always overwrites (freshness,
not magnitude, decides), metadata is fill-once, sources only grow.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from ..models import (
    METADATA_FIELDS,
    NUMERIC_FIELDS,
    CandidateRecord,
    TokenSnapshot,
    is_blank,
    union_sources,
)
from ..timeutils import now_ms

# last_source marker written by this stage.
AGGREGATOR_SOURCE = "aggregator"


def _fill(base: CandidateRecord, incoming: CandidateRecord) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name in METADATA_FIELDS:
        current = getattr(base, name)
        new = getattr(incoming, name)
        out[name] = new if is_blank(current) and not is_blank(new) else current
    for name in NUMERIC_FIELDS:
        new = getattr(incoming, name)
        out[name] = new if new is not None else getattr(base, name)
    out["sources_used"] = union_sources(base.sources_used, incoming.sources_used)
    extras = dict(base.extras)
    extras.update({k: v for k, v in incoming.extras.items() if v is not None})
    out["extras"] = extras
    return out


def merge_candidates(buffered: Optional[CandidateRecord], incoming: CandidateRecord) -> CandidateRecord:
    """Coalesce a new arrival into the buffered record for the same token (arrival order)."""
    if buffered is None:
        return incoming
    values = _fill(buffered, incoming)
    fetched_at = buffered.fetched_at
    if incoming.fetched_at is not None and (fetched_at is None or incoming.fetched_at > fetched_at):
        fetched_at = incoming.fetched_at
    return CandidateRecord(token_address=incoming.token_address, fetched_at=fetched_at, **values)


def merge_snapshot(
    existing: Optional[TokenSnapshot],
    candidate: CandidateRecord,
    *,
    source: str = AGGREGATOR_SOURCE,
    now: Optional[int] = None,
) -> TokenSnapshot:
    """
    Apply a drained candidate to the persisted snapshot (or to nothing).

    fetched_at comes from the candidate (now if absent); updated_at is the
    processing time and never moves backwards.
    """
    ts = now if now is not None else now_ms()
    base = existing if existing is not None else TokenSnapshot(token_address=candidate.token_address)
    values = _fill(base, candidate)
    updated_at = ts
    if base.updated_at is not None and base.updated_at > updated_at:
        updated_at = base.updated_at
    return TokenSnapshot(
        token_address=candidate.token_address,
        last_source=source,
        fetched_at=candidate.fetched_at if candidate.fetched_at is not None else ts,
        updated_at=updated_at,
        **values,
    )
