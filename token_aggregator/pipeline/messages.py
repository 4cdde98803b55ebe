"""
Intake message parsing.

Two accepted shapes (JSON text, bytes, or an already-decoded dict):

Per-source, merged here by SourceMerger:
    {"token_address": "...", "sources": {"dexscreener": {...}, "jupiter": {...}}}
    {"tokens": [{"token_address": "...", "sources": {...}}, ...]}

Pre-merged (one candidate per token, source tag at message level):
    {"source": "dexscreener", "fetched_at": 1767225600000, "tokens": [{...}, ...]}
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from ..core.errors import MalformedMessageError
from ..models import CandidateRecord, SourceObservation, is_blank, to_timestamp_ms
from .source_merge import SourceMerger

logger = logging.getLogger(__name__)

Payload = Union[str, bytes, bytearray, Mapping[str, Any]]


def _decode(payload: Payload) -> Mapping[str, Any]:
    if isinstance(payload, Mapping):
        return payload
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessageError(f"payload is not UTF-8: {exc}") from exc
    if not isinstance(payload, str):
        raise MalformedMessageError(f"unsupported payload type {type(payload).__name__}")
    try:
        data = json.loads(payload)
    except ValueError as exc:
        raise MalformedMessageError(f"payload is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedMessageError(f"payload must be a JSON object, got {type(data).__name__}")
    return data


def _from_sources(entry: Mapping[str, Any], fallback_ts: Optional[int], merger: SourceMerger) -> CandidateRecord:
    address = entry.get("token_address")
    sources = entry.get("sources")
    if is_blank(address):
        raise ValueError("missing token_address")
    if not isinstance(sources, Mapping) or not sources:
        raise ValueError("sources must be a non-empty object")
    observations: List[SourceObservation] = []
    for source, fields in sources.items():
        if not isinstance(fields, Mapping):
            raise ValueError(f"source '{source}' observation must be an object")
        data: Dict[str, Any] = dict(fields)
        data["token_address"] = address
        data["source"] = source
        data.setdefault("fetched_at", fallback_ts)
        observations.append(SourceObservation.from_dict(data))
    return merger.merge(observations)


def _from_premerged(entry: Mapping[str, Any], source: Optional[str], fallback_ts: Optional[int]) -> CandidateRecord:
    data: Dict[str, Any] = dict(entry)
    token_source = data.pop("source", None) or source
    # Bookkeeping set by an upstream stage is not intake data.
    data.pop("last_source", None)
    data.pop("updated_at", None)
    data.pop("_updated_at", None)
    data.pop("ingested_at", None)
    if not data.get("sources_used") and token_source:
        data["sources_used"] = [token_source]
    if data.get("fetched_at") is None:
        data["fetched_at"] = fallback_ts
    return CandidateRecord.from_dict(data)


def parse_intake_message(payload: Payload, merger: Optional[SourceMerger] = None) -> List[CandidateRecord]:
    """
    Decode one intake message into candidate records.

    Raises MalformedMessageError when the payload cannot be decoded or carries
    no token list. Individual tokens without an address (or with a broken
    sources block) are skipped with a warning.
    """
    data = _decode(payload)
    merger = merger or SourceMerger()
    source = data.get("source")
    source = str(source) if not is_blank(source) else None
    message_ts = to_timestamp_ms(data.get("fetched_at") or data.get("ingested_at"))

    if "tokens" in data:
        entries = data["tokens"]
        if not isinstance(entries, list):
            raise MalformedMessageError("'tokens' must be a list")
    elif "token_address" in data:
        entries = [data]
    else:
        raise MalformedMessageError(f"message has neither 'tokens' nor 'token_address' (keys: {sorted(data)})")

    candidates: List[CandidateRecord] = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            logger.warning("intake token #%d is not an object; skipped", i)
            continue
        try:
            if "sources" in entry:
                candidates.append(_from_sources(entry, message_ts, merger))
            else:
                candidates.append(_from_premerged(entry, source, message_ts))
        except (TypeError, ValueError) as exc:
            logger.warning("intake token #%d skipped: %s", i, exc)
    return candidates
