"""
Token record types shared by every pipeline stage.

Three frozen dataclasses over one closed field set:
- SourceObservation: one source's partial view of a token in one fetch cycle.
- CandidateRecord: the cross-source merge for one token in one cycle.
- TokenSnapshot: the persisted canonical state for one token.

Values outside the closed set travel in ``extras``. A field that is ``None``
is absent: it never overwrites, never diffs, never persists.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Type, TypeVar

METADATA_FIELDS: Tuple[str, ...] = ("token_name", "token_ticker", "protocol")
NUMERIC_FIELDS: Tuple[str, ...] = (
    "price",
    "market_cap",
    "volume",
    "liquidity",
    "transaction_count",
    "price_change_1h",
    "price_change_24h",
    "price_change_7d",
)
BOOKKEEPING_FIELDS: Tuple[str, ...] = (
    "token_address",
    "sources_used",
    "last_source",
    "fetched_at",
    "updated_at",
)
TIMESTAMP_FIELDS: Tuple[str, ...] = ("fetched_at", "updated_at")

R = TypeVar("R", bound="_TokenFields")


def to_number(x: Any) -> Optional[float]:
    """Coerce to int/float; None for missing, non-numeric, bool, NaN or inf."""
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, int):
        return x
    try:
        value = float(x)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def to_timestamp_ms(x: Any) -> Optional[int]:
    value = to_number(x)
    return int(value) if value is not None else None


def is_blank(value: Any) -> bool:
    """Metadata emptiness: None or whitespace-only string."""
    return value is None or (isinstance(value, str) and value.strip() == "")


def union_sources(*groups: Iterable[str]) -> Tuple[str, ...]:
    """Order-preserving union of source names."""
    seen: Dict[str, None] = {}
    for group in groups:
        for name in group or ():
            seen.setdefault(str(name), None)
    return tuple(seen)


@dataclass(frozen=True)
class _TokenFields:
    token_address: str
    token_name: Optional[str] = None
    token_ticker: Optional[str] = None
    protocol: Optional[str] = None
    price: Optional[float] = None
    market_cap: Optional[float] = None
    volume: Optional[float] = None
    liquidity: Optional[float] = None
    transaction_count: Optional[float] = None
    price_change_1h: Optional[float] = None
    price_change_24h: Optional[float] = None
    price_change_7d: Optional[float] = None
    fetched_at: Optional[int] = None
    extras: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Defined fields only. Tuples become lists; empty extras are left out."""
        out: Dict[str, Any] = {}
        for f in fields(self):
            if f.name == "extras":
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            out[f.name] = list(value) if isinstance(value, tuple) else value
        if self.extras:
            out["extras"] = dict(self.extras)
        return out

    @classmethod
    def from_dict(cls: Type[R], data: Mapping[str, Any]) -> R:
        """
        Build from a loosely-typed mapping (JSON payload or stored record).
        Unknown keys go to extras; numeric strings are coerced; junk numerics are dropped.
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Expected a mapping, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        raw_extras = data.get("extras") or {}
        if not isinstance(raw_extras, Mapping):
            raise ValueError(f"extras must be an object, got {type(raw_extras).__name__}")
        extras: Dict[str, Any] = dict(raw_extras)
        for key, value in data.items():
            if key == "extras" or value is None:
                continue
            if key in NUMERIC_FIELDS:
                value = to_number(value)
                if value is None:
                    continue
            elif key in TIMESTAMP_FIELDS:
                value = to_timestamp_ms(value)
                if value is None:
                    continue
            elif key == "sources_used":
                if isinstance(value, str):
                    value = (value,)
                elif not isinstance(value, (list, tuple)):
                    raise ValueError(f"sources_used must be a list, got {type(value).__name__}")
                value = union_sources(value)
            elif key in METADATA_FIELDS or key in ("token_address", "last_source", "source"):
                value = str(value)
            if key in known:
                kwargs[key] = value
            else:
                extras[key] = value
        address = kwargs.get("token_address")
        if is_blank(address):
            raise ValueError("token_address is required")
        kwargs["token_address"] = address.strip()
        return cls(extras=extras, **kwargs)


@dataclass(frozen=True)
class SourceObservation(_TokenFields):
    """One source's partial observation of a token (RawSourceSnapshot). Never persisted."""

    source: str = ""


@dataclass(frozen=True)
class CandidateRecord(_TokenFields):
    """Per-cycle merged observation for one token, before persistence."""

    sources_used: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TokenSnapshot(CandidateRecord):
    """Persisted canonical state for one token."""

    last_source: Optional[str] = None
    updated_at: Optional[int] = None
