"""
Field-level delta between two snapshots.

Comparison is by field type, not by serialized form: numbers compare by value
(1 == 1.0), sources_used compares as a set, extras compare key by key and only
the changed keys are reported. Fields missing from the new snapshot are never
reported (there is no field deletion).
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from ..models import NUMERIC_FIELDS, TIMESTAMP_FIELDS, TokenSnapshot

Delta = Dict[str, Any]


def _same(name: str, old: Any, new: Any) -> bool:
    if old is None:
        return False
    if name in NUMERIC_FIELDS or name in TIMESTAMP_FIELDS:
        try:
            return float(old) == float(new)
        except (TypeError, ValueError):
            return old == new
    if name == "sources_used":
        return set(old) == set(new)
    return old == new


def _diff_extras(old: Mapping[str, Any], new: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in new.items() if k not in old or old[k] != v}


def diff_snapshots(old: Optional[TokenSnapshot], new: TokenSnapshot) -> Delta:
    """Return {field: new_value} for every field of ``new`` that differs from ``old``."""
    current = new.to_dict()
    if old is None:
        return current
    previous = old.to_dict()
    delta: Delta = {}
    for name, value in current.items():
        if name == "extras":
            changed = _diff_extras(previous.get("extras", {}), value)
            if changed:
                delta["extras"] = changed
            continue
        if not _same(name, previous.get(name), value):
            delta[name] = value
    return delta
