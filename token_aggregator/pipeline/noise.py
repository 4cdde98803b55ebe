"""
Materiality filter: drops bookkeeping fields and numeric jitter from a delta.

An empty result means the token is skipped for this window: no write, no publish.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..models import BOOKKEEPING_FIELDS, TokenSnapshot, to_number
from .diff import Delta


@dataclass(frozen=True)
class NoiseThresholds:
    """Absolute thresholds; a change exactly at a threshold is kept."""

    volume_epsilon: float = 1e-6
    volume_min_change: float = 20.0
    liquidity_min_change: float = 1.0

    @classmethod
    def from_config(cls, values: Mapping[str, float]) -> NoiseThresholds:
        known = {k: float(v) for k, v in values.items() if k in cls.__dataclass_fields__}
        return cls(**known)


class NoiseFilter:
    def __init__(self, thresholds: Optional[NoiseThresholds] = None) -> None:
        self.thresholds = thresholds or NoiseThresholds()

    def _below(self, value: Any, previous: Any, min_change: float) -> bool:
        new = to_number(value)
        old = to_number(previous)
        if new is None or old is None:
            return False
        return abs(new - old) < min_change

    def apply(self, delta: Delta, previous: Optional[TokenSnapshot] = None) -> Delta:
        """Return the user-visible part of ``delta``; ``previous`` enables change-size checks."""
        th = self.thresholds
        meaningful: Delta = {}
        for key, value in delta.items():
            if key in BOOKKEEPING_FIELDS or value is None:
                continue
            if key == "volume":
                prev_volume = previous.volume if previous is not None else None
                if prev_volume is not None:
                    if self._below(value, prev_volume, th.volume_min_change):
                        continue
                else:
                    num = to_number(value)
                    if num is not None and abs(num) < th.volume_epsilon:
                        continue
            elif key == "liquidity" and previous is not None:
                if self._below(value, previous.liquidity, th.liquidity_min_change):
                    continue
            meaningful[key] = value
        return meaningful
