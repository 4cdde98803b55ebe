"""
Fake token source providers for tests: deterministic data, fail-N-then-succeed, slow.

No live network; used by test_producer.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

from token_aggregator.models import SourceObservation

# Deterministic timestamp for reproducible tests.
FAKE_FETCHED_AT = 1767225600000


# ---------------------------------------------------------------------------
# Always succeed with deterministic data
# ---------------------------------------------------------------------------


class FakeTokenProvider:
    """Returns one observation per configured token. No network."""

    def __init__(self, name: str, tokens: Optional[Dict[str, Dict[str, float]]] = None):
        self._name = name
        self._tokens = tokens or {"TokA": {"price": 1.0, "volume": 1000.0}}
        self.call_count = 0

    @property
    def provider_name(self) -> str:
        return self._name

    def fetch(self) -> List[SourceObservation]:
        self.call_count += 1
        return [
            SourceObservation(token_address=addr, source=self._name, fetched_at=FAKE_FETCHED_AT, **values)
            for addr, values in self._tokens.items()
        ]


# ---------------------------------------------------------------------------
# Fail N times then succeed
# ---------------------------------------------------------------------------


class FakeTokenProviderFailNThenSucceed(FakeTokenProvider):
    def __init__(self, name: str, fail_times: int, tokens: Optional[Dict[str, Dict[str, float]]] = None):
        super().__init__(name, tokens)
        self._fail_times = fail_times

    def fetch(self) -> List[SourceObservation]:
        if self.call_count < self._fail_times:
            self.call_count += 1
            raise RuntimeError(f"{self._name} simulated failure #{self.call_count}")
        return super().fetch()


# ---------------------------------------------------------------------------
# Blocks until released (in-flight guard tests)
# ---------------------------------------------------------------------------


class BlockingTokenProvider(FakeTokenProvider):
    """fetch() waits on ``release`` (a threading.Event) before returning."""

    def __init__(self, name: str, tokens: Optional[Dict[str, Dict[str, float]]] = None):
        super().__init__(name, tokens)
        self.release = threading.Event()
        self.started = threading.Event()

    def fetch(self) -> List[SourceObservation]:
        self.started.set()
        self.release.wait(timeout=5)
        return super().fetch()
