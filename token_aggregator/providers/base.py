"""
Source provider interface and health state.

A provider polls one upstream API and returns normalized SourceObservations
(one per token it saw). Payload quirks stay inside the provider module.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Protocol, runtime_checkable

from ..models import SourceObservation


class ProviderStatus(enum.Enum):
    """Health status of a data provider."""

    OK = "OK"
    DEGRADED = "DEGRADED"
    DOWN = "DOWN"


@dataclass
class ProviderHealth:
    """Mutable health state for a single provider instance."""

    provider_name: str
    status: ProviderStatus = ProviderStatus.OK
    last_ok_at: Optional[str] = None
    fail_count: int = 0
    last_error: Optional[str] = None
    last_count: int = 0

    def record_success(self, count: int = 0) -> None:
        self.status = ProviderStatus.OK
        self.fail_count = 0
        self.last_ok_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
        self.last_error = None
        self.last_count = count

    def record_failure(self, error: str) -> None:
        self.fail_count += 1
        self.last_error = error[:500]
        if self.fail_count >= 5:
            self.status = ProviderStatus.DOWN
        elif self.fail_count >= 2:
            self.status = ProviderStatus.DEGRADED

    def as_dict(self) -> dict:
        return {
            "provider_name": self.provider_name,
            "status": self.status.value,
            "last_ok_at": self.last_ok_at,
            "fail_count": self.fail_count,
            "last_error": self.last_error,
            "last_count": self.last_count,
        }


@runtime_checkable
class TokenSourceProvider(Protocol):
    """Protocol for token metric sources (DexScreener, Jupiter, ...)."""

    @property
    def provider_name(self) -> str: ...

    def fetch(self) -> List[SourceObservation]:
        """Poll the source once. Blocking; runs in a worker thread."""
        ...
