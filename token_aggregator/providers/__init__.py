"""
Source providers: upstream APIs polled for token observations.

Each provider normalizes its payload into SourceObservations; retries and
circuit breaking come from resilience.
"""

from __future__ import annotations

from .base import ProviderHealth, ProviderStatus, TokenSourceProvider
from .dexscreener import DexscreenerProvider
from .jupiter import JupiterProvider
from .resilience import CircuitBreaker, RetryConfig, resilient_call

__all__ = [
    "CircuitBreaker",
    "DexscreenerProvider",
    "JupiterProvider",
    "ProviderHealth",
    "ProviderStatus",
    "RetryConfig",
    "TokenSourceProvider",
    "resilient_call",
]
