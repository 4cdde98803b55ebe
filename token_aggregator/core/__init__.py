"""
Stable facade: shared exception types. No pipeline, store, or cli imports.
Do not add exports without updating __all__.
"""

from __future__ import annotations

from .errors import (
    ConfigError,
    MalformedMessageError,
    PublishError,
    StoreError,
    TokenAggregatorError,
    UnknownSortMetricError,
)

# Do not add exports without updating __all__.
__all__ = [
    "ConfigError",
    "MalformedMessageError",
    "PublishError",
    "StoreError",
    "TokenAggregatorError",
    "UnknownSortMetricError",
]
