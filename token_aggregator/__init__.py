"""
Token market-metrics aggregation: per-source observations are merged, debounced,
reconciled with stored state, diffed, filtered for noise, persisted, and
published as per-token changes.

Canonical entrypoint: import token_aggregator; use token_aggregator.pipeline,
token_aggregator.store, etc. Does not import cli or api.
"""

from __future__ import annotations

from . import core, feed, models, pipeline, providers, store
from ._version import __version__

# Do not add exports without updating __all__.
__all__ = [
    "__version__",
    "core",
    "feed",
    "models",
    "pipeline",
    "providers",
    "store",
]
