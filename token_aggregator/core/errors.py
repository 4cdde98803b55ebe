"""
Shared exception types for token_aggregator.
Stable surface; extend only.
"""

from __future__ import annotations


class TokenAggregatorError(Exception):
    """Base exception for token_aggregator; catch this for any package-raised error."""

    pass


class MalformedMessageError(TokenAggregatorError):
    """Intake payload could not be parsed or has no usable tokens. Dropped, never fatal."""

    pass


class StoreError(TokenAggregatorError):
    """A store backend call failed (read, write, index maintenance)."""

    pass


class PublishError(TokenAggregatorError):
    """The change feed rejected a publish. Not retried."""

    pass


class UnknownSortMetricError(TokenAggregatorError, ValueError):
    """Requested sort metric is not one of the indexed metrics."""

    def __init__(self, metric: str, allowed: tuple[str, ...]) -> None:
        super().__init__(f"Unknown sort metric '{metric}'. Allowed: {', '.join(allowed)}")
        self.metric = metric
        self.allowed = allowed


class ConfigError(TokenAggregatorError):
    """Configuration value is missing or invalid."""

    pass


__all__ = [
    "ConfigError",
    "MalformedMessageError",
    "PublishError",
    "StoreError",
    "TokenAggregatorError",
    "UnknownSortMetricError",
]
