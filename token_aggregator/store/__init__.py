"""
Store: SQLite/Redis token backends and the shared record layout.
No pipeline logic.
"""

from __future__ import annotations

from typing import Optional

from .base import SORTABLE_METRICS, TokenStore, check_metric, decode_fields, encode_fields


def create_store(backend: Optional[str] = None) -> TokenStore:
    """Build the configured backend (store.backend in config.yaml, TOKEN_AGG_STORE env)."""
    from .. import config

    name = backend or config.store_backend()
    if name == "redis":
        from .redis_backend import RedisTokenStore

        return RedisTokenStore.from_url(config.redis_url())
    from .sqlite_backend import SqliteTokenStore

    return SqliteTokenStore(config.db_path(), busy_timeout_ms=config.db_busy_timeout_ms())


__all__ = [
    "SORTABLE_METRICS",
    "TokenStore",
    "check_metric",
    "create_store",
    "decode_fields",
    "encode_fields",
]
