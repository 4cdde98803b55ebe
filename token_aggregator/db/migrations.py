"""
Idempotent database migrations.

Schema objects are created with IF NOT EXISTS, so this can run on every start.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)


def run_migrations(conn: sqlite3.Connection) -> None:
    """
    Apply all schema migrations idempotently.

    Safe to call on every startup: only creates what is missing.
    """
    # One row per (token, field); value_json holds the JSON-encoded value.
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS token_fields (
            token_address TEXT NOT NULL,
            field TEXT NOT NULL,
            value_json TEXT NOT NULL,
            PRIMARY KEY (token_address, field)
        );
        """
    )

    # Sorted index per metric (the sorted-set equivalent).
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS token_index (
            metric TEXT NOT NULL,
            token_address TEXT NOT NULL,
            score REAL NOT NULL,
            updated_at INTEGER,
            PRIMARY KEY (metric, token_address)
        );
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_token_index_metric_score ON token_index(metric, score DESC);"
    )

    conn.commit()
    logger.debug("Token store schema ready")
