"""
SQLite token store. Default backend.

token_fields holds the per-field JSON values; token_index holds one score per
(metric, token). A write replaces the token's rows and index entries in a
single transaction.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import List, Optional, Union

from ..core.errors import StoreError
from ..db.migrations import run_migrations
from ..models import TokenSnapshot
from ..timeutils import now_ms
from .base import COUNT_METRIC, TokenStore, check_metric, decode_fields, encode_fields, index_scores

logger = logging.getLogger(__name__)


def _apply_pragmas(conn: sqlite3.Connection, busy_timeout_ms: int) -> None:
    """Set SQLite pragmas for the store connection: foreign_keys, WAL, busy_timeout."""
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")


class SqliteTokenStore(TokenStore):
    """TokenStore on a single SQLite connection. Use ':memory:' for throwaway stores."""

    def __init__(self, db_path: Union[str, Path], *, busy_timeout_ms: int = 5000) -> None:
        path = str(db_path) if str(db_path) == ":memory:" else str(Path(db_path).resolve())
        self._path = path
        # Only the event loop thread touches the connection; the API may build the store on another thread.
        self._conn: Optional[sqlite3.Connection] = sqlite3.connect(path, check_same_thread=False)
        _apply_pragmas(self._conn, busy_timeout_ms)
        run_migrations(self._conn)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError(f"SQLite store {self._path} is closed")
        return self._conn

    async def read(self, token_address: str) -> Optional[TokenSnapshot]:
        try:
            rows = self.conn.execute(
                "SELECT field, value_json FROM token_fields WHERE token_address = ?",
                (token_address,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"read {token_address}: {exc}") from exc
        return decode_fields(dict(rows))

    async def write(self, token_address: str, snapshot: TokenSnapshot) -> None:
        encoded = encode_fields(snapshot)
        ts = now_ms()
        conn = self.conn
        try:
            with conn:
                conn.execute("DELETE FROM token_fields WHERE token_address = ?", (token_address,))
                conn.executemany(
                    "INSERT INTO token_fields (token_address, field, value_json) VALUES (?, ?, ?)",
                    [(token_address, k, v) for k, v in encoded.items()],
                )
                for metric, score in index_scores(snapshot).items():
                    if score is None:
                        conn.execute(
                            "DELETE FROM token_index WHERE metric = ? AND token_address = ?",
                            (metric, token_address),
                        )
                        continue
                    conn.execute(
                        """
                        INSERT INTO token_index (metric, token_address, score, updated_at)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT(metric, token_address) DO UPDATE SET
                            score = excluded.score,
                            updated_at = excluded.updated_at;
                        """,
                        (metric, token_address, score, ts),
                    )
        except sqlite3.Error as exc:
            raise StoreError(f"write {token_address}: {exc}") from exc

    async def top_by_metric(self, metric: str, offset: int = 0, limit: int = 20) -> List[str]:
        check_metric(metric)
        if limit <= 0:
            return []
        try:
            rows = self.conn.execute(
                """
                SELECT token_address FROM token_index
                WHERE metric = ?
                ORDER BY score DESC, token_address DESC
                LIMIT ? OFFSET ?
                """,
                (metric, int(limit), max(0, int(offset))),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"range {metric}: {exc}") from exc
        return [r[0] for r in rows]

    async def count(self) -> int:
        try:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM token_index WHERE metric = ?", (COUNT_METRIC,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"count: {exc}") from exc
        return int(row[0]) if row else 0

    async def ping(self) -> bool:
        try:
            self.conn.execute("SELECT 1").fetchone()
            return True
        except (sqlite3.Error, StoreError):
            return False

    async def close(self) -> None:
        """Close the connection. Idempotent: safe to call multiple times."""
        if self._conn is None:
            return
        try:
            self._conn.close()
        finally:
            self._conn = None
