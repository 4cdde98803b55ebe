"""
Feed intake messages from a file through one aggregation window and print the published changes.

The file holds a JSON array of messages, a single JSON message, or one message per line.
Usage: token-aggregator ingest messages.json [--db token_state.sqlite]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

from ..feed import LocalChangeFeed
from ..logging_setup import setup_logger
from ..pipeline.aggregator import Aggregator
from ..store import TokenStore, create_store
from ..store.sqlite_backend import SqliteTokenStore


def read_messages(path: Path) -> List[Any]:
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except ValueError:
        # One message per line; bad lines are handed on and dropped by the aggregator.
        return [line for line in text.splitlines() if line.strip()]
    if isinstance(data, list):
        return data
    return [data]


async def _ingest(store: TokenStore, messages: List[Any]) -> int:
    feed = LocalChangeFeed()
    changes = feed.subscribe()
    aggregator = Aggregator.from_config(store, feed)
    aggregator.start()
    try:
        accepted = sum(aggregator.handle_message(m) for m in messages)
    finally:
        await aggregator.stop(drain=True)
        await store.close()

    while not changes.empty():
        print(json.dumps(changes.get_nowait(), ensure_ascii=False))
    report = aggregator.last_report
    print(
        f"messages={len(messages)} candidates={accepted} dropped={aggregator.dropped_messages} "
        + (report.summary() if report else "tokens=0"),
        file=sys.stderr,
    )
    return 1 if report is not None and report.failed else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="token-aggregator ingest", description="Ingest intake messages from a file")
    parser.add_argument("path", type=Path)
    parser.add_argument("--db", default=None, help="SQLite path (overrides the configured store)")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args(argv)

    setup_logger(level=args.log_level)
    if not args.path.is_file():
        print(f"File not found: {args.path}", file=sys.stderr)
        return 2
    store: TokenStore = SqliteTokenStore(args.db) if args.db else create_store()
    return asyncio.run(_ingest(store, read_messages(args.path)))


if __name__ == "__main__":
    raise SystemExit(main())
