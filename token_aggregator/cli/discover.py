"""
Print the top tokens for a metric, one JSON object per line.
Usage: token-aggregator discover [--sort volume] [--limit 20] [--cursor 0]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from ..core.errors import StoreError, UnknownSortMetricError
from ..store import SORTABLE_METRICS, TokenStore, create_store


async def _discover(store: TokenStore, sort: str, cursor: int, limit: int) -> List[dict]:
    try:
        addresses = await store.top_by_metric(sort, offset=cursor, limit=limit)
        return [snap.to_dict() for snap in await store.read_many(addresses)]
    finally:
        await store.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="token-aggregator discover", description="List top tokens by metric")
    parser.add_argument("--sort", default="volume", help=f"One of: {', '.join(SORTABLE_METRICS)}")
    parser.add_argument("--cursor", type=int, default=0)
    parser.add_argument("--limit", type=int, default=20)
    parser.add_argument("--store", choices=("sqlite", "redis"), default=None, help="Override store.backend")
    args = parser.parse_args(argv)

    try:
        rows = asyncio.run(_discover(create_store(args.store), args.sort, max(0, args.cursor), args.limit))
    except UnknownSortMetricError as exc:
        print(f"Unknown sort metric '{exc.metric}'. Allowed: {', '.join(exc.allowed)}", file=sys.stderr)
        return 2
    except StoreError as exc:
        print(f"Store unavailable: {exc}", file=sys.stderr)
        return 1
    for row in rows:
        print(json.dumps(row, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
