"""
Run the aggregation service: periodic DexScreener and Jupiter fetchers, the
observation intake window, the aggregator, and optionally the Redis intake
subscriber and the HTTP API with POST /ingest. Changes go to the Redis feed
channel when Redis is configured, otherwise they are only logged.

Usage: token-aggregator run [--redis-intake] [--http-port 8000] [--duration SECONDS] [--log-level DEBUG]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional

import redis.asyncio as aioredis
import uvicorn

from .. import config
from ..api import create_app
from ..feed import ChangePublisher, LocalChangeFeed, RedisChangePublisher
from ..logging_setup import setup_logger
from ..pipeline.aggregator import Aggregator
from ..pipeline.producer import ObservationIntake, PeriodicFetcher
from ..pipeline.subscriber import RedisIntakeSubscriber
from ..providers import DexscreenerProvider, JupiterProvider
from ..store import create_store

logger = logging.getLogger(__name__)


async def _run(args: argparse.Namespace) -> int:
    backend = args.store or config.store_backend()
    store = create_store(backend)
    use_redis = backend == "redis" or args.redis_intake
    client = aioredis.from_url(config.redis_url(), decode_responses=True) if use_redis else None

    publisher: ChangePublisher
    if client is not None:
        publisher = RedisChangePublisher(client, config.feed_channel())
    else:
        publisher = LocalChangeFeed()

    aggregator = Aggregator.from_config(store, publisher)
    intake = ObservationIntake(aggregator, window_s=config.intake_window_seconds())

    settings = config.fetcher_settings()
    interval_s = float(settings["interval_s"])
    fetchers = [
        PeriodicFetcher(DexscreenerProvider(settings["dexscreener_query"]), intake, interval_s=interval_s),
        PeriodicFetcher(
            JupiterProvider(intake.tracked_addresses, chunk_size=int(settings["jupiter_chunk_size"])),
            intake,
            interval_s=interval_s,
        ),
    ]
    subscriber = RedisIntakeSubscriber(client, aggregator, config.intake_channel()) if args.redis_intake else None
    server: Optional[uvicorn.Server] = None
    if args.http_port is not None:
        server = uvicorn.Server(
            uvicorn.Config(
                create_app(store, intake=intake),
                host=args.host,
                port=args.http_port,
                log_level=args.log_level.lower(),
            )
        )

    aggregator.start()
    intake.start()
    for f in fetchers:
        f.start()
    if subscriber is not None:
        subscriber.start()
    server_task: Optional[asyncio.Task] = None
    if server is not None:
        server_task = asyncio.get_running_loop().create_task(server.serve())
    logger.info("Aggregator running (store=%s, redis=%s)", backend, client is not None)

    try:
        if args.duration:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()
    finally:
        if server is not None and server_task is not None:
            server.should_exit = True
            await server_task
        if subscriber is not None:
            await subscriber.stop()
        for f in fetchers:
            await f.stop()
        await intake.stop(drain=True)
        await aggregator.stop(drain=True)
        await store.close()
        if client is not None:
            await client.aclose()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="token-aggregator run", description="Run the aggregation service")
    parser.add_argument("--store", choices=("sqlite", "redis"), default=None, help="Override store.backend")
    parser.add_argument("--redis-intake", action="store_true", help="Also consume intake messages from Redis")
    parser.add_argument("--http-port", type=int, default=None, help="Also serve the HTTP API (with POST /ingest)")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--duration", type=float, default=None, help="Stop after N seconds")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", action="store_true", help="Also log to logs/token_aggregator_<date>.log")
    args = parser.parse_args(argv)

    setup_logger(level=args.log_level, log_to_file=args.log_file)
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
