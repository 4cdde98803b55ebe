"""
Periodic fetchers and the observation intake in front of the aggregator.

Verifies that:
- Observations from different sources for one token meet in one priority merge
- A failed fetch is recorded in provider health and does not raise
- A tick is skipped while the previous fetch of the same source is in flight
"""
from __future__ import annotations

import asyncio

from tests.fakes import (
    BlockingTokenProvider,
    FakeTokenProvider,
    FakeTokenProviderFailNThenSucceed,
    ManualFlushTimer,
    RecordingPublisher,
)
from token_aggregator.models import SourceObservation
from token_aggregator.pipeline.aggregator import Aggregator
from token_aggregator.pipeline.producer import ObservationIntake, PeriodicFetcher
from token_aggregator.providers.base import ProviderStatus
from token_aggregator.store.sqlite_backend import SqliteTokenStore


def _pipeline():
    store = SqliteTokenStore(":memory:")
    publisher = RecordingPublisher()
    agg = Aggregator(store, publisher, timer=ManualFlushTimer())
    intake = ObservationIntake(agg, timer=ManualFlushTimer())
    agg.start()
    intake.start()
    return agg, intake, store, publisher


def test_sources_meet_in_one_priority_merge():
    agg, intake, store, publisher = _pipeline()

    async def scenario():
        intake.add(SourceObservation(token_address="TokA", source="dexscreener", price=1.0, volume=10.0))
        intake.add(SourceObservation(token_address="TokA", source="jupiter", price=2.0, volume=999.0))
        submitted = await intake.flush_now()
        await agg.flush_now()
        return submitted, await store.read("TokA")

    submitted, snap = asyncio.run(scenario())
    assert submitted == 1
    assert snap.price == 2.0
    assert snap.volume == 10.0
    assert set(snap.sources_used) == {"dexscreener", "jupiter"}
    assert publisher.messages == [("TokA", {"price": 2.0, "volume": 10.0})]
    assert intake.tracked_addresses() == ["TokA"]


def test_latest_observation_per_source_wins_within_window():
    agg, intake, store, _ = _pipeline()

    async def scenario():
        intake.add(SourceObservation(token_address="TokA", source="jupiter", price=1.0))
        intake.add(SourceObservation(token_address="TokA", source="jupiter", price=1.1))
        await intake.flush_now()
        await agg.flush_now()
        return await store.read("TokA")

    assert asyncio.run(scenario()).price == 1.1


def test_run_once_hands_observations_to_intake():
    _, intake, _, _ = _pipeline()
    provider = FakeTokenProvider("dexscreener", {"TokA": {"price": 1.0}, "TokB": {"price": 2.0}})
    fetcher = PeriodicFetcher(provider, intake, interval_s=60)

    observations = asyncio.run(fetcher.run_once())
    assert len(observations) == 2
    assert intake.window.pending == 2
    assert fetcher.health.status == ProviderStatus.OK
    assert fetcher.health.last_count == 2


def test_failed_fetch_is_recorded_not_raised():
    _, intake, _, _ = _pipeline()
    provider = FakeTokenProviderFailNThenSucceed("jupiter", fail_times=1)
    fetcher = PeriodicFetcher(provider, intake)

    assert asyncio.run(fetcher.run_once()) == []
    assert fetcher.health.fail_count == 1
    assert "simulated failure" in fetcher.health.last_error
    assert len(asyncio.run(fetcher.run_once())) == 1
    assert fetcher.health.fail_count == 0


def test_tick_skipped_while_previous_fetch_in_flight():
    _, intake, _, _ = _pipeline()
    provider = BlockingTokenProvider("dexscreener")
    fetcher = PeriodicFetcher(provider, intake)

    async def scenario():
        first = asyncio.get_running_loop().create_task(fetcher.run_once())
        await asyncio.to_thread(provider.started.wait, 5)
        assert fetcher.in_flight
        skipped = await fetcher.run_once()
        provider.release.set()
        return skipped, await first

    skipped, first = asyncio.run(scenario())
    assert skipped == []
    assert len(first) == 1
    assert fetcher.skipped_ticks == 1
    assert provider.call_count == 1
    assert not fetcher.in_flight


def test_start_stop_polls_on_interval():
    _, intake, _, _ = _pipeline()
    provider = FakeTokenProvider("dexscreener")
    fetcher = PeriodicFetcher(provider, intake, interval_s=0.01)

    async def scenario():
        fetcher.start()
        await asyncio.sleep(0.05)
        await fetcher.stop()

    asyncio.run(scenario())
    assert provider.call_count >= 2
