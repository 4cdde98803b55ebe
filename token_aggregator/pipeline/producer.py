"""
In-process producers: periodic source fetchers feeding the aggregator.

Each PeriodicFetcher polls one provider on an interval. Observations go into an
ObservationIntake window keyed by token; when it flushes, each token's
``{source: observation}`` batch is merged by source priority and the resulting
CandidateRecord is submitted to the Aggregator. Fetchers with different
intervals therefore still meet in one cross-source merge when their results
land in the same intake window.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set

from ..models import SourceObservation
from ..providers.base import ProviderHealth, TokenSourceProvider
from .aggregator import Aggregator
from .intake import Batch, FlushTimer, IntakeWindow
from .source_merge import SourceMerger

logger = logging.getLogger(__name__)

SourceBatch = Dict[str, SourceObservation]


def _collect(acc: Optional[SourceBatch], obs: SourceObservation) -> SourceBatch:
    out = dict(acc or {})
    out[obs.source] = obs
    return out


class ObservationIntake:
    """Window of per-token ``{source: observation}`` batches in front of an Aggregator."""

    def __init__(
        self,
        aggregator: Aggregator,
        *,
        merger: Optional[SourceMerger] = None,
        window_s: float = 0.15,
        timer: Optional[FlushTimer] = None,
    ) -> None:
        self._aggregator = aggregator
        self._merger = merger or aggregator.merger
        self._window: IntakeWindow[SourceObservation, SourceBatch] = IntakeWindow(
            self._flush_batch,
            merge=_collect,
            key=lambda o: o.token_address,
            window_s=window_s,
            timer=timer,
            coalesce=True,
            name="observations",
        )
        self._seen: Dict[str, None] = {}

    @property
    def window(self) -> IntakeWindow:
        return self._window

    def start(self) -> None:
        self._window.start()

    async def stop(self, *, drain: bool = True) -> None:
        await self._window.stop(drain=drain)

    def tracked_addresses(self) -> List[str]:
        """Every token address observed so far, in first-seen order."""
        return list(self._seen)

    def add(self, observation: SourceObservation) -> None:
        self._window.add(observation)
        self._seen.setdefault(observation.token_address, None)

    def add_many(self, observations: Iterable[SourceObservation]) -> int:
        n = 0
        for obs in observations:
            self.add(obs)
            n += 1
        return n

    async def flush_now(self) -> int:
        return await self._window.flush_now() or 0

    async def _flush_batch(self, batch: Batch) -> int:
        submitted = 0
        for address, buckets in batch.items():
            for sources in buckets:
                try:
                    candidate = self._merger.merge_batch(sources)
                except ValueError as exc:
                    logger.warning("Skipping observations for %s: %s", address, exc)
                    continue
                self._aggregator.submit(candidate)
                submitted += 1
        return submitted


class PeriodicFetcher:
    """
    Poll one provider every ``interval_s`` seconds.

    A tick that fires while the previous fetch is still running is skipped, so
    a slow source never has two requests outstanding.
    """

    def __init__(
        self,
        provider: TokenSourceProvider,
        intake: ObservationIntake,
        *,
        interval_s: float = 8.0,
    ) -> None:
        self._provider = provider
        self._intake = intake
        self._interval_s = interval_s
        self._in_flight = False
        self._task: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()
        self.health = ProviderHealth(provider_name=provider.provider_name)
        self.skipped_ticks = 0

    @property
    def name(self) -> str:
        return self._provider.provider_name

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def run_once(self) -> List[SourceObservation]:
        """One fetch cycle. Returns [] when skipped or failed."""
        if self._in_flight:
            self.skipped_ticks += 1
            logger.debug("%s fetch still running; skipping tick", self.name)
            return []
        self._in_flight = True
        try:
            observations = await asyncio.to_thread(self._provider.fetch)
        except Exception as exc:
            self.health.record_failure(f"{type(exc).__name__}: {exc}")
            logger.warning("%s fetch failed: %s", self.name, exc)
            return []
        finally:
            self._in_flight = False
        self.health.record_success(len(observations))
        self._intake.add_many(observations)
        logger.info("%s fetched %d tokens", self.name, len(observations))
        return observations

    async def _loop(self) -> None:
        while True:
            tick = asyncio.get_running_loop().create_task(self.run_once())
            self._ticks.add(tick)
            tick.add_done_callback(self._ticks.discard)
            await asyncio.sleep(self._interval_s)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._loop())
            logger.info("Started %s fetcher (every %.1fs)", self.name, self._interval_s)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        if self._ticks:
            await asyncio.gather(*list(self._ticks), return_exceptions=True)
