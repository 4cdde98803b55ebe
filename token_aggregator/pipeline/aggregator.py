"""
Aggregator: intake window -> state merge -> diff -> noise filter -> store -> change feed.

One flush processes every token detached from the window. Each token's
read-merge-diff-filter-write-publish runs on its own: a failure is logged and
counted, and the remaining tokens in the same window still go through. There is
no retry of a failed write or publish and no dead-letter queue for malformed
intake messages; both show up in logs and in the FlushReport only.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from ..core.errors import MalformedMessageError
from ..feed import ChangePublisher
from ..models import CandidateRecord, TokenSnapshot
from ..store.base import TokenStore
from ..timeutils import now_ms
from .diff import Delta, diff_snapshots
from .intake import Batch, FlushTimer, IntakeWindow
from .messages import Payload, parse_intake_message
from .noise import NoiseFilter, NoiseThresholds
from .source_merge import SourceMerger, SourcePriority
from .state_merge import AGGREGATOR_SOURCE, merge_candidates, merge_snapshot

logger = logging.getLogger(__name__)


@dataclass
class FlushReport:
    """Outcome of one window flush."""

    tokens: int = 0
    written: int = 0
    published: int = 0
    unchanged: int = 0
    failed: int = 0
    failures: Dict[str, str] = field(default_factory=dict)

    def summary(self) -> str:
        return (
            f"tokens={self.tokens} written={self.written} published={self.published} "
            f"unchanged={self.unchanged} failed={self.failed}"
        )


def format_delta(token_address: str, delta: Delta, previous: Optional[TokenSnapshot]) -> str:
    """Human-readable 'field old -> new' listing for log lines."""
    old = previous.to_dict() if previous is not None else {}
    lines = [f"Token update -> {token_address}"]
    for name, value in delta.items():
        lines.append(f"  {name:<18} {str(old.get(name)):<12} -> {value}")
    return "\n".join(lines)


class Aggregator:
    """
    Owns one IntakeWindow of CandidateRecords and the per-token flush.

    Lifecycle: construct, start(), submit()/handle_message(), stop().
    """

    def __init__(
        self,
        store: TokenStore,
        publisher: ChangePublisher,
        *,
        noise_filter: Optional[NoiseFilter] = None,
        merger: Optional[SourceMerger] = None,
        window_s: float = 0.2,
        timer: Optional[FlushTimer] = None,
        coalesce: bool = True,
        source_label: str = AGGREGATOR_SOURCE,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._publisher = publisher
        self._noise = noise_filter or NoiseFilter()
        self._merger = merger or SourceMerger()
        self._source_label = source_label
        self._clock = clock
        self._window: IntakeWindow[CandidateRecord, CandidateRecord] = IntakeWindow(
            self._flush_batch,
            merge=merge_candidates,
            key=lambda c: c.token_address,
            window_s=window_s,
            timer=timer,
            coalesce=coalesce,
            name="aggregator",
        )
        self.last_report: Optional[FlushReport] = None
        self.dropped_messages = 0

    @classmethod
    def from_config(
        cls,
        store: TokenStore,
        publisher: ChangePublisher,
        *,
        timer: Optional[FlushTimer] = None,
    ) -> Aggregator:
        from .. import config

        return cls(
            store,
            publisher,
            noise_filter=NoiseFilter(NoiseThresholds.from_config(config.noise_thresholds())),
            merger=SourceMerger(SourcePriority.from_overrides(config.source_priority_overrides())),
            window_s=config.window_seconds(),
            timer=timer,
            coalesce=config.coalesce_arrivals(),
        )

    @property
    def store(self) -> TokenStore:
        return self._store

    @property
    def merger(self) -> SourceMerger:
        return self._merger

    @property
    def window(self) -> IntakeWindow:
        return self._window

    def start(self) -> None:
        self._window.start()
        logger.info("Aggregator started")

    async def stop(self, *, drain: bool = True) -> None:
        await self._window.stop(drain=drain)
        logger.info("Aggregator stopped")

    def submit(self, candidate: CandidateRecord) -> None:
        """Merge a candidate into the current window (synchronous; no suspension)."""
        self._window.add(candidate)

    def submit_many(self, candidates: Iterable[CandidateRecord]) -> int:
        n = 0
        for c in candidates:
            self.submit(c)
            n += 1
        return n

    def handle_message(self, payload: Payload) -> int:
        """Parse an intake message and submit its candidates. Malformed messages are logged and dropped."""
        try:
            candidates = parse_intake_message(payload, self._merger)
        except MalformedMessageError as exc:
            self.dropped_messages += 1
            logger.warning("Dropped malformed intake message: %s", exc)
            return 0
        return self.submit_many(candidates)

    async def flush_now(self) -> Optional[FlushReport]:
        return await self._window.flush_now()

    async def join(self) -> None:
        await self._window.join()

    async def _flush_batch(self, batch: Batch) -> FlushReport:
        report = FlushReport(tokens=len(batch))
        for address, candidates in batch.items():
            try:
                await self._process_token(address, candidates, report)
            except Exception as exc:
                report.failed += 1
                report.failures[address] = f"{type(exc).__name__}: {exc}"
                logger.exception("Aggregator flush error for %s", address)
        self.last_report = report
        logger.info("Window flushed: %s", report.summary())
        return report

    async def _process_token(self, address: str, candidates: List[CandidateRecord], report: FlushReport) -> None:
        for candidate in candidates:
            existing = await self._store.read(address)
            merged = merge_snapshot(existing, candidate, source=self._source_label, now=self._clock())
            delta = self._noise.apply(diff_snapshots(existing, merged), previous=existing)
            if not delta:
                report.unchanged += 1
                continue
            await self._store.write(address, merged)
            report.written += 1
            await self._publisher.publish(address, delta)
            report.published += 1
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(format_delta(address, delta, existing))

