"""
Pipeline stages: source merge, intake window, state merge, diff, noise filter,
and the Aggregator that runs them per flush. Producers (periodic fetchers,
Redis intake) feed the Aggregator. Do not add exports without updating __all__.
"""

from __future__ import annotations

from .aggregator import Aggregator, FlushReport
from .diff import diff_snapshots
from .intake import FlushTimer, IntakeWindow, LoopFlushTimer
from .messages import parse_intake_message
from .noise import NoiseFilter, NoiseThresholds
from .producer import ObservationIntake, PeriodicFetcher
from .source_merge import SourceMerger, SourcePriority
from .state_merge import merge_candidates, merge_snapshot
from .subscriber import RedisIntakeSubscriber

# Do not add exports without updating __all__.
__all__ = [
    "Aggregator",
    "FlushReport",
    "FlushTimer",
    "IntakeWindow",
    "LoopFlushTimer",
    "NoiseFilter",
    "NoiseThresholds",
    "ObservationIntake",
    "PeriodicFetcher",
    "RedisIntakeSubscriber",
    "SourceMerger",
    "SourcePriority",
    "diff_snapshots",
    "merge_candidates",
    "merge_snapshot",
    "parse_intake_message",
]
