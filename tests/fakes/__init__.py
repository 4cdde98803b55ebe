"""Fakes for pipeline, store, feed and provider tests (no live network, no Redis server)."""

from .fake_redis import FakeRedis
from .providers import BlockingTokenProvider, FakeTokenProvider, FakeTokenProviderFailNThenSucceed
from .stores import FailingPublisher, FlakyStore, RecordingPublisher
from .timers import ManualFlushTimer

__all__ = [
    "BlockingTokenProvider",
    "FailingPublisher",
    "FakeRedis",
    "FakeTokenProvider",
    "FakeTokenProviderFailNThenSucceed",
    "FlakyStore",
    "ManualFlushTimer",
    "RecordingPublisher",
]
