"""
Debounced intake window.

Verifies that:
- The first arrival arms the timer once; later arrivals ride the same window
- Arrivals for one token are coalesced in order before the flush
- Arrivals during an in-flight flush land in the next window (swap safety)
- stop() drains or drops the pending window
"""
from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple

import pytest

from tests.fakes import ManualFlushTimer
from token_aggregator.pipeline.intake import IntakeWindow, LoopFlushTimer

Item = Tuple[str, int]


def _sum(acc: Optional[List[int]], item: Item) -> List[int]:
    return (acc or []) + [item[1]]


def _window(flushed: list, timer=None, **kwargs) -> IntakeWindow:
    async def on_flush(batch):
        flushed.append(batch)
        return len(batch)

    return IntakeWindow(on_flush, merge=_sum, key=lambda it: it[0], timer=timer or ManualFlushTimer(), **kwargs)


def test_add_before_start_raises():
    w = _window([])
    with pytest.raises(RuntimeError):
        w.add(("TokA", 1))


def test_first_arrival_arms_timer_once():
    timer = ManualFlushTimer()
    w = _window([], timer=timer, window_s=0.25)
    w.start()
    w.add(("TokA", 1))
    w.add(("TokB", 2))
    w.add(("TokA", 3))
    assert timer.arm_count == 1
    assert timer.delay_s == 0.25
    assert w.pending == 2


def test_back_to_back_arrivals_coalesce_in_order():
    flushed: list = []
    w = _window(flushed)
    w.start()
    w.add(("TokA", 1))
    w.add(("TokA", 2))
    result = asyncio.run(w.flush_now())
    assert result == 1
    assert flushed == [{"TokA": [[1, 2]]}]
    assert w.windows_flushed == 1


def test_no_coalesce_keeps_each_arrival():
    flushed: list = []
    w = _window(flushed, coalesce=False)
    w.start()
    w.add(("TokA", 1))
    w.add(("TokA", 2))
    asyncio.run(w.flush_now())
    assert flushed == [{"TokA": [[1], [2]]}]


def test_flush_of_empty_window_is_noop():
    flushed: list = []
    w = _window(flushed)
    w.start()
    assert asyncio.run(w.flush_now()) is None
    assert flushed == []
    assert w.windows_flushed == 0


def test_arrivals_during_flush_land_in_next_window():
    timer = ManualFlushTimer()
    batches: list = []
    holder: dict = {}

    async def on_flush(batch):
        batches.append(batch)
        if len(batches) == 1:
            # arrives while the first batch is being stored
            await asyncio.sleep(0)
            holder["w"].add(("TokA", 99))
        return len(batch)

    w = IntakeWindow(on_flush, merge=_sum, key=lambda it: it[0], timer=timer)
    holder["w"] = w
    w.start()
    w.add(("TokA", 1))

    async def scenario():
        await w.flush_now()
        assert w.pending == 1
        assert timer.is_armed
        await w.flush_now()

    asyncio.run(scenario())
    assert batches == [{"TokA": [[1]]}, {"TokA": [[99]]}]


def test_timer_fire_flushes_in_background_task():
    timer = ManualFlushTimer()
    flushed: list = []
    w = _window(flushed, timer=timer)

    async def scenario():
        w.start()
        w.add(("TokA", 1))
        timer.fire()
        await w.join()

    asyncio.run(scenario())
    assert flushed == [{"TokA": [[1]]}]
    assert not timer.is_armed


def test_stop_drains_pending_window():
    flushed: list = []
    w = _window(flushed)
    w.start()
    w.add(("TokA", 1))
    asyncio.run(w.stop())
    assert flushed == [{"TokA": [[1]]}]
    assert not w.running
    with pytest.raises(RuntimeError):
        w.add(("TokA", 2))


def test_stop_without_drain_drops_pending_window():
    flushed: list = []
    w = _window(flushed)
    w.start()
    w.add(("TokA", 1))
    asyncio.run(w.stop(drain=False))
    assert flushed == []
    assert w.pending == 0


def test_loop_timer_flushes_after_delay():
    flushed: list = []

    async def scenario():
        w = _window(flushed, timer=LoopFlushTimer(), window_s=0.01)
        w.start()
        w.add(("TokA", 1))
        assert w.is_armed
        await asyncio.sleep(0.05)
        await w.join()
        assert not w.is_armed

    asyncio.run(scenario())
    assert flushed == [{"TokA": [[1]]}]


def test_second_window_waits_for_in_flight_flush():
    timer = ManualFlushTimer()
    events: list = []

    async def on_flush(batch):
        [(addr, [values])] = batch.items()
        events.append(("start", values))
        await asyncio.sleep(0.02)
        events.append(("end", values))
        return len(batch)

    w = IntakeWindow(on_flush, merge=_sum, key=lambda it: it[0], timer=timer)

    async def scenario():
        w.start()
        w.add(("TokA", 1))
        timer.fire()
        await asyncio.sleep(0)
        w.add(("TokA", 2))
        timer.fire()
        await w.join()

    asyncio.run(scenario())
    assert events == [("start", [1]), ("end", [1]), ("start", [2]), ("end", [2])]
