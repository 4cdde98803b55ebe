"""
Debounced intake window.

Arrivals are merged synchronously into a per-token buffer. The first arrival
into an empty buffer arms a single flush timer; later arrivals ride the same
window. A flush detaches the whole buffer (swap in an empty one) before any
awaited work, so records that arrive while the batch is being stored land in
the next window instead of being lost or merged into the in-flight batch.

Detached batches are processed one at a time, in detach order. A window whose
timer fires while the previous flush is still awaiting the store waits for it,
so two read-modify-writes of the same token never interleave.
"""
from __future__ import annotations

import asyncio
import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Optional,
    Protocol,
    Set,
    TypeVar,
    runtime_checkable,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")  # arriving item
A = TypeVar("A")  # accumulated per-token value

Batch = Dict[str, List[Any]]


@runtime_checkable
class FlushTimer(Protocol):
    """One-shot deferred callback: arm / cancel / is_armed."""

    @property
    def is_armed(self) -> bool: ...

    def arm(self, delay_s: float, callback: Callable[[], None]) -> None:
        """Schedule callback once; no-op if already armed."""
        ...

    def cancel(self) -> None: ...


class LoopFlushTimer:
    """FlushTimer on the running asyncio loop (loop.call_later)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def is_armed(self) -> bool:
        return self._handle is not None

    def arm(self, delay_s: float, callback: Callable[[], None]) -> None:
        if self._handle is not None:
            return
        loop = self._loop or asyncio.get_running_loop()

        def _fire() -> None:
            self._handle = None
            callback()

        self._handle = loop.call_later(delay_s, _fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class IntakeWindow(Generic[T, A]):
    """
    Per-token coalescing buffer with an explicit lifecycle (start / stop).

    ``merge(accumulated_or_None, item)`` folds an arrival into the buffered value.
    ``on_flush(batch)`` receives ``{token_address: [accumulated, ...]}``; with
    coalesce=True every list has exactly one element, with coalesce=False it holds
    each arrival in order.
    """

    def __init__(
        self,
        on_flush: Callable[[Batch], Awaitable[Any]],
        *,
        merge: Callable[[Optional[A], T], A],
        key: Callable[[T], str],
        window_s: float = 0.2,
        timer: Optional[FlushTimer] = None,
        coalesce: bool = True,
        name: str = "intake",
    ) -> None:
        self._on_flush = on_flush
        self._merge = merge
        self._key = key
        self._window_s = window_s
        self._timer: FlushTimer = timer or LoopFlushTimer()
        self._coalesce = coalesce
        self._name = name
        self._buffer: Dict[str, List[A]] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._flush_lock = asyncio.Lock()
        self._running = False
        self.windows_flushed = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def is_armed(self) -> bool:
        return self._timer.is_armed

    @property
    def pending(self) -> int:
        """Number of tokens waiting in the current (not yet detached) window."""
        return len(self._buffer)

    def start(self) -> None:
        self._running = True

    def add(self, item: T) -> None:
        if not self._running:
            raise RuntimeError(f"{self._name} window is not started")
        addr = self._key(item)
        was_empty = not self._buffer
        bucket = self._buffer.setdefault(addr, [])
        if self._coalesce and bucket:
            bucket[0] = self._merge(bucket[0], item)
        else:
            bucket.append(self._merge(None, item))
        if was_empty and not self._timer.is_armed:
            self._timer.arm(self._window_s, self._on_timer)

    def _on_timer(self) -> None:
        task = asyncio.get_running_loop().create_task(self.flush_now())
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("%s flush failed", self._name, exc_info=task.exception())

    def detach(self) -> Batch:
        """Swap in an empty buffer and return what was accumulated."""
        batch, self._buffer = self._buffer, {}
        return batch

    async def flush_now(self) -> Any:
        """Flush the current window immediately (timer-driven flushes call this too)."""
        self._timer.cancel()
        batch = self.detach()
        if not batch:
            return None
        self.windows_flushed += 1
        if self._flush_lock.locked():
            logger.debug("%s flush of %d tokens waiting for the previous window", self._name, len(batch))
        async with self._flush_lock:
            logger.debug("%s flush: %d tokens", self._name, len(batch))
            return await self._on_flush(batch)

    async def join(self) -> None:
        """Wait for timer-started flushes that are still running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self, *, drain: bool = True) -> None:
        """Stop accepting arrivals; optionally flush what is buffered; wait for in-flight flushes."""
        self._running = False
        self._timer.cancel()
        await self.join()
        if drain:
            await self.flush_now()
        else:
            dropped = self.detach()
            if dropped:
                logger.warning("%s stopped without drain; dropped %d tokens", self._name, len(dropped))
