# =============================================================================
# personio/throttle.py  -  Upstream Admission Control
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Every upstream HTTP call goes through ThrottledExecutor.execute().  The
#   executor admits work under two caps at once:
#
#     concurrency_cap  how many calls may be in flight simultaneously
#     interval_cap     how many calls may START within one fixed window
#                      of `interval` seconds (default 60 per 60s)
#
#   Work beyond either cap waits in a FIFO queue.  Nothing is ever rejected;
#   the only visible effect of hitting a cap is added latency.
#
# HOW IT WORKS:
#   _drain() is the single admission point.  It runs after every submit,
#   after every task completion, and when a window rolls over.  It starts
#   queued tasks in order while both caps have room.  When only the window
#   cap blocks progress, it arms one timer for the next rollover.
#
# ORDERING:
#   Admission is FIFO.  Completion order is whatever the tasks' own I/O
#   makes it.
# =============================================================================

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, Optional, TypeVar

from personio.models import ThrottleWindow

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INTERVAL = 60.0


class ThrottledExecutor:
    """FIFO admission queue with a concurrency cap and a fixed-window start cap."""

    def __init__(
        self,
        concurrency_cap: int = 15,
        interval_cap: int = 60,
        interval: float = DEFAULT_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        if concurrency_cap < 1 or interval_cap < 1 or interval <= 0:
            raise ValueError("concurrency_cap, interval_cap and interval must be positive")
        self.concurrency_cap = concurrency_cap
        self.interval_cap = interval_cap
        self.interval = interval
        self._clock = clock

        self._queue: deque[tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        self._in_flight = 0
        self._window_start: Optional[float] = None
        self._started_in_window = 0
        self._rollover: Optional[asyncio.TimerHandle] = None
        self._running: set[asyncio.Task] = set()
        self._empty_waiters: list[asyncio.Future] = []

    @property
    def size(self) -> int:
        """Queued tasks that have not started yet."""
        return sum(1 for _, future in self._queue if not future.done())

    @property
    def pending(self) -> int:
        """Tasks currently executing."""
        return self._in_flight

    async def execute(self, task: Callable[[], Awaitable[T]]) -> T:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._queue.append((task, future))
        self._drain()
        return await future

    def clear(self) -> int:
        """Drop every queued task without running it; awaiters are cancelled."""
        dropped = 0
        while self._queue:
            _, future = self._queue.popleft()
            if not future.done():
                future.cancel()
                dropped += 1
        if self._rollover is not None:
            self._rollover.cancel()
            self._rollover = None
        if dropped:
            logger.info(f"Dropped {dropped} queued upstream call(s)")
        self._notify_empty()
        return dropped

    async def on_empty(self) -> None:
        """Wait until no task is queued (running tasks may still be in flight)."""
        if not self._queue:
            return
        waiter = asyncio.get_running_loop().create_future()
        self._empty_waiters.append(waiter)
        await waiter

    def snapshot(self) -> ThrottleWindow:
        self._roll_window()
        return ThrottleWindow(
            in_flight=self._in_flight,
            queued=self.size,
            window_start=self._window_start,
            started_in_window=self._started_in_window,
            interval=self.interval,
            interval_cap=self.interval_cap,
            concurrency_cap=self.concurrency_cap,
        )

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------
    def _roll_window(self) -> None:
        if self._window_start is None:
            return
        if self._clock() - self._window_start >= self.interval:
            self._window_start = None
            self._started_in_window = 0

    def _drain(self) -> None:
        self._roll_window()
        while self._queue and self._in_flight < self.concurrency_cap:
            if self._started_in_window >= self.interval_cap:
                self._schedule_rollover()
                break
            task, future = self._queue.popleft()
            if future.done():
                # the awaiting caller went away before admission
                continue
            self._start(task, future)
        if not self._queue:
            self._notify_empty()

    def _start(self, task: Callable[[], Awaitable[Any]], future: asyncio.Future) -> None:
        if self._window_start is None:
            self._window_start = self._clock()
        self._started_in_window += 1
        self._in_flight += 1
        runner = asyncio.get_running_loop().create_task(self._run(task, future))
        self._running.add(runner)
        runner.add_done_callback(self._running.discard)

    async def _run(self, task: Callable[[], Awaitable[Any]], future: asyncio.Future) -> None:
        try:
            result = await task()
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception as exc:
            if not future.done():
                future.set_exception(exc)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._in_flight -= 1
            self._drain()

    def _schedule_rollover(self) -> None:
        if self._rollover is not None or self._window_start is None:
            return
        delay = max(0.0, self._window_start + self.interval - self._clock())
        logger.debug(f"Interval cap reached; {self.size} call(s) wait {delay:.2f}s")
        self._rollover = asyncio.get_running_loop().call_later(delay, self._on_rollover)

    def _on_rollover(self) -> None:
        self._rollover = None
        self._drain()

    def _notify_empty(self) -> None:
        waiters, self._empty_waiters = self._empty_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
