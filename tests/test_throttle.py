"""
Unit tests for ThrottledExecutor.
"""

import asyncio
import time

import pytest

from personio.throttle import ThrottledExecutor


class TestThrottledExecutor:
    """Test cases for ThrottledExecutor."""

    @pytest.mark.asyncio
    async def test_concurrency_cap_is_never_exceeded(self):
        """Test at most concurrency_cap tasks run at once."""
        executor = ThrottledExecutor(concurrency_cap=2, interval_cap=100, interval=60)
        running = 0
        peak = 0

        async def work(n):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.1)
            running -= 1
            return n

        results = await asyncio.gather(*(executor.execute(lambda n=n: work(n)) for n in range(5)))

        assert results == [0, 1, 2, 3, 4]
        assert peak == 2

    @pytest.mark.asyncio
    async def test_admission_is_fifo(self):
        """Test tasks start in submission order."""
        executor = ThrottledExecutor(concurrency_cap=1, interval_cap=100, interval=60)
        started = []

        async def work(n):
            started.append(n)
            await asyncio.sleep(0)

        await asyncio.gather(*(executor.execute(lambda n=n: work(n)) for n in range(6)))

        assert started == [0, 1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_interval_cap_defers_to_next_window(self):
        """Test starts beyond interval_cap wait for the window to roll over."""
        executor = ThrottledExecutor(concurrency_cap=10, interval_cap=2, interval=0.2)
        starts = []

        async def work():
            starts.append(time.monotonic())

        await asyncio.gather(*(executor.execute(work) for _ in range(4)))

        assert len(starts) == 4
        assert starts[1] - starts[0] < 0.1
        assert starts[2] - starts[0] >= 0.19

    @pytest.mark.asyncio
    async def test_failure_does_not_affect_other_tasks(self):
        """Test one failing task rejects only its own caller."""
        executor = ThrottledExecutor(concurrency_cap=2, interval_cap=100, interval=60)

        async def boom():
            raise RuntimeError("upstream exploded")

        async def fine():
            return "ok"

        results = await asyncio.gather(
            executor.execute(fine),
            executor.execute(boom),
            executor.execute(fine),
            return_exceptions=True,
        )

        assert results[0] == "ok"
        assert isinstance(results[1], RuntimeError)
        assert results[2] == "ok"
        assert executor.pending == 0

    @pytest.mark.asyncio
    async def test_clear_drops_queued_tasks(self):
        """Test clear cancels queued work but lets running work finish."""
        executor = ThrottledExecutor(concurrency_cap=1, interval_cap=100, interval=60)
        release = asyncio.Event()
        ran = []

        async def blocker():
            await release.wait()
            return "first"

        async def queued():
            ran.append("queued")

        first = asyncio.create_task(executor.execute(blocker))
        second = asyncio.create_task(executor.execute(queued))
        third = asyncio.create_task(executor.execute(queued))
        await asyncio.sleep(0)

        assert executor.pending == 1
        assert executor.size == 2
        assert executor.clear() == 2

        release.set()
        assert await first == "first"
        with pytest.raises(asyncio.CancelledError):
            await second
        with pytest.raises(asyncio.CancelledError):
            await third
        assert ran == []

    @pytest.mark.asyncio
    async def test_on_empty_and_snapshot(self):
        """Test on_empty resolves once the queue drains and snapshot counts starts."""
        executor = ThrottledExecutor(concurrency_cap=1, interval_cap=100, interval=60)

        async def work():
            await asyncio.sleep(0.01)

        tasks = [asyncio.create_task(executor.execute(work)) for _ in range(3)]
        await asyncio.sleep(0)
        await asyncio.wait_for(executor.on_empty(), timeout=1)
        await asyncio.gather(*tasks)

        window = executor.snapshot()
        assert window.queued == 0
        assert window.in_flight == 0
        assert window.started_in_window == 3
        assert window.interval_cap == 100

    def test_rejects_non_positive_caps(self):
        """Test the executor refuses caps that could never admit work."""
        with pytest.raises(ValueError):
            ThrottledExecutor(concurrency_cap=0)
