"""Tests for the FIFO concurrency limiter."""

import asyncio
import logging

import pytest

from updown.services.backtest.limiter import ConcurrencyLimiter


class Tracker:
    """Counts thunks in flight and records the peak."""

    def __init__(self) -> None:
        self.in_flight = 0
        self.peak = 0
        self.started: list[int] = []

    def thunk(self, i: int, delay: float = 0.001, fail: bool = False):
        async def _run():
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
            self.started.append(i)
            try:
                await asyncio.sleep(delay)
                if fail:
                    raise RuntimeError(f"task {i} failed")
                return i
            finally:
                self.in_flight -= 1

        return _run


class TestLimiterBound:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("concurrency", [1, 2, 5, 10])
    async def test_never_exceeds_concurrency(self, concurrency):
        limiter = ConcurrencyLimiter(concurrency)
        tracker = Tracker()
        futures = [limiter.submit(tracker.thunk(i)) for i in range(25)]
        results = await asyncio.gather(*futures)

        assert results == list(range(25))
        assert tracker.peak <= concurrency
        assert tracker.peak == min(concurrency, 25)

    @pytest.mark.asyncio
    async def test_concurrency_one_is_sequential(self):
        limiter = ConcurrencyLimiter(1)
        tracker = Tracker()
        await asyncio.gather(*(limiter.submit(tracker.thunk(i)) for i in range(5)))
        assert tracker.peak == 1

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError, match="concurrency"):
            ConcurrencyLimiter(0)


class TestLimiterOrdering:
    @pytest.mark.asyncio
    async def test_starts_in_submission_order(self):
        limiter = ConcurrencyLimiter(2)
        tracker = Tracker()
        await asyncio.gather(*(limiter.submit(tracker.thunk(i)) for i in range(8)))
        assert tracker.started == list(range(8))

    @pytest.mark.asyncio
    async def test_queue_drains(self):
        limiter = ConcurrencyLimiter(3)
        tracker = Tracker()
        futures = [limiter.submit(tracker.thunk(i)) for i in range(10)]
        assert limiter.active == 3
        assert limiter.pending == 7
        await asyncio.gather(*futures)
        assert limiter.active == 0
        assert limiter.pending == 0


class TestLimiterFailures:
    @pytest.mark.asyncio
    async def test_failure_settles_future_and_frees_slot(self):
        limiter = ConcurrencyLimiter(1)
        tracker = Tracker()
        failing = limiter.submit(tracker.thunk(0, fail=True))
        following = limiter.submit(tracker.thunk(1))

        with pytest.raises(RuntimeError, match="task 0 failed"):
            await failing
        assert await following == 1
        assert limiter.active == 0

    @pytest.mark.asyncio
    async def test_mixed_outcomes_with_gather(self):
        limiter = ConcurrencyLimiter(2)
        tracker = Tracker()
        futures = [limiter.submit(tracker.thunk(i, fail=(i % 3 == 0))) for i in range(6)]
        outcomes = await asyncio.gather(*futures, return_exceptions=True)

        assert [isinstance(o, RuntimeError) for o in outcomes] == [True, False, False, True, False, False]
        assert tracker.started == list(range(6))


class TestLimiterCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_queued_thunk_never_starts(self, caplog):
        limiter = ConcurrencyLimiter(1)
        tracker = Tracker()
        running = limiter.submit(tracker.thunk(0))
        queued = limiter.submit(tracker.thunk(1))
        last = limiter.submit(tracker.thunk(2))
        queued.cancel()

        with caplog.at_level(logging.DEBUG, logger="updown.services.backtest.limiter"):
            assert await running == 0
            assert await last == 2

        assert tracker.started == [0, 2]
        assert limiter.pending == 0
        assert "Dropping cancelled thunk" in caplog.text
