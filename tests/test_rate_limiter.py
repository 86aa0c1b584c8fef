"""
RateLimiter: 1 秒窗口上限、最小间隔、FIFO 顺序、异常隔离、buffer 延迟。
"""

import asyncio

import pytest

from houndmaster.utils.limiter import RateLimiter


def _run_batch(limiter: RateLimiter, clock, count: int):
    dispatched = []

    def _make(i):
        async def _task():
            dispatched.append((i, clock()))
            return i
        return _task

    async def _main():
        return await asyncio.gather(*(limiter.schedule(_make(i)) for i in range(count)))

    results = asyncio.run(_main())
    return results, dispatched


class TestRateLimiterPacing:
    def test_window_cap_and_min_interval(self, fake_clock):
        limiter = RateLimiter("test", max_per_second=2, min_interval_ms=100, clock=fake_clock, sleep=fake_clock.sleep)
        _, dispatched = _run_batch(limiter, fake_clock, 7)
        times = [t for _, t in dispatched]

        for a, b in zip(times, times[1:]):
            assert b - a >= 0.1 - 1e-9
        for start in times:
            in_window = [t for t in times if start <= t < start + 1.0]
            assert len(in_window) <= 2

    def test_min_interval_dominates_when_stricter(self, fake_clock):
        limiter = RateLimiter("test", max_per_second=5, min_interval_ms=600, clock=fake_clock, sleep=fake_clock.sleep)
        _, dispatched = _run_batch(limiter, fake_clock, 4)
        times = [t for _, t in dispatched]
        assert times == pytest.approx([1000.0, 1000.6, 1001.2, 1001.8])

    def test_fifo_order_and_results(self, fake_clock):
        limiter = RateLimiter("test", max_per_second=3, min_interval_ms=50, clock=fake_clock, sleep=fake_clock.sleep)
        results, dispatched = _run_batch(limiter, fake_clock, 6)
        assert results == list(range(6))
        assert [i for i, _ in dispatched] == list(range(6))

    def test_buffer_sleep_after_each_task(self, fake_clock):
        limiter = RateLimiter(
            "test", max_per_second=10, min_interval_ms=0, buffer_ms=250, clock=fake_clock, sleep=fake_clock.sleep
        )
        _run_batch(limiter, fake_clock, 3)
        assert fake_clock.sleeps.count(0.25) == 3


class TestRateLimiterFailures:
    def test_failing_task_does_not_block_queue(self, fake_clock):
        limiter = RateLimiter("test", max_per_second=5, min_interval_ms=10, clock=fake_clock, sleep=fake_clock.sleep)

        async def _boom():
            raise RuntimeError("upstream down")

        async def _ok():
            return "ok"

        async def _main():
            return await asyncio.gather(
                limiter.schedule(_boom), limiter.schedule(_ok), return_exceptions=True
            )

        first, second = asyncio.run(_main())
        assert isinstance(first, RuntimeError)
        assert second == "ok"
        assert limiter.pending == 0

    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            RateLimiter("test", max_per_second=0, min_interval_ms=100)
