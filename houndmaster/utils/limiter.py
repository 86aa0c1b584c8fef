"""
速率限制：按上游 API 配置的异步请求调度器。

两条约束同时生效：
- 任意 1 秒滚动窗口内派发数不超过 max_per_second
- 相邻两次派发间隔不小于 min_interval_ms

任务按入队顺序（FIFO）由单个 drain 协程依次派发；任务抛出的异常只回传给
对应调用方，不阻塞后续任务。任务从不丢弃，只会被延后。
HTTP 429 的退避重试由调用方（各 API 客户端）负责，不在这里处理。
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple, TypeVar

from houndmaster.observability import metrics

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class RateLimiter:
    """
    Args:
        name: 指标标签（如 "marketplace" / "explorer"）
        max_per_second: 1 秒窗口内最多派发数 N
        min_interval_ms: 相邻派发最小间隔 M
        buffer_ms: 每个任务完成后额外等待的缓冲时间
        clock / sleep: 可注入，测试时用假时钟
    """

    def __init__(
        self,
        name: str,
        max_per_second: int,
        min_interval_ms: float,
        buffer_ms: float = 0,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        if max_per_second < 1:
            raise ValueError("max_per_second must be >= 1")
        self.name = name
        self.max_per_second = max_per_second
        self.min_interval = max(0.0, min_interval_ms / 1000.0)
        self.buffer = max(0.0, buffer_ms / 1000.0)
        self._clock = clock
        self._sleep = sleep

        self._queue: Deque[Tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        # 最近 N 次派发时间戳；第 N+1 次必须晚于最早一次 1 秒
        self._window: Deque[float] = deque(maxlen=max_per_second)
        self._last_dispatch: Optional[float] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def schedule(self, task: Callable[[], Awaitable[T]]) -> T:
        """入队一个无参协程工厂，等待并返回其结果（或其异常）"""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._queue.append((task, future))
        metrics.limiter_queue_depth.labels(limiter=self.name).set(len(self._queue))
        if not self.running:
            self._worker = loop.create_task(self._drain())
        return await future

    def _wait_time(self, now: float) -> float:
        wait = 0.0
        if self._last_dispatch is not None:
            wait = max(wait, self._last_dispatch + self.min_interval - now)
        if len(self._window) >= self.max_per_second:
            wait = max(wait, self._window[0] + 1.0 - now)
        return wait

    async def _drain(self) -> None:
        while self._queue:
            task, future = self._queue.popleft()
            metrics.limiter_queue_depth.labels(limiter=self.name).set(len(self._queue))
            if future.done():
                # 调用方已取消
                continue

            waited = 0.0
            while True:
                wait = self._wait_time(self._clock())
                if wait <= 0:
                    break
                waited += wait
                await self._sleep(wait)
            metrics.limiter_wait_seconds.labels(limiter=self.name).observe(waited)

            now = self._clock()
            self._last_dispatch = now
            self._window.append(now)

            try:
                result = await task()
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)

            if self.buffer:
                await self._sleep(self.buffer)
