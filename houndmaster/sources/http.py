"""
限流 HTTP 客户端基类（aiohttp）。

每次请求都经过 RateLimiter 派发；上游返回 429 时在限流器之外按
min_interval × backoff_multiplier 退避，再重新入队，最多 max_retries 次。
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import aiohttp

from houndmaster.errors import RateLimitedError, UpstreamError
from houndmaster.log import get_logger
from houndmaster.observability import metrics
from houndmaster.utils.limiter import RateLimiter

logger = get_logger(__name__)

RATE_LIMITED = 429


class RateLimitedClient:
    service = "upstream"

    def __init__(
        self,
        limiter: RateLimiter,
        max_retries: int = 3,
        backoff_multiplier: float = 4.0,
        timeout_seconds: float = 30,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.limiter = limiter
        self.max_retries = max(0, max_retries)
        self.backoff_multiplier = backoff_multiplier
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep
        self._session: Optional[aiohttp.ClientSession] = None

    # ── session ───────────────────────────────────────────────────

    async def _ensure_session(self) -> aiohttp.ClientSession:
        current_loop = asyncio.get_running_loop()
        if self._session and not self._session.closed:
            if getattr(self._session, "_loop", None) is current_loop:
                return self._session
            await self._session.close()
        self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_seconds))
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    # ── requests ──────────────────────────────────────────────────

    async def _request_once(
        self, url: str, params: Dict[str, Any], headers: Optional[Dict[str, str]] = None
    ) -> Tuple[int, Any]:
        """单次 GET；429 以状态码返回，其它非 2xx 与网络错误抛 UpstreamError"""
        session = await self._ensure_session()
        try:
            async with session.get(url, params=params, headers=headers) as resp:
                if resp.status == RATE_LIMITED:
                    return resp.status, None
                if resp.status >= 400:
                    text = await resp.text()
                    raise UpstreamError(self.service, f"HTTP {resp.status}: {text[:200]}", status=resp.status)
                return resp.status, await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamError(self.service, f"{type(e).__name__}: {e}") from e

    async def _get_json(self, url: str, params: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Any:
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                status, data = await self.limiter.schedule(lambda: self._request_once(url, params, headers))
            except UpstreamError:
                metrics.upstream_requests_total.labels(service=self.service, outcome="error").inc()
                raise
            if status != RATE_LIMITED:
                metrics.upstream_requests_total.labels(service=self.service, outcome="ok").inc()
                return data

            metrics.upstream_requests_total.labels(service=self.service, outcome="rate_limited").inc()
            metrics.rate_limited_total.labels(service=self.service).inc()
            if attempt + 1 < attempts:
                delay = self.limiter.min_interval * self.backoff_multiplier
                logger.warning(f"[{self.service}] HTTP 429，{delay:.2f}s 后重试 ({attempt + 1}/{self.max_retries})")
                await self._sleep(delay)
        raise RateLimitedError(self.service, attempts)
