"""
Magic Eden 集合列表 API（v3 rtp collections/v7）。

按 updatedAt 倒序分页，continuation 为游标；所有请求共享一个 2 req/s、600ms 间隔的限流器。
单个集合字段不合法时只跳过该条，不影响同页其它集合。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pydantic

from config.settings import settings
from houndmaster.chains import Chain
from houndmaster.errors import UpstreamError
from houndmaster.log import get_logger
from houndmaster.sources.http import RateLimitedClient
from houndmaster.sources.schemas import Collection, CollectionPage
from houndmaster.utils.limiter import RateLimiter

logger = get_logger(__name__)


class MagicEdenClient(RateLimitedClient):
    service = "marketplace"

    def __init__(self, limiter: RateLimiter, base_url: str, api_key: str = "", **kwargs: Any):
        super().__init__(limiter, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    @classmethod
    def from_settings(cls) -> "MagicEdenClient":
        cfg = settings.listing
        limiter = RateLimiter("marketplace", cfg.max_per_second, cfg.min_interval_ms)
        return cls(
            limiter,
            base_url=cfg.base_url,
            api_key=cfg.api_key,
            max_retries=cfg.max_retries,
            backoff_multiplier=cfg.backoff_multiplier,
            timeout_seconds=cfg.request_timeout_seconds,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def fetch_page(
        self,
        chain: Chain,
        limit: int,
        min_floor_price: float,
        continuation: Optional[str] = None,
    ) -> CollectionPage:
        params: Dict[str, Any] = {
            "sortBy": "updatedAt",
            "sortDirection": "desc",
            "limit": limit,
            "minFloorAskPrice": min_floor_price,
            "includeMintStages": "true",
        }
        if continuation:
            params["continuation"] = continuation

        url = f"{self.base_url}/{chain.value}/collections/v7"
        data = await self._get_json(url, params, self._headers())
        if not isinstance(data, dict):
            raise UpstreamError(self.service, f"unexpected payload type {type(data).__name__}")
        page = self._parse_page(data, chain)
        logger.debug(f"[marketplace] {chain.value} 页面 {len(page.collections)} 条, continuation={bool(page.continuation)}")
        return page

    def _parse_page(self, data: Dict[str, Any], chain: Chain) -> CollectionPage:
        raw = data.get("collections")
        collections: List[Collection] = []
        skipped = 0
        for item in raw if isinstance(raw, list) else []:
            try:
                collections.append(Collection.model_validate(item))
            except pydantic.ValidationError as e:
                skipped += 1
                cid = item.get("id") if isinstance(item, dict) else None
                logger.warning(
                    f"[marketplace] {chain.value} 跳过不合法集合 {cid or '<no id>'}: {e.error_count()} 个字段错误"
                )
        if skipped:
            logger.info(f"[marketplace] {chain.value} 本页跳过 {skipped} 条不合法集合")

        try:
            return CollectionPage(collections=collections, continuation=data.get("continuation"))
        except pydantic.ValidationError as e:
            raise UpstreamError(self.service, f"malformed page: {e.error_count()} validation errors") from e
