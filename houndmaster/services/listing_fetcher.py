"""
集合列表拉取：分页 + 流动性筛选 + 提前停止 + 按部署时间分桶。

筛选先于分桶，因此 recent / old 两个桶都只包含有成交的集合：
  - 7 日成交量 > 0
  - 历史成交量 >= 1
  - （可选）mint 总值 >= min_mint_value，默认关闭

分页在以下任一条件满足时停止：累计数达到 min_total_collections、
上游不再返回 continuation、页面为空、上游请求出错（返回已累计的部分结果）。
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from config.settings import settings
from houndmaster.chains import Chain, parse_chain
from houndmaster.errors import UpstreamError
from houndmaster.log import get_logger
from houndmaster.sources.marketplace import MagicEdenClient
from houndmaster.sources.schemas import Collection

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class FilterConfig:
    max_age_months: int = 6
    min_floor_price: float = 0.1
    min_total_collections: int = 200
    limit: int = 1000
    chain: Chain = Chain.ETHEREUM
    # 历史上存在过的 "significant minting" 过滤，默认不启用
    min_mint_value: Optional[float] = None

    @classmethod
    def from_settings(cls, overrides: Optional[Dict[str, Any]] = None) -> "FilterConfig":
        d = settings.listing.defaults
        o = overrides or {}
        mmv = o.get("min_mint_value")
        return cls(
            max_age_months=int(o.get("max_age_months", d.max_age_months)),
            min_floor_price=float(o.get("min_floor_price", d.min_floor_price)),
            min_total_collections=int(o.get("min_total_collections", d.min_total_collections)),
            limit=int(o.get("limit", d.limit)),
            chain=parse_chain(o.get("chain", d.chain)),
            min_mint_value=float(mmv) if mmv is not None else None,
        )


@dataclass
class ListingResult:
    recent: List[Collection] = field(default_factory=list)
    old: List[Collection] = field(default_factory=list)
    pages_fetched: int = 0
    partial: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recent": [c.summary() for c in self.recent],
            "old": [c.summary() for c in self.old],
        }


def months_ago(now: datetime, months: int) -> datetime:
    """日历月回退；目标月份天数不足时取月末（3/31 回退 1 个月 → 2/28 或 2/29）"""
    total = now.year * 12 + (now.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def passes_filters(collection: Collection, config: FilterConfig) -> bool:
    if collection.weekly_volume <= 0:
        return False
    if collection.all_time_volume < 1:
        return False
    if config.min_mint_value is not None and collection.mint_value() < config.min_mint_value:
        return False
    return True


def partition_by_age(
    collections: List[Collection], max_age_months: int, now: Optional[datetime] = None
) -> Tuple[List[Collection], List[Collection]]:
    """
    部署时间 >= 截止时间的为 recent（边界包含），其余（含缺失/无法解析）为 old；
    两个桶都按部署时间倒序。
    """
    now = now or datetime.now(timezone.utc)
    cutoff = months_ago(now, max_age_months)
    recent: List[Collection] = []
    old: List[Collection] = []
    for c in collections:
        deployed = c.deployed_at()
        if deployed is not None and deployed >= cutoff:
            recent.append(c)
        else:
            old.append(c)

    def _key(c: Collection) -> datetime:
        return c.deployed_at() or _EPOCH

    recent.sort(key=_key, reverse=True)
    old.sort(key=_key, reverse=True)
    return recent, old


class ListingFetcher:
    def __init__(self, client: MagicEdenClient):
        self.client = client

    @classmethod
    def from_settings(cls) -> "ListingFetcher":
        return cls(MagicEdenClient.from_settings())

    async def fetch_collections(self, config: FilterConfig, now: Optional[datetime] = None) -> ListingResult:
        accumulated: List[Collection] = []
        continuation: Optional[str] = None
        pages = 0
        partial = False

        while True:
            try:
                page = await self.client.fetch_page(
                    config.chain, config.limit, config.min_floor_price, continuation
                )
            except UpstreamError as e:
                logger.warning(
                    f"[listing] {config.chain.value} 第 {pages + 1} 页失败，返回已累计的 {len(accumulated)} 条: {e}"
                )
                partial = True
                break

            pages += 1
            kept = [c for c in page.collections if passes_filters(c, config)]
            accumulated.extend(kept)
            logger.debug(f"[listing] 第 {pages} 页: {len(page.collections)} 条，保留 {len(kept)}，累计 {len(accumulated)}")

            if len(accumulated) >= config.min_total_collections:
                break
            if not page.collections or not page.continuation:
                break
            continuation = page.continuation

        recent, old = partition_by_age(accumulated, config.max_age_months, now)
        logger.info(
            f"[listing] {config.chain.value}: {pages} 页，recent={len(recent)} old={len(old)}"
            + (" (部分结果)" if partial else "")
        )
        return ListingResult(recent=recent, old=old, pages_fetched=pages, partial=partial)
