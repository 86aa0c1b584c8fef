"""
ListingFetcher: 流动性筛选、提前停止、上游失败返回部分结果、按部署时间分桶。
"""

import asyncio
from datetime import datetime, timezone

import pytest

from houndmaster.chains import Chain
from houndmaster.errors import UpstreamError
from houndmaster.services.listing_fetcher import (
    FilterConfig,
    ListingFetcher,
    months_ago,
    partition_by_age,
    passes_filters,
)
from houndmaster.sources.marketplace import MagicEdenClient
from houndmaster.sources.schemas import Collection, CollectionPage
from houndmaster.utils.limiter import RateLimiter

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def _collection(cid, deployed="2025-05-01T00:00:00Z", weekly=5.0, all_time=10.0, stages=None):
    return Collection.model_validate({
        "id": cid,
        "name": f"Collection {cid}",
        "contractDeployedAt": deployed,
        "volume": {"7day": weekly, "allTime": all_time},
        "mintStages": stages or [],
    })


class _FakeMarketplace:
    def __init__(self, pages, fail_at=None):
        self.pages = pages
        self.fail_at = fail_at
        self.requests = []

    async def fetch_page(self, chain, limit, min_floor_price, continuation=None):
        index = len(self.requests)
        self.requests.append(continuation)
        if self.fail_at is not None and index == self.fail_at:
            raise UpstreamError("marketplace", "HTTP 500: boom", status=500)
        return self.pages[index]


def _page(collections, continuation):
    return CollectionPage(collections=collections, continuation=continuation)


class TestFilters:
    def test_zero_weekly_volume_excluded(self):
        assert not passes_filters(_collection("x", weekly=0), FilterConfig())

    def test_all_time_volume_below_one_excluded(self):
        assert not passes_filters(_collection("x", all_time=0.5), FilterConfig())

    def test_liquid_collection_kept(self):
        assert passes_filters(_collection("x"), FilterConfig())

    def test_mint_value_filter_off_by_default(self):
        c = _collection("x", stages=[{"price": {"amount": {"decimal": 0.001}}, "supply": 10}])
        assert passes_filters(c, FilterConfig())
        assert not passes_filters(c, FilterConfig(min_mint_value=10))

    def test_null_volume_fields_treated_as_zero(self):
        c = Collection.model_validate({"id": "n", "volume": {"7day": None, "allTime": None}})
        assert c.weekly_volume == 0
        assert not passes_filters(c, FilterConfig())


class TestPartition:
    def test_recent_and_old_are_disjoint_and_sorted(self):
        items = [
            _collection("old", deployed="2024-01-01T00:00:00Z"),
            _collection("new", deployed="2025-06-01T00:00:00Z"),
            _collection("mid", deployed="2025-03-01T00:00:00Z"),
            _collection("missing", deployed=None),
            _collection("garbage", deployed="not-a-date"),
        ]
        recent, old = partition_by_age(items, max_age_months=6, now=NOW)
        assert [c.id for c in recent] == ["new", "mid"]
        assert {c.id for c in old} == {"old", "missing", "garbage"}
        assert old[0].id == "old"

    def test_boundary_is_recent(self):
        cutoff = months_ago(NOW, 6)
        item = _collection("edge", deployed=cutoff.isoformat())
        recent, old = partition_by_age([item], max_age_months=6, now=NOW)
        assert [c.id for c in recent] == ["edge"]
        assert old == []

    def test_months_ago_clamps_month_end(self):
        assert months_ago(datetime(2025, 3, 31, tzinfo=timezone.utc), 1).day == 28
        assert months_ago(datetime(2025, 1, 15, tzinfo=timezone.utc), 2) == datetime(2024, 11, 15, tzinfo=timezone.utc)


class TestPagination:
    def test_stops_once_target_reached(self):
        market = _FakeMarketplace([
            _page([_collection("a"), _collection("b", weekly=0)], "c1"),
            _page([_collection("c"), _collection("d")], "c2"),
            _page([_collection("e")], "c3"),
        ])
        fetcher = ListingFetcher(market)
        result = asyncio.run(fetcher.fetch_collections(FilterConfig(min_total_collections=3), now=NOW))

        assert market.requests == [None, "c1"]
        assert len(result.recent) + len(result.old) == 3
        assert result.partial is False

    def test_stops_without_continuation(self):
        market = _FakeMarketplace([_page([_collection("a")], None)])
        result = asyncio.run(ListingFetcher(market).fetch_collections(FilterConfig(min_total_collections=50), now=NOW))
        assert market.requests == [None]
        assert [c.id for c in result.recent] == ["a"]

    def test_upstream_error_returns_partial(self):
        market = _FakeMarketplace([_page([_collection("a"), _collection("b")], "c1")], fail_at=1)
        result = asyncio.run(ListingFetcher(market).fetch_collections(FilterConfig(min_total_collections=50), now=NOW))
        assert result.partial is True
        assert {c.id for c in result.recent} == {"a", "b"}

    def test_to_dict_uses_collection_summary(self):
        market = _FakeMarketplace([_page([_collection("a")], None)])
        result = asyncio.run(ListingFetcher(market).fetch_collections(FilterConfig(chain=Chain.BASE), now=NOW))
        body = result.to_dict()
        assert body["recent"][0]["id"] == "a"
        assert body["old"] == []


def _raw(cid, **extra):
    body = {
        "id": cid,
        "name": f"Collection {cid}",
        "contractDeployedAt": "2025-05-01T00:00:00Z",
        "volume": {"7day": 5.0, "allTime": 10.0},
    }
    body.update(extra)
    return body


class _ScriptedMarketplace(MagicEdenClient):
    """_request_once 按脚本返回 (status, json)，不访问网络"""

    def __init__(self, payloads, clock):
        limiter = RateLimiter("marketplace-test", 2, 600, clock=clock, sleep=clock.sleep)
        super().__init__(limiter, base_url="https://api.example/v3/rtp", sleep=clock.sleep)
        self.payloads = list(payloads)

    async def _request_once(self, url, params, headers=None):
        return 200, self.payloads.pop(0)


class TestMalformedCollections:
    def test_invalid_collection_is_skipped(self, fake_clock):
        client = _ScriptedMarketplace(
            [{"collections": [_raw("a"), {"name": "no id here"}, _raw("b", volume="lots")], "continuation": "c1"}],
            fake_clock,
        )
        page = asyncio.run(client.fetch_page(Chain.ETHEREUM, 20, 0.1))
        assert [c.id for c in page.collections] == ["a"]
        assert page.continuation == "c1"

    def test_bad_continuation_becomes_upstream_error(self, fake_clock):
        client = _ScriptedMarketplace([{"collections": [_raw("a")], "continuation": {"next": 2}}], fake_clock)
        with pytest.raises(UpstreamError):
            asyncio.run(client.fetch_page(Chain.ETHEREUM, 20, 0.1))

    def test_malformed_entry_on_later_page_keeps_accumulated(self, fake_clock):
        client = _ScriptedMarketplace(
            [
                {"collections": [_raw("a")], "continuation": "c1"},
                {"collections": [{"name": "no id here"}, _raw("b")], "continuation": None},
            ],
            fake_clock,
        )
        result = asyncio.run(
            ListingFetcher(client).fetch_collections(FilterConfig(min_total_collections=50), now=NOW)
        )
        assert result.pages_fetched == 2
        assert result.partial is False
        assert {c.id for c in result.recent} == {"a", "b"}
