"""
WebsiteAnalyzer: 24h 缓存、过期重抓并覆盖、无正文/抓取失败/解析失败的降级结果。
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

from houndmaster.chains import Chain
from houndmaster.db.models import WebsiteAnalysis
from houndmaster.db.repository import WebsiteAnalysisRepository
from houndmaster.errors import ScrapeError
from houndmaster.services.website_analyzer import WebsiteAnalyzer, format_services, strip_emphasis
from houndmaster.sources.website_scraper import ScrapeResult

from conftest import ADDR_A, SequentialCompleter

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
URL = "https://project.xyz"

LLM_JSON = json.dumps({
    "project_description": "A **generative** art _collection_.",
    "roadmap": "Phase 2: *game*",
    "services": [
        {"name": "Community Management", "priority": "low", "details": "grow discord"},
        {"name": "Tokenomics Design", "priority": "high", "details": "token launch"},
        {"name": "Content Creation", "priority": "medium", "details": "blog"},
    ],
    "confidence": "medium",
})


class _FakeScraper:
    def __init__(self, content="=== Content from https://project.xyz ===\nWe build art.", error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def scrape(self, url):
        self.calls.append(url)
        if self.error:
            raise self.error
        return ScrapeResult(content=self.content, urls=[url])


def _analyzer(engine, scraper, responses):
    llm = SequentialCompleter(responses)
    analyzer = WebsiteAnalyzer(
        scraper, WebsiteAnalysisRepository(engine), llm=llm, ttl_hours=24, max_content_chars=50000, now=lambda: NOW
    )
    return analyzer, llm


def _seed(engine, analyzed_at, url=URL):
    WebsiteAnalysisRepository(engine).upsert(WebsiteAnalysis(
        address=ADDR_A,
        chain="ethereum",
        website_url=url,
        description="cached description",
        services_analysis="**Design Sprints**: old",
        confidence="high",
        source_urls=json.dumps([url]),
        analyzed_at=analyzed_at.isoformat(),
    ))


class TestCache:
    def test_fresh_row_is_returned_without_scraping(self, engine):
        _seed(engine, NOW - timedelta(hours=1))
        scraper = _FakeScraper()
        analyzer, llm = _analyzer(engine, scraper, [])
        result = asyncio.run(analyzer.analyze(ADDR_A, Chain.ETHEREUM, URL))

        assert result.cached is True
        assert result.description == "cached description"
        assert scraper.calls == []
        assert llm.prompts == []

    def test_stale_row_is_rescraped_and_overwritten(self, engine):
        _seed(engine, NOW - timedelta(hours=25))
        scraper = _FakeScraper()
        analyzer, _ = _analyzer(engine, scraper, [LLM_JSON])
        result = asyncio.run(analyzer.analyze(ADDR_A, Chain.ETHEREUM, URL))

        assert scraper.calls == [URL]
        assert result.cached is False
        row = WebsiteAnalysisRepository(engine).get(ADDR_A, "ethereum")
        assert row.description == "A generative art collection."
        assert row.analyzed_at == NOW.isoformat()

    def test_changed_url_bypasses_cache(self, engine):
        _seed(engine, NOW - timedelta(hours=1), url="https://old.xyz")
        scraper = _FakeScraper()
        analyzer, _ = _analyzer(engine, scraper, [LLM_JSON])
        asyncio.run(analyzer.analyze(ADDR_A, Chain.ETHEREUM, URL))
        assert scraper.calls == [URL]
        assert WebsiteAnalysisRepository(engine).get(ADDR_A, "ethereum").website_url == URL


class TestSummarize:
    def test_services_sorted_and_emphasis_stripped(self, engine):
        analyzer, llm = _analyzer(engine, _FakeScraper(), [LLM_JSON])
        result = asyncio.run(analyzer.analyze(ADDR_A, Chain.ETHEREUM, URL))

        assert result.confidence == "medium"
        assert result.roadmap == "Phase 2: game"
        assert result.services_text.index("Tokenomics") < result.services_text.index("Content")
        assert result.services_text.index("Content") < result.services_text.index("Community")
        assert "We build art." in llm.prompts[0]
        assert result.to_dict()["sourceUrls"] == [URL]

    def test_empty_content_persists_no_content_result(self, engine):
        analyzer, llm = _analyzer(engine, _FakeScraper(content="  "), [])
        result = asyncio.run(analyzer.analyze(ADDR_A, Chain.ETHEREUM, URL))

        assert result.description == "No content available for analysis"
        assert result.confidence == "low"
        assert llm.prompts == []
        assert WebsiteAnalysisRepository(engine).get(ADDR_A, "ethereum") is not None

    def test_unparseable_llm_output_is_failed_and_not_saved(self, engine):
        analyzer, _ = _analyzer(engine, _FakeScraper(), ["Sure! Here is my analysis..."])
        result = asyncio.run(analyzer.analyze(ADDR_A, Chain.ETHEREUM, URL))

        assert result.description == "Failed to analyze content"
        assert result.services_text == "Analysis failed"
        assert WebsiteAnalysisRepository(engine).get(ADDR_A, "ethereum") is None

    def test_scrape_error_is_failed(self, engine):
        scraper = _FakeScraper(error=ScrapeError("net::ERR_NAME_NOT_RESOLVED"))
        analyzer, _ = _analyzer(engine, scraper, [])
        result = asyncio.run(analyzer.analyze(ADDR_A, Chain.ETHEREUM, URL))
        assert result.confidence == "low"
        assert result.description == "Failed to analyze content"


class TestFormatting:
    def test_format_services_empty(self):
        assert format_services([]) == "No services recommended"
        assert format_services(None) == "No services recommended"

    def test_format_services_unknown_priority_last(self):
        text = format_services([
            {"name": "B", "priority": "urgent", "details": "x"},
            {"name": "A", "priority": "LOW", "details": "y"},
        ])
        assert text == "**A**: y\n\n**B**: x"

    def test_strip_emphasis(self):
        assert strip_emphasis("**bold** and _it_") == "bold and it"
        assert strip_emphasis(None) is None
