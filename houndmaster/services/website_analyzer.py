"""
项目网站分析：抓取 → LLM 总结 → 按 (address, chain) 插入或更新。

缓存策略：已有记录且距 analyzed_at 不足 ttl_hours（默认 24h）、网址未变时原样返回；
否则重新抓取并覆盖该行。抓取或解析失败返回固定的低置信度结果，不抛给调用方，
也不写库（下次请求会重试）；抓取成功但没有正文时写入 "no content" 结果。
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from config.settings import settings
from houndmaster.chains import Chain, normalize_address
from houndmaster.db.models import WebsiteAnalysis, parse_iso
from houndmaster.db.repository import WebsiteAnalysisRepository
from houndmaster.errors import LLMCallError, ScrapeError
from houndmaster.llm.completion import LLMCompleter
from houndmaster.log import get_logger
from houndmaster.observability import metrics, tracer
from houndmaster.sources.website_scraper import WebsiteScraper
from houndmaster.utils.json_utils import parse_json_object
from houndmaster.utils.prompt_manager import PromptManager

logger = get_logger(__name__)

AVAILABLE_SERVICES = [
    "Smart Contract Development",
    "Web3 Design and UX",
    "Full Stack Development for dApps",
    "Design Sprints",
    "Community Management",
    "DAO Setup and Consulting",
    "Content Creation",
    "Tokenomics Design",
]

_PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}
_MARKDOWN_EMPHASIS = re.compile(r"[*_]")


@dataclass
class WebsiteAnalysisResult:
    description: str
    roadmap: Optional[str]
    services_text: str
    confidence: str
    website_url: str = ""
    source_urls: List[str] = field(default_factory=list)
    analyzed_at: Optional[str] = None
    cached: bool = False

    @classmethod
    def no_content(cls, url: str, source_urls: Optional[List[str]] = None) -> "WebsiteAnalysisResult":
        return cls(
            description="No content available for analysis",
            roadmap=None,
            services_text="Unable to analyze without content",
            confidence="low",
            website_url=url,
            source_urls=list(source_urls or []),
        )

    @classmethod
    def failed(cls, url: str) -> "WebsiteAnalysisResult":
        return cls(
            description="Failed to analyze content",
            roadmap=None,
            services_text="Analysis failed",
            confidence="low",
            website_url=url,
        )

    @classmethod
    def from_row(cls, row: WebsiteAnalysis) -> "WebsiteAnalysisResult":
        return cls(
            description=row.description,
            roadmap=row.roadmap or None,
            services_text=row.services_analysis,
            confidence=row.confidence,
            website_url=row.website_url,
            source_urls=row.get_source_urls(),
            analyzed_at=row.analyzed_at,
            cached=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "roadmap": self.roadmap,
            "servicesText": self.services_text,
            "confidence": self.confidence,
            "websiteUrl": self.website_url,
            "sourceUrls": self.source_urls,
            "analyzedAt": self.analyzed_at,
            "cached": self.cached,
        }


def strip_emphasis(text: Optional[str]) -> Optional[str]:
    return _MARKDOWN_EMPHASIS.sub("", text) if text else text


def format_services(services: Any) -> str:
    """按 high → medium → low 排序，每项 "**name**: details"，空行分隔"""
    items = [s for s in services or [] if isinstance(s, dict) and s.get("name")]
    if not items:
        return "No services recommended"
    items.sort(key=lambda s: _PRIORITY_RANK.get(str(s.get("priority", "")).lower(), len(_PRIORITY_RANK)))
    return "\n\n".join(f"**{s['name']}**: {s.get('details', '')}" for s in items)


def _confidence(value: Any) -> str:
    v = str(value or "").strip().lower()
    return v if v in _PRIORITY_RANK else "low"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebsiteAnalyzer:
    def __init__(
        self,
        scraper: WebsiteScraper,
        repository: Optional[WebsiteAnalysisRepository] = None,
        llm: Optional[LLMCompleter] = None,
        prompts: Optional[PromptManager] = None,
        ttl_hours: Optional[float] = None,
        max_content_chars: Optional[int] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.scraper = scraper
        self.repository = repository or WebsiteAnalysisRepository()
        self.llm = llm or LLMCompleter()
        self.prompts = prompts or PromptManager()
        self.ttl = timedelta(hours=ttl_hours if ttl_hours is not None else settings.website_analysis.ttl_hours)
        self.max_content_chars = max_content_chars or settings.website_analysis.max_content_chars
        self._now = now

    @classmethod
    def from_settings(cls) -> "WebsiteAnalyzer":
        return cls(WebsiteScraper.from_settings())

    def is_fresh(self, row: WebsiteAnalysis, url: str) -> bool:
        analyzed = parse_iso(row.analyzed_at)
        if analyzed is None or row.website_url != url:
            return False
        return self._now() - analyzed < self.ttl

    async def analyze(self, address: str, chain: Chain, url: str) -> WebsiteAnalysisResult:
        address = normalize_address(address)
        url = url.strip()
        with tracer.start_as_current_span("website_analyzer.analyze") as span:
            span.set_attribute("contract.address", address)
            span.set_attribute("website.url", url)

            row = await asyncio.to_thread(self.repository.get, address, chain.value)
            if row is not None and self.is_fresh(row, url):
                metrics.website_cache_total.labels(result="hit").inc()
                logger.debug(f"[website] 缓存命中: {address}@{chain.value} ({row.analyzed_at})")
                return WebsiteAnalysisResult.from_row(row)
            metrics.website_cache_total.labels(result="miss").inc()

            try:
                scraped = await self.scraper.scrape(url)
            except ScrapeError as e:
                metrics.website_scrape_total.labels(success="false").inc()
                logger.warning(f"[website] 抓取失败: {url} - {e}")
                return WebsiteAnalysisResult.failed(url)
            metrics.website_scrape_total.labels(success="true").inc()

            if not scraped.content.strip():
                result = WebsiteAnalysisResult.no_content(url, scraped.urls)
                await self._persist(address, chain, result, "")
                return result

            result = await self._summarize(url, scraped.content)
            if result is None:
                return WebsiteAnalysisResult.failed(url)
            result.source_urls = list(scraped.urls)
            await self._persist(address, chain, result, scraped.content)
            return result

    async def _summarize(self, url: str, content: str) -> Optional[WebsiteAnalysisResult]:
        if len(content) > self.max_content_chars:
            content = content[: self.max_content_chars]
        prompt = self.prompts.render(
            "website_analysis.txt",
            available_services="\n".join(f"- {s}" for s in AVAILABLE_SERVICES),
            content=content,
        )
        try:
            text = await self.llm.complete(prompt)
            data = parse_json_object(text)
        except LLMCallError as e:
            logger.warning(f"[website] LLM 调用失败: {url} - {e}")
            return None
        except ValueError as e:
            logger.warning(f"[website] LLM 响应无法解析: {url} - {e}")
            return None

        roadmap = data.get("roadmap")
        return WebsiteAnalysisResult(
            description=strip_emphasis(str(data.get("project_description") or "")),
            roadmap=strip_emphasis(str(roadmap)) if roadmap else None,
            services_text=format_services(data.get("services")),
            confidence=_confidence(data.get("confidence")),
            website_url=url,
        )

    async def _persist(self, address: str, chain: Chain, result: WebsiteAnalysisResult, raw: str) -> None:
        result.analyzed_at = self._now().isoformat()
        row = WebsiteAnalysis(
            address=address,
            chain=chain.value,
            website_url=result.website_url,
            description=result.description,
            roadmap=result.roadmap or "",
            services_analysis=result.services_text,
            confidence=result.confidence,
            source_urls=json.dumps(result.source_urls),
            raw_content=raw,
            analyzed_at=result.analyzed_at,
        )
        await asyncio.to_thread(self.repository.upsert, row)
        logger.info(f"[website] 已保存分析: {address}@{chain.value} ({result.confidence})")
