"""
分析协调：每个合约并发跑 ContractAnalyzer 与（有网址时）WebsiteAnalyzer，合并结果。

- 在途去重：同一 (address, chain) 已在分析时，后来的请求等待同一个 Future，
  不会重复派发 ContractAnalyzer；这是协作式去重，不是锁
- 单合约整体期限 per_contract_timeout_seconds，超时返回低置信度结果并清理在途记录
- 批量分析的状态（AnalysisBatch）按请求创建，结束后随响应丢弃
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from config.settings import settings
from houndmaster.chains import Chain, normalize_address
from houndmaster.log import get_logger
from houndmaster.observability import metrics, tracer
from houndmaster.services.contract_analyzer import ContractAnalyzer, MintAnalysisResult
from houndmaster.services.website_analyzer import WebsiteAnalysisResult, WebsiteAnalyzer

logger = get_logger(__name__)

_Key = Tuple[str, str]


@dataclass
class AnalysisOutcome:
    address: str
    chain: Chain
    contract_analysis: MintAnalysisResult
    website_analysis: Optional[WebsiteAnalysisResult] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"contractAnalysis": self.contract_analysis.to_dict()}
        if self.website_analysis is not None:
            out["websiteAnalysis"] = self.website_analysis.to_dict()
        return out


@dataclass
class AnalysisBatch:
    chain: Chain
    addresses: list
    website_urls: Dict[str, str] = field(default_factory=dict)
    results: Dict[str, AnalysisOutcome] = field(default_factory=dict)
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain": self.chain.value,
            "results": {addr: outcome.to_dict() for addr, outcome in self.results.items()},
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
        }


class AnalysisCoordinator:
    def __init__(
        self,
        contract_analyzer: ContractAnalyzer,
        website_analyzer: WebsiteAnalyzer,
        timeout_seconds: Optional[float] = None,
    ):
        self.contract_analyzer = contract_analyzer
        self.website_analyzer = website_analyzer
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.analysis.per_contract_timeout_seconds
        )
        self._inflight: Dict[_Key, asyncio.Future] = {}

    @staticmethod
    def _key(address: str, chain: Chain) -> _Key:
        return normalize_address(address), chain.value

    def is_analyzing(self, address: str, chain: Chain) -> bool:
        return self._key(address, chain) in self._inflight

    async def analyze(self, address: str, chain: Chain, website_url: Optional[str] = None) -> AnalysisOutcome:
        key = self._key(address, chain)

        inflight = self._inflight.get(key)
        if inflight is not None:
            logger.debug(f"[coordinator] 等待在途分析: {key[0]}@{key[1]}")
            return await asyncio.shield(inflight)

        loop = asyncio.get_running_loop()
        fut: asyncio.Future = loop.create_future()
        self._inflight[key] = fut
        metrics.analysis_inflight.inc()

        try:
            try:
                outcome = await asyncio.wait_for(self._run(key[0], chain, website_url), self.timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning(f"[coordinator] 分析超时 ({self.timeout_seconds}s): {key[0]}@{key[1]}")
                metrics.analysis_total.labels(outcome="timeout", confidence="low").inc()
                outcome = AnalysisOutcome(
                    address=key[0],
                    chain=chain,
                    contract_analysis=MintAnalysisResult.low(
                        f"Analysis timed out after {self.timeout_seconds:g} seconds"
                    ),
                    website_analysis=WebsiteAnalysisResult.failed(website_url) if website_url else None,
                )
            if not fut.done():
                fut.set_result(outcome)
            return outcome
        except asyncio.CancelledError:
            fut.cancel()
            raise
        except Exception as e:
            if not fut.done():
                fut.set_exception(e)
                # 没有等待者时避免 "exception was never retrieved"
                fut.exception()
            raise
        finally:
            self._inflight.pop(key, None)
            metrics.analysis_inflight.dec()

    async def _run(self, address: str, chain: Chain, website_url: Optional[str]) -> AnalysisOutcome:
        with tracer.start_as_current_span("coordinator.analyze") as span:
            span.set_attribute("contract.address", address)
            span.set_attribute("contract.chain", chain.value)

            jobs = [self.contract_analyzer.analyze(address, chain)]
            if website_url:
                jobs.append(self.website_analyzer.analyze(address, chain, website_url))
            settled = await asyncio.gather(*jobs, return_exceptions=True)

            contract = settled[0]
            if isinstance(contract, Exception):
                logger.warning(f"[coordinator] 合约分析异常: {address}@{chain.value} - {contract}")
                contract = MintAnalysisResult.low(f"Contract analysis failed: {contract}")

            website = settled[1] if website_url else None
            if isinstance(website, Exception):
                logger.warning(f"[coordinator] 网站分析异常: {website_url} - {website}")
                website = WebsiteAnalysisResult.failed(website_url)

            return AnalysisOutcome(address, chain, contract, website)

    async def analyze_all(
        self,
        addresses: Iterable[str],
        chain: Chain,
        website_urls: Optional[Dict[str, str]] = None,
    ) -> AnalysisBatch:
        unique = list(dict.fromkeys(normalize_address(a) for a in addresses))
        urls = {normalize_address(k): v for k, v in (website_urls or {}).items() if v}
        batch = AnalysisBatch(chain=chain, addresses=unique, website_urls=urls)

        async def _one(address: str) -> None:
            batch.results[address] = await self.analyze(address, chain, urls.get(address))

        settled = await asyncio.gather(*(_one(a) for a in unique), return_exceptions=True)
        for address, outcome in zip(unique, settled):
            if isinstance(outcome, Exception):
                logger.warning(f"[coordinator] {address}@{chain.value} 分析失败: {outcome}")
                batch.results[address] = AnalysisOutcome(
                    address, chain, MintAnalysisResult.low(f"Analysis failed: {outcome}")
                )
        batch.finished_at = time.time()
        logger.info(f"[coordinator] 批量分析完成: {len(batch.results)} 个合约 ({chain.value})")
        return batch
