"""
进程级服务装配：同一进程内共享限流器、HTTP session 与在途分析表。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from houndmaster.log import get_logger
from houndmaster.services.contract_analyzer import ContractAnalyzer
from houndmaster.services.coordinator import AnalysisCoordinator
from houndmaster.services.listing_fetcher import ListingFetcher
from houndmaster.services.verification_store import VerificationStore
from houndmaster.services.website_analyzer import WebsiteAnalyzer
from houndmaster.sources.onchain import OnChainReader

logger = get_logger(__name__)


@dataclass
class Services:
    listings: ListingFetcher
    verification: VerificationStore
    contract_analyzer: ContractAnalyzer
    website_analyzer: WebsiteAnalyzer
    coordinator: AnalysisCoordinator

    @classmethod
    def from_settings(cls) -> "Services":
        verification = VerificationStore.from_settings()
        contract_analyzer = ContractAnalyzer(verification, OnChainReader.from_settings())
        website_analyzer = WebsiteAnalyzer.from_settings()
        return cls(
            listings=ListingFetcher.from_settings(),
            verification=verification,
            contract_analyzer=contract_analyzer,
            website_analyzer=website_analyzer,
            coordinator=AnalysisCoordinator(contract_analyzer, website_analyzer),
        )

    async def close(self) -> None:
        await self.listings.client.close()
        await self.verification.explorer.close()


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = Services.from_settings()
        logger.info("服务已装配")
    return _services


async def shutdown_services() -> None:
    global _services
    if _services is not None:
        await _services.close()
        _services = None
