from houndmaster.services.container import Services, get_services, shutdown_services
from houndmaster.services.contract_analyzer import ContractAnalyzer, MintAnalysisResult
from houndmaster.services.coordinator import AnalysisCoordinator, AnalysisOutcome
from houndmaster.services.listing_fetcher import FilterConfig, ListingFetcher, ListingResult
from houndmaster.services.verification_store import ContractData, VerificationStore
from houndmaster.services.website_analyzer import WebsiteAnalysisResult, WebsiteAnalyzer

__all__ = [
    "AnalysisCoordinator",
    "AnalysisOutcome",
    "ContractAnalyzer",
    "ContractData",
    "FilterConfig",
    "ListingFetcher",
    "ListingResult",
    "MintAnalysisResult",
    "Services",
    "VerificationStore",
    "WebsiteAnalysisResult",
    "WebsiteAnalyzer",
    "get_services",
    "shutdown_services",
]
