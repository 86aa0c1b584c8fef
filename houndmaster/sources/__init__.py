"""
外部能力客户端：集合列表、区块浏览器、链上读取、网站抓取。
"""

from houndmaster.sources.block_explorer import BlockExplorerClient
from houndmaster.sources.marketplace import MagicEdenClient
from houndmaster.sources.onchain import OnChainReader, find_supply_function
from houndmaster.sources.website_scraper import ScrapeResult, WebsiteScraper

__all__ = [
    "BlockExplorerClient",
    "MagicEdenClient",
    "OnChainReader",
    "ScrapeResult",
    "WebsiteScraper",
    "find_supply_function",
]
