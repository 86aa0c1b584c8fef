"""
支持的链与边界校验。

Chain 是封闭枚举；所有外部输入（API 请求、脚本参数）都必须经过 parse_chain，
不合法的值以 InvalidChainError（4xx）拒绝，而不是在内部查表时崩溃。
"""

import re
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from houndmaster.errors import InvalidChainError


class Chain(str, Enum):
    ETHEREUM = "ethereum"
    BASE = "base"
    APECHAIN = "apechain"
    ABSTRACT = "abstract"
    POLYGON = "polygon"
    ARBITRUM = "arbitrum"


NATIVE_TOKENS = {
    Chain.ETHEREUM: "ETH",
    Chain.BASE: "ETH",
    Chain.ABSTRACT: "ETH",
    Chain.ARBITRUM: "ETH",
    Chain.APECHAIN: "APE",
    Chain.POLYGON: "MATIC",
}

NATIVE_DECIMALS = 18

# 面向用户的浏览器页面（非 API 域名）
_EXPLORER_SITES = {
    Chain.ETHEREUM: "https://etherscan.io",
    Chain.BASE: "https://basescan.org",
    Chain.ARBITRUM: "https://arbiscan.io",
    Chain.POLYGON: "https://polygonscan.com",
    Chain.APECHAIN: "https://apescan.io",
    Chain.ABSTRACT: "https://abscan.org",
}

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def parse_chain(value: Any) -> Chain:
    if isinstance(value, Chain):
        return value
    if not isinstance(value, str):
        raise InvalidChainError(value)
    try:
        return Chain(value.strip().lower())
    except ValueError:
        raise InvalidChainError(value) from None


def native_token(chain: Chain) -> str:
    return NATIVE_TOKENS[chain]


def address_url(chain: Chain, address: str) -> str:
    return f"{_EXPLORER_SITES[chain]}/address/{address}"


def is_valid_address(value: Any) -> bool:
    return isinstance(value, str) and bool(ADDRESS_RE.match(value))


def normalize_address(address: str) -> str:
    """缓存键统一使用小写地址，避免同一合约因大小写不同生成两行"""
    return address.strip().lower()


def is_valid_external_url(value: Any) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
