"""
链上读取：view 函数调用与事件日志查询（web3.py AsyncWeb3 + JSON-RPC）。

- find_supply_function: 按命名启发式从 ABI 中挑选供应量函数
- read_supply: 调用挑中的函数，失败返回 None
- get_mint_events: 对固定的 mint / transfer / sale 事件签名逐个查 0..latest，
  单个签名失败只记日志，不影响其它签名
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp
from web3 import AsyncWeb3, Web3
from web3.providers import AsyncHTTPProvider

from config.settings import settings
from houndmaster.chains import ZERO_ADDRESS, Chain
from houndmaster.log import get_logger

logger = get_logger(__name__)

SUPPLY_NAME_RE = re.compile(r"^(?:total|max|_max|_total)?supply$", re.IGNORECASE)
SUPPLY_PRIORITY = ["totalSupply", "maxSupply", "_maxSupply", "supply"]


@dataclass(frozen=True)
class EventSignature:
    name: str
    signature: str
    # 额外的 indexed topic 过滤（位于 topic0 之后）
    topic_filters: tuple = ()

    @property
    def topic0(self) -> str:
        return Web3.to_hex(Web3.keccak(text=self.signature))


_ZERO_TOPIC = "0x" + ZERO_ADDRESS[2:].rjust(64, "0")

MINT_EVENT_CATALOGUE: List[EventSignature] = [
    # ERC-721 Transfer 且 from == 0x0 即 mint
    EventSignature("Transfer", "Transfer(address,address,uint256)", (_ZERO_TOPIC,)),
    EventSignature("Mint", "Mint(address,uint256)"),
    EventSignature("MintedNFT", "MintedNFT(address,uint256,uint256)"),
    EventSignature("Sale", "Sale(address,uint256,uint256)"),
    EventSignature("Purchase", "Purchase(address,uint256,uint256)"),
    EventSignature("TokensPurchased", "TokensPurchased(address,uint256,uint256)"),
    EventSignature("TokensMinted", "TokensMinted(address,uint256)"),
    # ERC-2309 批量 mint
    EventSignature("ConsecutiveTransfer", "ConsecutiveTransfer(uint256,uint256,address,address)"),
]


def find_supply_function(abi: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    view、无入参、单个 uint256 返回值，且名称匹配 (total|max|_max|_total)?supply；
    按 totalSupply > maxSupply > _maxSupply > supply 取第一个，其余同名变体排在后面。
    """
    candidates = [
        item for item in abi or []
        if isinstance(item, dict)
        and item.get("type") == "function"
        and item.get("stateMutability") == "view"
        and not item.get("inputs")
        and len(item.get("outputs") or []) == 1
        and (item["outputs"][0] or {}).get("type") == "uint256"
        and SUPPLY_NAME_RE.match(item.get("name") or "")
    ]

    def _rank(item: Dict[str, Any]) -> int:
        name = item.get("name")
        return SUPPLY_PRIORITY.index(name) if name in SUPPLY_PRIORITY else len(SUPPLY_PRIORITY)

    candidates.sort(key=_rank)
    return candidates[0] if candidates else None


def _hex(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return value


def serialize_log(event_name: str, log: Any) -> Dict[str, Any]:
    """AttributeDict / HexBytes → 可 JSON 序列化的 dict（供 LLM 提示词使用）"""
    return {
        "event": event_name,
        "blockNumber": log.get("blockNumber"),
        "transactionHash": _hex(log.get("transactionHash")),
        "logIndex": log.get("logIndex"),
        "topics": [_hex(t) for t in log.get("topics") or []],
        "data": _hex(log.get("data")),
    }


class OnChainReader:
    def __init__(self, rpc_urls: Dict[str, str], timeout_seconds: float = 30):
        self.rpc_urls = dict(rpc_urls)
        self.timeout_seconds = timeout_seconds
        self._clients: Dict[str, AsyncWeb3] = {}

    @classmethod
    def from_settings(cls) -> "OnChainReader":
        return cls(settings.rpc.urls, timeout_seconds=settings.rpc.request_timeout_seconds)

    def _w3(self, chain: Chain) -> AsyncWeb3:
        if chain.value not in self._clients:
            url = self.rpc_urls.get(chain.value)
            if not url:
                raise ValueError(f"no RPC endpoint configured for chain {chain.value}")
            self._clients[chain.value] = AsyncWeb3(AsyncHTTPProvider(
                url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=self.timeout_seconds)},
            ))
        return self._clients[chain.value]

    async def read_supply(self, address: str, chain: Chain, abi: List[Dict[str, Any]]) -> Optional[int]:
        fn = find_supply_function(abi)
        if fn is None:
            logger.debug(f"[onchain] {address} ABI 中没有供应量函数")
            return None
        w3 = self._w3(chain)
        try:
            contract = w3.eth.contract(address=Web3.to_checksum_address(address), abi=[fn])
            value = await getattr(contract.functions, fn["name"])().call()
        except Exception as e:
            logger.warning(f"[onchain] 读取 {fn['name']} 失败: {address}@{chain.value} - {e}")
            return None
        return int(value)

    async def _logs_for(self, w3: AsyncWeb3, address: str, event: EventSignature) -> List[Dict[str, Any]]:
        try:
            logs = await w3.eth.get_logs({
                "address": address,
                "fromBlock": 0,
                "toBlock": "latest",
                "topics": [event.topic0, *event.topic_filters],
            })
        except Exception as e:
            logger.debug(f"[onchain] get_logs {event.name} 失败: {address} - {e}")
            return []
        return [serialize_log(event.name, log) for log in logs]

    async def get_mint_events(self, address: str, chain: Chain) -> List[Dict[str, Any]]:
        w3 = self._w3(chain)
        checksum = Web3.to_checksum_address(address)
        batches = await asyncio.gather(*(self._logs_for(w3, checksum, ev) for ev in MINT_EVENT_CATALOGUE))
        events = [e for batch in batches for e in batch]
        logger.info(f"[onchain] {address}@{chain.value} 共 {len(events)} 条 mint 相关事件")
        return events
