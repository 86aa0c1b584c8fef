"""
区块浏览器 API（Etherscan 家族：etherscan / basescan / arbiscan / polygonscan / apescan / abscan）。

协议统一为 GET {base}/api?module=...&action=...&apikey=...，响应 {status, message, result}。
status != "1" 或 {status: "0", message: "NOTOK", result: <错误文本>} 即失败，抛 BlockExplorerError，
调用方必须先判断再使用 result。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from config.settings import settings
from houndmaster.chains import Chain
from houndmaster.errors import BlockExplorerError
from houndmaster.log import get_logger
from houndmaster.sources.http import RateLimitedClient
from houndmaster.sources.schemas import ContractCreation, ExplorerEnvelope, SourceCodeResult
from houndmaster.utils.limiter import RateLimiter

logger = get_logger(__name__)


class BlockExplorerClient(RateLimitedClient):
    service = "explorer"

    def __init__(self, limiter: RateLimiter, base_urls: Dict[str, str], api_key: str = "", **kwargs: Any):
        super().__init__(limiter, **kwargs)
        self.base_urls = dict(base_urls)
        self.api_key = api_key

    @classmethod
    def from_settings(cls) -> "BlockExplorerClient":
        cfg = settings.explorer
        limiter = RateLimiter("explorer", cfg.max_per_second, cfg.min_interval_ms, buffer_ms=cfg.buffer_ms)
        if not cfg.api_key:
            logger.warning("ETHERSCAN_API_KEY 未配置，区块浏览器请求将以匿名额度运行")
        return cls(
            limiter,
            base_urls=cfg.base_urls,
            api_key=cfg.api_key,
            max_retries=cfg.max_retries,
            backoff_multiplier=cfg.backoff_multiplier,
            timeout_seconds=cfg.request_timeout_seconds,
        )

    def _url(self, chain: Chain) -> str:
        url = self.base_urls.get(chain.value)
        if not url:
            raise BlockExplorerError(f"no explorer configured for chain {chain.value}")
        return url

    async def _call(self, chain: Chain, params: Dict[str, str]) -> ExplorerEnvelope:
        query = {**params, "apikey": self.api_key}
        logger.debug(f"[explorer] {chain.value} {params.get('module')}.{params.get('action')}")
        data = await self._get_json(self._url(chain), query)
        if not isinstance(data, dict):
            raise BlockExplorerError("invalid response format", str(data)[:200])
        envelope = ExplorerEnvelope.model_validate(data)
        if not envelope.ok:
            raise BlockExplorerError(f"Block Explorer API Error ({envelope.message})", str(envelope.result))
        return envelope

    async def get_source_code(self, address: str, chain: Chain) -> SourceCodeResult:
        envelope = await self._call(chain, {"module": "contract", "action": "getsourcecode", "address": address})
        if not isinstance(envelope.result, list) or not envelope.result:
            raise BlockExplorerError("invalid response format from getsourcecode")
        return SourceCodeResult.model_validate(envelope.result[0])

    async def get_abi(self, address: str, chain: Chain) -> str:
        envelope = await self._call(chain, {"module": "contract", "action": "getabi", "address": address})
        if not isinstance(envelope.result, str):
            raise BlockExplorerError("invalid response format from getabi")
        return envelope.result

    async def get_contract_creation(self, address: str, chain: Chain) -> Optional[ContractCreation]:
        envelope = await self._call(
            chain, {"module": "contract", "action": "getcontractcreation", "contractaddresses": address}
        )
        rows: List[Any] = envelope.result if isinstance(envelope.result, list) else []
        return ContractCreation.model_validate(rows[0]) if rows else None

    async def get_balance(self, address: str, chain: Chain) -> str:
        """余额（wei 十进制字符串）"""
        envelope = await self._call(
            chain, {"module": "account", "action": "balance", "address": address, "tag": "latest"}
        )
        result = str(envelope.result)
        if not result.isdigit():
            raise BlockExplorerError("invalid balance result", result)
        return result
