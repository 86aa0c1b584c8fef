"""
合约验证数据的读穿缓存（source / ABI 持久化，balance 每次实时拉取）。

- 行不存在先建空行；source、ABI 缺失才请求区块浏览器，成功后写库，之后不再请求
- 三项拉取互相独立：任何一项失败只记日志、在结果中省略该字段
- 批量地址并发处理，底层 HTTP 仍经由同一个 RateLimiter 排队
- 数据库访问是同步 SQLModel 代码，统一放进 asyncio.to_thread
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from houndmaster.chains import Chain, address_url, normalize_address
from houndmaster.db.repository import ContractRepository
from houndmaster.log import get_logger
from houndmaster.sources.block_explorer import BlockExplorerClient
from houndmaster.sources.schemas import ContractCreation, is_abi_json

logger = get_logger(__name__)


@dataclass
class ContractData:
    address: str
    chain: Chain
    source_code: Optional[str] = None
    abi: Optional[str] = None
    balance: Optional[str] = None
    last_verified: Optional[str] = None
    constructor_arguments: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "address": self.address,
            "explorerUrl": address_url(self.chain, self.address),
        }
        if self.source_code is not None:
            out["sourceCode"] = self.source_code
        if self.abi is not None:
            out["abi"] = self.abi
        if self.balance is not None:
            out["balance"] = self.balance
        if self.last_verified is not None:
            out["lastVerified"] = self.last_verified
        return out


class VerificationStore:
    def __init__(self, explorer: BlockExplorerClient, repository: Optional[ContractRepository] = None):
        self.explorer = explorer
        self.repository = repository or ContractRepository()

    @classmethod
    def from_settings(cls) -> "VerificationStore":
        return cls(BlockExplorerClient.from_settings())

    # --------------------------------------------------------
    # 只读查询
    # --------------------------------------------------------

    def _read_cached(self, address: str, chain: Chain) -> ContractData:
        repo = self.repository
        data = ContractData(address=address, chain=chain)
        contract = repo.get_contract(address, chain.value)
        if contract is not None:
            data.last_verified = contract.verified_at
        source = repo.get_source(address, chain.value)
        if source is not None:
            data.source_code = source.source_code
            data.constructor_arguments = source.constructor_arguments
        abi = repo.get_abi(address, chain.value)
        if abi is not None:
            data.abi = abi.abi
        return data

    async def get_cached(self, address: str, chain: Chain) -> ContractData:
        """只读缓存，不触发任何上游请求"""
        return await asyncio.to_thread(self._read_cached, normalize_address(address), chain)

    # --------------------------------------------------------
    # 单项拉取（失败返回 None）
    # --------------------------------------------------------

    async def _fetch_source(self, address: str, chain: Chain) -> bool:
        try:
            result = await self.explorer.get_source_code(address, chain)
        except Exception as e:
            logger.warning(f"[verification] getsourcecode 失败: {address}@{chain.value} - {e}")
            return False
        if not result.is_verified:
            logger.info(f"[verification] 合约未验证: {address}@{chain.value}")
            return False
        try:
            await asyncio.to_thread(
                self.repository.save_source, address, chain.value, result.contract_metadata(), result.source_blob()
            )
        except Exception as e:
            logger.error(f"[verification] source 写库失败: {address}@{chain.value} - {e}")
            return False
        return True

    async def _fetch_abi(self, address: str, chain: Chain) -> bool:
        try:
            abi = await self.explorer.get_abi(address, chain)
        except Exception as e:
            logger.warning(f"[verification] getabi 失败: {address}@{chain.value} - {e}")
            return False
        if not is_abi_json(abi):
            logger.warning(f"[verification] ABI 不是合法 JSON 数组: {address}@{chain.value}")
            return False
        try:
            await asyncio.to_thread(self.repository.save_abi, address, chain.value, abi)
        except Exception as e:
            logger.error(f"[verification] ABI 写库失败: {address}@{chain.value} - {e}")
            return False
        return True

    async def _fetch_balance(self, address: str, chain: Chain) -> Optional[str]:
        try:
            return await self.explorer.get_balance(address, chain)
        except Exception as e:
            logger.warning(f"[verification] balance 失败: {address}@{chain.value} - {e}")
            return None

    # --------------------------------------------------------
    # 读穿
    # --------------------------------------------------------

    async def ensure_verified(self, address: str, chain: Chain) -> ContractData:
        """确保 source 与 ABI 已缓存（不拉余额），返回缓存后的数据"""
        return await self._get_or_fetch(normalize_address(address), chain, with_balance=False)

    async def get_or_fetch(self, address: str, chain: Chain) -> ContractData:
        return await self._get_or_fetch(normalize_address(address), chain, with_balance=True)

    async def _get_or_fetch(self, address: str, chain: Chain, with_balance: bool) -> ContractData:
        repo = self.repository
        await asyncio.to_thread(repo.ensure_contract, address, chain.value)
        cached = await asyncio.to_thread(self._read_cached, address, chain)

        jobs = []
        if cached.source_code is None:
            jobs.append(self._fetch_source(address, chain))
        if cached.abi is None:
            jobs.append(self._fetch_abi(address, chain))
        balance_job = self._fetch_balance(address, chain) if with_balance else None

        if balance_job is not None:
            *_, balance = await asyncio.gather(*jobs, balance_job)
        else:
            await asyncio.gather(*jobs)
            balance = None

        data = await asyncio.to_thread(self._read_cached, address, chain) if jobs else cached
        data.balance = balance
        return data

    async def get_or_fetch_contract_data(self, addresses: Iterable[str], chain: Chain) -> Dict[str, ContractData]:
        """批量读穿：地址间并发，单个地址失败不影响其它地址"""
        unique: List[str] = list(dict.fromkeys(normalize_address(a) for a in addresses))
        outcomes = await asyncio.gather(
            *(self._get_or_fetch(a, chain, with_balance=True) for a in unique),
            return_exceptions=True,
        )
        results: Dict[str, ContractData] = {}
        for address, outcome in zip(unique, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"[verification] {address}@{chain.value} 处理失败: {outcome}")
                results[address] = ContractData(address=address, chain=chain)
            else:
                results[address] = outcome
        return results

    async def get_creation_info(self, address: str, chain: Chain) -> Optional[ContractCreation]:
        try:
            return await self.explorer.get_contract_creation(normalize_address(address), chain)
        except Exception as e:
            logger.warning(f"[verification] getcontractcreation 失败: {address}@{chain.value} - {e}")
            return None
