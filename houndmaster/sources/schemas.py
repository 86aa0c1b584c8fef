"""
上游 API 响应模型（pydantic）。

字段名保持上游原样（camelCase）通过 alias 映射；未声明的字段允许存在并原样保留，
便于 API 层直接回传给前端。
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _to_float(value: Any) -> float:
    """mint stage 的 price/supply 可能是数字、字符串或 {amount: {decimal}} 对象"""
    if value is None:
        return 0.0
    if isinstance(value, dict):
        amount = value.get("amount") if isinstance(value.get("amount"), dict) else value
        value = amount.get("decimal", amount.get("native", 0))
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


# ──────────────────────────────────────────────────────────────────────────────
# Magic Eden collections/v7
# ──────────────────────────────────────────────────────────────────────────────

class _Lenient(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class Currency(_Lenient):
    contract: Optional[str] = None
    name: Optional[str] = None
    symbol: Optional[str] = None
    decimals: Optional[int] = None


class PriceAmount(_Lenient):
    raw: Optional[str] = None
    decimal: Optional[float] = None
    usd: Optional[float] = None
    native: Optional[float] = None


class Price(_Lenient):
    currency: Optional[Currency] = None
    amount: Optional[PriceAmount] = None


class FloorAsk(_Lenient):
    price: Optional[Price] = None


class MintStage(_Lenient):
    price: Any = None
    supply: Any = None
    start_time: Optional[Any] = Field(default=None, alias="startTime")
    end_time: Optional[Any] = Field(default=None, alias="endTime")

    @property
    def price_value(self) -> float:
        return _to_float(self.price)

    @property
    def supply_value(self) -> float:
        return _to_float(self.supply)


class Volume(_Lenient):
    one_day: float = Field(default=0, alias="1day")
    seven_day: float = Field(default=0, alias="7day")
    thirty_day: float = Field(default=0, alias="30day")
    all_time: float = Field(default=0, alias="allTime")

    @field_validator("one_day", "seven_day", "thirty_day", "all_time", mode="before")
    @classmethod
    def _none_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class Collection(_Lenient):
    id: str
    name: str = ""
    symbol: Optional[str] = None
    description: Optional[str] = None
    external_url: Optional[str] = Field(default=None, alias="externalUrl")
    primary_contract: Optional[str] = Field(default=None, alias="primaryContract")
    contract_deployed_at: Optional[str] = Field(default=None, alias="contractDeployedAt")
    mint_stages: List[MintStage] = Field(default_factory=list, alias="mintStages")
    supply: Optional[Any] = None
    remaining_supply: Optional[Any] = Field(default=None, alias="remainingSupply")
    token_count: Optional[Any] = Field(default=None, alias="tokenCount")
    volume: Volume = Field(default_factory=Volume)
    floor_ask: Optional[FloorAsk] = Field(default=None, alias="floorAsk")
    twitter_username: Optional[str] = Field(default=None, alias="twitterUsername")
    discord_url: Optional[str] = Field(default=None, alias="discordUrl")

    @field_validator("mint_stages", mode="before")
    @classmethod
    def _null_stages(cls, v: Any) -> Any:
        return v or []

    @field_validator("volume", mode="before")
    @classmethod
    def _null_volume(cls, v: Any) -> Any:
        return v or {}

    @property
    def weekly_volume(self) -> float:
        return self.volume.seven_day

    @property
    def all_time_volume(self) -> float:
        return self.volume.all_time

    def deployed_at(self) -> Optional[datetime]:
        """部署时间（UTC）；缺失或无法解析返回 None"""
        raw = self.contract_deployed_at
        if not raw:
            return None
        try:
            if isinstance(raw, (int, float)) or str(raw).isdigit():
                return datetime.fromtimestamp(float(raw), tz=timezone.utc)
            dt = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
        except (ValueError, OverflowError, OSError):
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

    def mint_value(self) -> float:
        """各 mint stage 的 price × supply 之和（原生币单位）"""
        return sum(s.price_value * s.supply_value for s in self.mint_stages)

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "symbol": self.symbol,
            "primaryContract": self.primary_contract,
            "deployedAt": self.contract_deployed_at,
            "mintValue": self.mint_value(),
            "weeklyVolume": self.weekly_volume,
            "allTimeVolume": self.all_time_volume,
            "floorPrice": self.floor_ask.price.model_dump(by_alias=True) if self.floor_ask and self.floor_ask.price else None,
            "totalSupply": self.supply,
            "remainingSupply": self.remaining_supply,
            "tokenCount": self.token_count,
            "mintStageCount": len(self.mint_stages),
            "externalUrl": self.external_url,
            "twitterUsername": self.twitter_username,
            "discordUrl": self.discord_url,
        }


class CollectionPage(_Lenient):
    collections: List[Collection] = Field(default_factory=list)
    continuation: Optional[str] = None

    @field_validator("collections", mode="before")
    @classmethod
    def _null_collections(cls, v: Any) -> Any:
        return v if isinstance(v, list) else []


# ──────────────────────────────────────────────────────────────────────────────
# Etherscan-family block explorer
# ──────────────────────────────────────────────────────────────────────────────

class ExplorerEnvelope(_Lenient):
    """{status, message, result}；status != "1" 表示失败，result 为错误文本"""
    status: str = "0"
    message: str = ""
    result: Any = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_str(cls, v: Any) -> str:
        return str(v) if v is not None else "0"

    @property
    def ok(self) -> bool:
        return self.status == "1"


class SourceCodeResult(_Lenient):
    source_code: str = Field(default="", alias="SourceCode")
    abi: str = Field(default="", alias="ABI")
    contract_name: str = Field(default="", alias="ContractName")
    compiler_version: str = Field(default="", alias="CompilerVersion")
    optimization_used: str = Field(default="", alias="OptimizationUsed")
    runs: str = Field(default="", alias="Runs")
    constructor_arguments: str = Field(default="", alias="ConstructorArguments")
    evm_version: str = Field(default="", alias="EVMVersion")
    library: str = Field(default="", alias="Library")
    license_type: str = Field(default="", alias="LicenseType")
    proxy: str = Field(default="0", alias="Proxy")
    implementation: str = Field(default="", alias="Implementation")
    swarm_source: str = Field(default="", alias="SwarmSource")

    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        return "" if v is None else (v if isinstance(v, str) else str(v))

    @property
    def is_verified(self) -> bool:
        # 未验证合约同样返回 status=1，但 SourceCode 为空
        return bool(self.source_code.strip())

    def contract_metadata(self) -> Dict[str, Any]:
        runs = int(self.runs) if self.runs.strip().isdigit() else None
        return {
            "name": self.contract_name or None,
            "compiler_version": self.compiler_version or None,
            "optimization_used": self.optimization_used == "1",
            "runs": runs,
            "license_type": self.license_type or None,
            "is_proxy": self.proxy == "1",
            "implementation_address": self.implementation or None,
        }

    def source_blob(self) -> Dict[str, Any]:
        return {
            "source_code": self.source_code,
            "constructor_arguments": self.constructor_arguments or None,
            "evm_version": self.evm_version or None,
            "library": self.library or None,
            "swarm_source": self.swarm_source or None,
        }


class ContractCreation(_Lenient):
    contract_address: str = Field(default="", alias="contractAddress")
    contract_creator: str = Field(default="", alias="contractCreator")
    tx_hash: str = Field(default="", alias="txHash")


def is_abi_json(text: str) -> bool:
    try:
        return isinstance(json.loads(text), list)
    except (TypeError, ValueError):
        return False
