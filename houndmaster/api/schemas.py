"""
API 请求 Pydantic 模型

字段类型刻意放宽为 Any：缺失 / 格式错误由 houndmaster.api.validation 按固定顺序
给出约定的错误文案，而不是 FastAPI 默认的 422 明细。
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ListingFilters(_Body):
    """列表筛选；未传字段回退到配置默认值"""

    max_age_months: Optional[int] = Field(None, alias="maxAgeMonths", ge=0, description="recent/old 分界（月）")
    min_floor_price: Optional[float] = Field(None, alias="minFloorPrice", ge=0)
    min_total_collections: Optional[int] = Field(None, alias="minTotalCollections", ge=1, description="提前停止目标")
    limit: Optional[int] = Field(None, ge=1, le=1000, description="每页条数")
    min_mint_value: Optional[float] = Field(None, alias="minMintValue", ge=0, description="mint 总值下限，默认关闭")

    def overrides(self) -> Dict[str, Any]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


class ListingsRequest(_Body):
    chain: Any = None
    filters: Optional[ListingFilters] = None


class ContractDataRequest(_Body):
    contract_addresses: Any = Field(None, alias="contractAddresses")
    chain: Any = None


class OnChainAnalysisRequest(_Body):
    address: Any = None
    chain: Any = None
    website_url: Any = Field(None, alias="websiteUrl")


class BatchAnalysisRequest(_Body):
    addresses: Any = None
    chain: Any = None
    website_urls: Optional[Dict[str, Any]] = Field(None, alias="websiteUrls")
