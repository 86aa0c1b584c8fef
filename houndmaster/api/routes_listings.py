"""
集合列表 API：
- POST /api/listings: 分页拉取并筛选集合，按部署时间分为 recent / old
"""

from fastapi import APIRouter, Depends

from houndmaster.api.schemas import ListingsRequest
from houndmaster.api.validation import validate_chain
from houndmaster.services import FilterConfig, Services, get_services

router = APIRouter(prefix="/api", tags=["listings"])


@router.post("/listings")
async def fetch_listings(body: ListingsRequest, services: Services = Depends(get_services)) -> dict:
    chain = validate_chain(body.chain)
    overrides = body.filters.overrides() if body.filters else {}
    overrides["chain"] = chain
    config = FilterConfig.from_settings(overrides)
    result = await services.listings.fetch_collections(config)
    return result.to_dict()
