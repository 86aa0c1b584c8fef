"""
合约分析 API：
- POST /api/on-chain-analysis: 单个合约 mint 收入分析 +（可选）网站分析
- POST /api/analysis/batch: 批量分析，单个失败不影响其它合约
- GET  /api/analysis/status: 查询某合约是否正在分析
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from houndmaster.api.schemas import BatchAnalysisRequest, OnChainAnalysisRequest
from houndmaster.api.validation import (
    validate_contract_list,
    validate_single_contract,
    validate_website_url,
    validate_website_urls,
)
from houndmaster.services import Services, get_services

router = APIRouter(prefix="/api", tags=["analysis"])


@router.post("/on-chain-analysis")
async def on_chain_analysis(body: OnChainAnalysisRequest, services: Services = Depends(get_services)) -> dict:
    chain = validate_single_contract(body.address, body.chain, body.website_url)
    outcome = await services.coordinator.analyze(body.address, chain, validate_website_url(body.website_url))
    return outcome.to_dict()


@router.post("/analysis/batch")
async def batch_analysis(body: BatchAnalysisRequest, services: Services = Depends(get_services)) -> dict:
    chain = validate_contract_list(body.addresses, body.chain)
    urls = validate_website_urls(body.website_urls, body.addresses)
    batch = await services.coordinator.analyze_all(body.addresses, chain, urls)
    return batch.to_dict()


@router.get("/analysis/status")
def analysis_status(
    address: Optional[str] = Query(None),
    chain: Optional[str] = Query(None),
    services: Services = Depends(get_services),
) -> dict:
    parsed = validate_single_contract(address, chain)
    return {"analyzing": services.coordinator.is_analyzing(address, parsed)}
