"""
合约验证数据 API：
- POST /api/contract-data: 批量读穿缓存（source / ABI / 实时余额）
"""

from fastapi import APIRouter, Depends

from houndmaster.api.schemas import ContractDataRequest
from houndmaster.api.validation import validate_contract_list
from houndmaster.services import Services, get_services

router = APIRouter(prefix="/api", tags=["contracts"])


@router.post("/contract-data")
async def contract_data(body: ContractDataRequest, services: Services = Depends(get_services)) -> dict:
    chain = validate_contract_list(body.contract_addresses, body.chain)
    results = await services.verification.get_or_fetch_contract_data(body.contract_addresses, chain)
    return {"results": {addr: data.to_dict() for addr, data in results.items()}}
