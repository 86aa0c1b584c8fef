#!/usr/bin/env python
"""
单个合约：拉取验证数据并跑完整分析（mint 收入 +可选网站）

用法:
  python scripts/03_analyze_contract.py 0xabc... --chain ethereum
  python scripts/03_analyze_contract.py 0xabc... --chain base --website https://example.xyz
"""

import argparse
import asyncio
import json
import sys

sys.path.insert(0, ".")

from houndmaster.api.validation import validate_single_contract
from houndmaster.chains import Chain
from houndmaster.db.engine import init_db
from houndmaster.errors import ValidationError
from houndmaster.log import get_logger
from houndmaster.services import get_services, shutdown_services

logger = get_logger(__name__)


async def _run(address: str, chain: Chain, website: str = None) -> dict:
    services = get_services()
    try:
        data = await services.verification.get_or_fetch(address, chain)
        logger.info(
            f"source={'yes' if data.source_code else 'no'} abi={'yes' if data.abi else 'no'} balance={data.balance}"
        )
        creation = await services.verification.get_creation_info(address, chain)
        if creation is not None:
            logger.info(f"deployer={creation.contract_creator} tx={creation.tx_hash}")
        outcome = await services.coordinator.analyze(address, chain, website)
        return outcome.to_dict()
    finally:
        await shutdown_services()


def main():
    parser = argparse.ArgumentParser(description="Analyze mint revenue of one contract")
    parser.add_argument("address")
    parser.add_argument("--chain", default="ethereum")
    parser.add_argument("--website", default=None)
    args = parser.parse_args()

    try:
        chain = validate_single_contract(args.address, args.chain, args.website)
    except ValidationError as e:
        logger.error(e.message)
        sys.exit(2)

    init_db()
    result = asyncio.run(_run(args.address, chain, args.website))
    print(json.dumps(result, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
