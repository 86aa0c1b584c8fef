#!/usr/bin/env python
"""
拉取并筛选集合列表

用法:
  python scripts/02_fetch_listings.py --chain ethereum
  python scripts/02_fetch_listings.py --chain base --min-total 50 --max-age-months 3 --out listings.json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, ".")

from houndmaster.chains import Chain
from houndmaster.log import get_logger
from houndmaster.services import FilterConfig, ListingFetcher

logger = get_logger(__name__)


async def _run(args) -> dict:
    overrides = {"chain": args.chain}
    if args.min_total is not None:
        overrides["min_total_collections"] = args.min_total
    if args.max_age_months is not None:
        overrides["max_age_months"] = args.max_age_months
    if args.min_floor_price is not None:
        overrides["min_floor_price"] = args.min_floor_price
    if args.min_mint_value is not None:
        overrides["min_mint_value"] = args.min_mint_value

    fetcher = ListingFetcher.from_settings()
    try:
        result = await fetcher.fetch_collections(FilterConfig.from_settings(overrides))
    finally:
        await fetcher.client.close()
    if result.partial:
        logger.warning("上游中途失败，结果为部分数据")
    return result.to_dict()


def main():
    parser = argparse.ArgumentParser(description="Fetch and filter recent NFT collections")
    parser.add_argument("--chain", default="ethereum", choices=[c.value for c in Chain])
    parser.add_argument("--min-total", type=int, default=None, help="提前停止目标数量")
    parser.add_argument("--max-age-months", type=int, default=None)
    parser.add_argument("--min-floor-price", type=float, default=None)
    parser.add_argument("--min-mint-value", type=float, default=None, help="mint 总值下限（默认关闭）")
    parser.add_argument("--out", type=Path, default=None, help="结果写入 JSON 文件")
    args = parser.parse_args()

    data = asyncio.run(_run(args))
    logger.info(f"recent={len(data['recent'])} old={len(data['old'])}")
    text = json.dumps(data, ensure_ascii=False, indent=2)
    if args.out:
        args.out.write_text(text, encoding="utf-8")
        logger.info(f"已写入 {args.out}")
    else:
        print(text)


if __name__ == "__main__":
    main()
