#!/usr/bin/env python
"""步骤1: 初始化数据库与本地目录"""

import sys

sys.path.insert(0, ".")

from config.settings import settings
from houndmaster.db.engine import get_engine, init_db
from houndmaster.log import get_logger

logger = get_logger(__name__)


def main():
    settings.path.ensure_dirs()
    settings.print_info()

    engine = get_engine()
    init_db(engine)
    logger.info(f"数据库已就绪: {engine.url.render_as_string(hide_password=True)}")

    if not settings.explorer.api_key:
        logger.warning("ETHERSCAN_API_KEY 未设置：区块浏览器请求将以匿名额度运行")
    if not settings.llm.is_available(settings.llm.default) and not settings.llm.dry_run:
        logger.warning(f"LLM provider '{settings.llm.default}' 未配置 API key，分析接口将返回低置信度结果")


if __name__ == "__main__":
    main()
