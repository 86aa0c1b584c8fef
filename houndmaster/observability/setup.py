"""
一键初始化 Observability：注册中间件 + /metrics 端点 + 应用元信息。
"""

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from houndmaster.log import get_logger
from houndmaster.observability.metrics import metrics
from houndmaster.observability.middleware import ObservabilityMiddleware
from houndmaster.observability.tracing import SERVICE_NAME, SERVICE_VERSION

logger = get_logger(__name__)


def setup_observability(app: FastAPI) -> None:
    """
    在 FastAPI app 上挂载 Observability 组件。

    应在 router 注册之后、启动之前调用。
    """
    app.add_middleware(ObservabilityMiddleware)

    @app.get("/metrics", include_in_schema=False)
    def prometheus_metrics():
        return PlainTextResponse(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/health/detailed", tags=["observability"])
    def health_detailed():
        """详细健康检查：数据库与 LLM 配置状态"""
        checks = {}

        try:
            from sqlalchemy import text
            from houndmaster.db.engine import get_engine

            with get_engine().connect() as conn:
                conn.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception as e:
            checks["database"] = f"error: {e}"

        try:
            from houndmaster.llm.llm_manager import get_manager

            m = get_manager()
            checks["llm"] = "ok" if m.is_available(m.config.default) or m.config.dry_run else "not_configured"
        except Exception as e:
            checks["llm"] = f"error: {e}"

        overall = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
        return {"status": overall, "components": checks}

    metrics.app_info.info({"version": SERVICE_VERSION, "service": SERVICE_NAME})
    logger.info("[observability] middleware + /metrics + /health/detailed registered")
