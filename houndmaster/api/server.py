"""
FastAPI 应用入口 - Houndmaster 合约情报 API
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import settings
from houndmaster.api.routes_analysis import router as analysis_router
from houndmaster.api.routes_contracts import router as contracts_router
from houndmaster.api.routes_listings import router as listings_router
from houndmaster.errors import ValidationError
from houndmaster.llm import get_manager
from houndmaster.log import cleanup_logs, get_logger
from houndmaster.observability import setup_observability
from houndmaster.services import shutdown_services

logger = get_logger(__name__)


def cleanup_expired_logs() -> int:
    """清理过期的应用日志与 LLM 原始响应日志，返回删除的文件数"""
    removed = 0
    try:
        removed += len(cleanup_logs()["deleted"])
    except Exception as e:
        logger.warning("[startup] log cleanup failed: %s", e)
    try:
        removed += len(get_manager().cleanup_logs(settings.logging.max_age_days))
    except Exception as e:
        logger.warning("[startup] llm raw log cleanup failed: %s", e)
    if removed:
        logger.info("[startup] removed %d expired log file(s)", removed)
    return removed


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期：DB 建表 → 过期日志（含 llm_raw）清理；关闭时释放 HTTP session"""
    from houndmaster.db.engine import init_db
    try:
        init_db()
    except Exception as e:
        logger.warning("[startup] init_db failed: %s", e)

    cleanup_expired_logs()

    if not settings.explorer.api_key:
        logger.warning("[startup] ETHERSCAN_API_KEY not set; explorer calls use the anonymous quota")

    yield

    await shutdown_services()


app = FastAPI(
    title="Houndmaster API",
    description="NFT 集合发现、合约验证数据与 mint 收入分析",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "status": exc.status_code})


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    # 请求体不是合法 JSON 或字段类型错误
    first = exc.errors()[0] if exc.errors() else {}
    message = first.get("msg", "Invalid request body")
    return JSONResponse(status_code=400, content={"error": message, "status": 400})


app.include_router(listings_router)
app.include_router(contracts_router)
app.include_router(analysis_router)

# Observability: 中间件 + /metrics + /health/detailed
setup_observability(app)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
