"""
FastAPI 中间件：采集 HTTP 请求延迟 / 计数 / 状态码，并创建 trace span。
"""

import re
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from houndmaster.observability.metrics import metrics
from houndmaster.observability.tracing import tracer

_ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")


def _normalize_path(path: str) -> str:
    """合约地址替换为占位符，防止高基数指标"""
    return _ADDRESS_RE.sub("{address}", path)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """采集每个 HTTP 请求的延迟和计数指标，并创建 trace span。"""

    async def dispatch(self, request: Request, call_next):
        # 跳过 /metrics 和 /health 本身，避免自引用噪音
        if request.url.path in ("/metrics", "/health"):
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)
        with tracer.start_as_current_span(
            f"{method} {path}",
            attributes={"http.method": method, "http.route": path},
        ) as span:
            start = time.perf_counter()
            response: Response = await call_next(request)
            elapsed = time.perf_counter() - start

            span.set_attribute("http.status_code", response.status_code)
            metrics.http_requests_total.labels(
                method=method, endpoint=path, status_code=str(response.status_code)
            ).inc()
            metrics.http_request_duration_seconds.labels(method=method, endpoint=path).observe(elapsed)
            return response
