"""
Houndmaster 异常体系。

- ValidationError: 边界输入校验失败，直接以 4xx 返回调用方
- UpstreamError: 上游能力（列表 API / 区块浏览器 / RPC）传输失败或非 2xx
- LLMCallError / ScrapeError: 推理与抓取失败，由分析器降级为低置信度结果
"""

from typing import Optional


# 边界 API 错误文案（与前端约定一致，勿随意修改）
ERRORS = {
    "MISSING_CONTRACTS": "Contract addresses are required",
    "MISSING_CHAIN": "Chain parameter is required",
    "INVALID_CONTRACTS": "Contract addresses must be an array of valid Ethereum addresses",
    "MISSING_ADDRESS": "Contract address is required",
    "INVALID_ADDRESS": "Invalid Ethereum address format",
    "INVALID_CHAIN": "Invalid chain specified",
    "INVALID_WEBSITE_URL": "Invalid website URL format",
}


class HoundmasterError(Exception):
    """所有业务异常的基类"""


class ValidationError(HoundmasterError):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidChainError(ValidationError, ValueError):
    def __init__(self, value: object = None):
        super().__init__(ERRORS["INVALID_CHAIN"])
        self.value = value


class UpstreamError(HoundmasterError):
    def __init__(self, service: str, message: str, status: Optional[int] = None):
        super().__init__(f"[{service}] {message}")
        self.service = service
        self.status = status


class RateLimitedError(UpstreamError):
    """HTTP 429 且重试次数耗尽"""

    def __init__(self, service: str, attempts: int):
        super().__init__(service, f"rate limited after {attempts} attempts", status=429)
        self.attempts = attempts


class BlockExplorerError(UpstreamError):
    """区块浏览器返回 status != "1" 或 NOTOK 错误包"""

    def __init__(self, message: str, result: str = ""):
        super().__init__("explorer", f"{message}: {result}" if result else message)
        self.result = result


class LLMCallError(HoundmasterError):
    pass


class ScrapeError(HoundmasterError):
    pass
