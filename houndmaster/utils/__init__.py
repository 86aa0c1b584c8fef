"""工具模块：限流器、提示词模板、LLM JSON 输出解析"""
from houndmaster.utils.json_utils import parse_json_object, strip_code_fence
from houndmaster.utils.limiter import RateLimiter
from houndmaster.utils.prompt_manager import PromptManager

__all__ = [
    "PromptManager",
    "RateLimiter",
    "parse_json_object",
    "strip_code_fence",
]
