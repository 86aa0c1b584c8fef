"""
LLM 统一管理模块

提供:
- LLMManager: 配置加载与客户端获取
- BaseChatClient: 统一调用接口
- LLMCompleter: 供分析器使用的异步补全封装
"""

from .llm_manager import (
    BaseChatClient,
    DryRunChatClient,
    HTTPChatClient,
    LLMConfig,
    LLMManager,
    PlatformConfig,
    ProviderConfig,
    RawLogStore,
    get_manager,
)
from .completion import LLMCompleter

__all__ = [
    "LLMManager",
    "BaseChatClient",
    "HTTPChatClient",
    "DryRunChatClient",
    "RawLogStore",
    "PlatformConfig",
    "ProviderConfig",
    "LLMConfig",
    "LLMCompleter",
    "get_manager",
]
