"""
异步文本补全：分析器调用 LLM 的唯一入口。

ChatClient 基于 requests（阻塞），这里放进工作线程执行，避免卡住事件循环；
任何失败统一转成 LLMCallError，由调用方降级为低置信度结果。
"""

import asyncio
from typing import Any, Dict, List, Optional

from houndmaster.errors import LLMCallError
from houndmaster.llm.llm_manager import BaseChatClient, LLMManager, get_manager
from houndmaster.log import get_logger

logger = get_logger(__name__)


class LLMCompleter:
    def __init__(
        self,
        client: Optional[BaseChatClient] = None,
        manager: Optional[LLMManager] = None,
        provider: Optional[str] = None,
    ):
        self._client = client
        self._manager = manager
        self.provider = provider

    @property
    def client(self) -> BaseChatClient:
        if self._client is None:
            manager = self._manager or get_manager()
            self._client = manager.get_client(self.provider)
        return self._client

    async def complete(self, prompt: str, system: Optional[str] = None, **overrides: Any) -> str:
        messages: List[Dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            client = self.client
            resp = await asyncio.to_thread(client.chat, messages, **overrides)
        except Exception as e:
            logger.warning(f"LLM 调用失败: {e}")
            raise LLMCallError(str(e)) from e

        text = (resp.get("final_text") or "").strip()
        if not text:
            raise LLMCallError("LLM returned empty response")
        return text
