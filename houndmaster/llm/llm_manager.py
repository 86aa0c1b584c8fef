"""
统一 LLM 管理模块

功能：
- Provider 封装（OpenAI-compatible / Anthropic 两种协议）
- 输出规范化：抽取 final_text
- Raw JSON 落盘（按天 JSONL）+ 按天数清理
- API key 环境变量覆盖 + 脱敏
- dry_run 模式

配置来源：config/houndmaster_config.json（可选 config/houndmaster_config.local.json 覆盖）
"""

from __future__ import annotations

import json
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from config.settings import settings
from houndmaster.log import get_logger
from houndmaster.observability import metrics

logger = get_logger(__name__)

# ============================================================
# Constants
# ============================================================

ANTHROPIC_VERSION = "2023-06-01"
RETRYABLE_STATUS = (429, 500, 503)
LOG_DIR_NAME = "llm_raw"
LOG_MAX_AGE_DAYS = 10
MESSAGE_DIGEST_LENGTH = 200
_PLACEHOLDER_KEYS = ("", "sk-xxx", "sk-ant-xxx", "AIzxxx")

_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "houndmaster_config.json"


# ============================================================
# Dataclasses
# ============================================================

@dataclass
class PlatformConfig:
    """平台级配置：api_key + base_url，多个 provider 共享"""
    name: str
    api_key: str
    base_url: str


@dataclass
class ProviderConfig:
    name: str
    api_key: str
    base_url: str
    default_model: str
    platform: str = ""
    params: Dict[str, Any] = field(default_factory=dict)

    def is_anthropic(self) -> bool:
        return "anthropic.com" in self.base_url or self.name.startswith("claude")


@dataclass
class LLMConfig:
    default: str
    dry_run: bool
    platforms: Dict[str, PlatformConfig] = field(default_factory=dict)
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)


# ============================================================
# Helper Functions
# ============================================================

def load_json_with_local(path: str | Path) -> Dict[str, Any]:
    """加载 JSON 配置并浅层合并同名 .local.json 的 llm 段"""
    base_path = Path(path)
    with open(base_path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    local_path = base_path.with_name(f"{base_path.stem}.local{base_path.suffix}")
    if local_path.exists():
        with open(local_path, "r", encoding="utf-8") as f:
            local = json.load(f)
        llm = dict(raw.get("llm") or {})
        for key, value in (local.get("llm") or {}).items():
            if isinstance(value, dict) and isinstance(llm.get(key), dict):
                llm[key] = {**llm[key], **value}
            else:
                llm[key] = value
        raw["llm"] = llm
    return raw


def mask_secret(secret: str, show_chars: int = 4) -> str:
    """脱敏显示密钥，例如 "AIza...9xQk" """
    if not secret:
        return "(empty)"
    if len(secret) <= show_chars * 2 + 3:
        return "*" * len(secret)
    return f"{secret[:show_chars]}...{secret[-show_chars:]}"


def provider_env_var(provider_name: str) -> str:
    """HOUNDMASTER_LLM__{PROVIDER}__API_KEY，名称转大写，- 替换为 _"""
    normalized = provider_name.upper().replace("-", "_")
    return f"HOUNDMASTER_LLM__{normalized}__API_KEY"


def messages_digest(messages: List[Dict[str, Any]], max_len: int = MESSAGE_DIGEST_LENGTH) -> str:
    parts = []
    for msg in messages:
        content = str(msg.get("content") or "")
        truncated = content[:max_len] + ("..." if len(content) > max_len else "")
        parts.append(f"[{msg.get('role', '?')}] {truncated}")
    return "\n".join(parts)


# ============================================================
# RawLogStore
# ============================================================

class RawLogStore:
    """原始响应日志：logs/llm_raw/YYYY-MM-DD.jsonl，超过 N 天的文件由 cleanup 删除"""

    def __init__(self, log_dir: Path | str | None = None):
        if log_dir is None:
            log_dir = settings.path.logs / LOG_DIR_NAME
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def write(self, record: Dict[str, Any]) -> None:
        record.setdefault("timestamp", datetime.now().isoformat())
        log_file = self.log_dir / f"{datetime.now().strftime('%Y-%m-%d')}.jsonl"
        with open(log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")

    def cleanup(self, max_age_days: int = LOG_MAX_AGE_DAYS) -> List[str]:
        cutoff = datetime.now() - timedelta(days=max_age_days)
        deleted = []
        for f in sorted(self.log_dir.glob("*.jsonl")):
            if datetime.fromtimestamp(f.stat().st_mtime) < cutoff:
                f.unlink()
                deleted.append(f.name)
        return deleted


# ============================================================
# Providers
# ============================================================

def _request_with_retry(session: requests.Session, url: str, timeout: int, **kwargs: Any) -> requests.Response:
    """有界重试：429/500/503 与网络异常按 retry_backoff ** attempt 秒退避"""
    max_retries = settings.perf_llm.max_retries
    backoff = settings.perf_llm.retry_backoff
    for attempt in range(max_retries + 1):
        last_attempt = attempt >= max_retries
        try:
            resp = session.post(url, timeout=timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            if last_attempt:
                raise
            logger.debug(f"LLM 请求异常，{backoff ** attempt:.1f}s 后重试: {e}")
            time.sleep(backoff ** attempt)
            continue
        if resp.status_code in RETRYABLE_STATUS and not last_attempt:
            logger.debug(f"LLM HTTP {resp.status_code}，{backoff ** attempt:.1f}s 后重试")
            time.sleep(backoff ** attempt)
            continue
        resp.raise_for_status()
        return resp
    raise RuntimeError("unreachable")


class Provider(ABC):
    """Provider 基类：负责 HTTP 请求"""

    def __init__(self, config: ProviderConfig):
        self.config = config
        self._session = requests.Session()

    @abstractmethod
    def build_payload(self, messages: List[Dict[str, Any]], model: str, params: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def request(self, payload: Dict[str, Any], timeout: Optional[int] = None) -> Dict[str, Any]:
        raise NotImplementedError


class OpenAICompatProvider(Provider):
    """OpenAI 兼容协议：OpenAI / Gemini（OpenAI 兼容端点）等"""

    def build_payload(self, messages, model, params):
        payload: Dict[str, Any] = {"model": model, "messages": [
            {"role": m.get("role", "user"), "content": str(m.get("content") or "")} for m in messages
        ]}
        payload.update({k: v for k, v in params.items() if v is not None})
        is_openai = "api.openai.com" in self.config.base_url
        if is_openai and "max_tokens" in payload:
            payload["max_completion_tokens"] = payload.pop("max_tokens")
        return payload

    def request(self, payload, timeout=None):
        url = f"{self.config.base_url.rstrip('/')}/chat/completions"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }
        resp = _request_with_retry(
            self._session, url, int(timeout or settings.perf_llm.timeout_seconds),
            headers=headers, json=payload,
        )
        return resp.json()


class AnthropicProvider(Provider):
    """Anthropic Messages 协议"""

    def build_payload(self, messages, model, params):
        system = "\n\n".join(str(m.get("content") or "") for m in messages if m.get("role") == "system")
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [m for m in messages if m.get("role") != "system"],
        }
        if system:
            payload["system"] = system
        payload.update(params)
        # Anthropic 要求显式 max_tokens
        if not payload.get("max_tokens"):
            payload["max_tokens"] = 8192
        return payload

    def request(self, payload, timeout=None):
        url = f"{self.config.base_url.rstrip('/')}/v1/messages"
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        resp = _request_with_retry(
            self._session, url, int(timeout or settings.perf_llm.timeout_seconds),
            headers=headers, json=payload,
        )
        return resp.json()


# ============================================================
# Response Normalization
# ============================================================

def normalize_response(raw: Dict[str, Any], is_anthropic: bool = False) -> Dict[str, Any]:
    """抽取 final_text / usage；结构异常时返回 None 字段，不抛异常（raw 已落盘）"""
    result: Dict[str, Any] = {"final_text": None, "usage": raw.get("usage") if raw else None}
    if not raw:
        return result
    if is_anthropic:
        texts = [b.get("text", "") for b in raw.get("content") or [] if isinstance(b, dict) and b.get("type") == "text"]
        result["final_text"] = "".join(texts) or None
        return result

    choices = raw.get("choices") or []
    if not choices:
        return result
    content = (choices[0].get("message") or {}).get("content")
    if isinstance(content, str):
        result["final_text"] = content
    elif isinstance(content, list):
        texts = [b.get("text", "") for b in content if isinstance(b, dict) and b.get("type") == "text"]
        result["final_text"] = "".join(texts) or None
    return result


# ============================================================
# Chat Clients
# ============================================================

class BaseChatClient(ABC):
    """Chat 客户端基类"""

    @abstractmethod
    def chat(self, messages: List[Dict[str, Any]], model: Optional[str] = None, **overrides) -> Dict[str, Any]:
        """
        发送消息并获取响应。

        Returns:
            {"provider": str, "model": str, "final_text": str, "raw": dict, "meta": {"usage", "latency_ms"}}
        """
        raise NotImplementedError


class DryRunChatClient(BaseChatClient):
    """不实际调用 API，返回占位文本（分析器会将其视为无法解析的输出）"""

    def __init__(self, config: ProviderConfig, log_store: Optional[RawLogStore] = None):
        self.config = config
        self.log_store = log_store

    def chat(self, messages, model=None, **overrides):
        resolved_model = model or self.config.default_model
        text = f"[DRY_RUN] provider={self.config.name}, model={resolved_model}"
        if self.log_store:
            self.log_store.write({
                "provider": self.config.name,
                "model": resolved_model,
                "messages_digest": messages_digest(messages),
                "final_text": text,
                "dry_run": True,
            })
        return {
            "provider": self.config.name,
            "model": resolved_model,
            "final_text": text,
            "raw": {"dry_run": True, "messages_count": len(messages)},
            "meta": {"usage": None, "latency_ms": 0},
        }


class HTTPChatClient(BaseChatClient):
    def __init__(self, config: ProviderConfig, provider: Provider, log_store: Optional[RawLogStore] = None):
        self.config = config
        self.provider = provider
        self.log_store = log_store

    def chat(self, messages, model=None, **overrides):
        resolved_model = model or self.config.default_model
        timeout = overrides.pop("timeout_seconds", None)
        params = {**self.config.params, **overrides}
        payload = self.provider.build_payload(messages, resolved_model, params)
        is_anthropic = self.config.is_anthropic()

        start = time.time()
        raw: Dict[str, Any] = {}
        error = None
        try:
            raw = self.provider.request(payload, timeout=timeout)
        except requests.exceptions.HTTPError as e:
            error = f"HTTP {e.response.status_code}: {e.response.text[:500]}"
            raise
        except Exception as e:
            error = str(e)
            raise
        finally:
            latency_ms = int((time.time() - start) * 1000)
            labels = {"provider": self.config.name, "model": resolved_model}
            metrics.llm_requests_total.labels(**labels).inc()
            metrics.llm_duration_seconds.labels(**labels).observe(latency_ms / 1000.0)
            if error:
                metrics.llm_errors_total.labels(**labels).inc()
            if self.log_store:
                self.log_store.write({
                    "provider": self.config.name,
                    "model": resolved_model,
                    "messages_digest": messages_digest(messages),
                    "raw_response": raw,
                    "latency_ms": latency_ms,
                    "error": error,
                })

        normalized = normalize_response(raw, is_anthropic)
        return {
            "provider": self.config.name,
            "model": resolved_model,
            "final_text": normalized["final_text"] or "",
            "raw": raw,
            "meta": {"usage": normalized["usage"], "latency_ms": latency_ms},
        }


# ============================================================
# LLMManager
# ============================================================

class LLMManager:
    """加载配置、按 provider 名创建 ChatClient"""

    def __init__(self, config: LLMConfig, log_store: Optional[RawLogStore] = None):
        self.config = config
        self.log_store = log_store or RawLogStore()
        self._clients: Dict[str, BaseChatClient] = {}

    @classmethod
    def from_dict(cls, llm_section: Dict[str, Any], log_store: Optional[RawLogStore] = None) -> "LLMManager":
        platforms: Dict[str, PlatformConfig] = {}
        for pname, pcfg in (llm_section.get("platforms") or {}).items():
            platforms[pname] = PlatformConfig(
                name=pname,
                api_key=os.getenv(provider_env_var(pname)) or settings.llm.get_provider(pname)["api_key"] or pcfg.get("api_key", ""),
                base_url=pcfg.get("base_url", ""),
            )

        providers: Dict[str, ProviderConfig] = {}
        for name, pcfg in (llm_section.get("providers") or {}).items():
            platform = platforms.get(pcfg.get("platform", ""))
            # api_key 优先级: provider 环境变量 > provider JSON > platform
            api_key = os.getenv(provider_env_var(name)) or pcfg.get("api_key", "")
            if not api_key and platform:
                api_key = platform.api_key
            base_url = pcfg.get("base_url", "") or (platform.base_url if platform else "")
            providers[name] = ProviderConfig(
                name=name,
                api_key=api_key,
                base_url=base_url,
                default_model=pcfg.get("default_model", ""),
                platform=pcfg.get("platform", ""),
                params=pcfg.get("params", {}),
            )

        config = LLMConfig(
            default=settings.llm.default if settings.llm.default in providers else llm_section.get("default", "gemini"),
            dry_run=bool(llm_section.get("dry_run", False)) or settings.llm.dry_run,
            platforms=platforms,
            providers=providers,
        )
        return cls(config, log_store=log_store)

    @classmethod
    def from_json(cls, path: str | Path) -> "LLMManager":
        return cls.from_dict(load_json_with_local(path).get("llm") or {})

    def get_provider_names(self) -> List[str]:
        return list(self.config.providers.keys())

    def is_available(self, provider: str) -> bool:
        pcfg = self.config.providers.get(provider)
        return bool(pcfg and pcfg.api_key not in _PLACEHOLDER_KEYS)

    def get_client(self, provider: Optional[str] = None) -> BaseChatClient:
        provider_name = provider or self.config.default
        if provider_name in self._clients:
            return self._clients[provider_name]
        if provider_name not in self.config.providers:
            raise ValueError(f"Unknown provider: {provider_name}. Available: {self.get_provider_names()}")

        pcfg = self.config.providers[provider_name]
        if self.config.dry_run:
            client: BaseChatClient = DryRunChatClient(pcfg, self.log_store)
        else:
            if pcfg.api_key in _PLACEHOLDER_KEYS:
                raise ValueError(
                    f"Invalid or missing API key for provider '{provider_name}'. "
                    f"Set via environment variable {provider_env_var(provider_name)} or in config file. "
                    f"Current key: {mask_secret(pcfg.api_key)}"
                )
            http_provider = AnthropicProvider(pcfg) if pcfg.is_anthropic() else OpenAICompatProvider(pcfg)
            client = HTTPChatClient(pcfg, http_provider, self.log_store)
        self._clients[provider_name] = client
        return client

    def cleanup_logs(self, max_age_days: int = LOG_MAX_AGE_DAYS) -> List[str]:
        return self.log_store.cleanup(max_age_days)


# 全局单例（延迟初始化）
_manager: Optional[LLMManager] = None


def get_manager(config_path: Optional[str | Path] = None) -> LLMManager:
    global _manager
    if _manager is None:
        _manager = LLMManager.from_json(config_path or _CONFIG_PATH)
    return _manager
