"""
统一配置模块
- 配置文件: config/houndmaster_config.json（速率、LLM、抓取等可调参数）
- 本地覆盖: config/houndmaster_config.local.json（本地私密配置）
- 环境变量优先覆盖敏感项（API Key、RPC 地址、数据库 URL）
"""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Dict, Any
from dotenv import load_dotenv

load_dotenv()

# 加载 config/houndmaster_config.json + config/houndmaster_config.local.json（本地覆盖）
_CONFIG_PATH = Path(__file__).parent / "houndmaster_config.json"
_LOCAL_CONFIG_PATH = Path(__file__).parent / "houndmaster_config.local.json"


def _load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


_RAW_CONFIG: Dict[str, Any] = _load_json(_CONFIG_PATH)
if _LOCAL_CONFIG_PATH.exists():
    _RAW_CONFIG = _deep_merge(_RAW_CONFIG, _load_json(_LOCAL_CONFIG_PATH))


def _section(name: str) -> Dict[str, Any]:
    return (_RAW_CONFIG.get(name) or {})


# 各链默认区块浏览器 API（Etherscan 家族，同一套 module/action 协议）
_EXPLORER_DEFAULTS = {
    "ethereum": "https://api.etherscan.io/api",
    "base": "https://api.basescan.org/api",
    "arbitrum": "https://api.arbiscan.io/api",
    "polygon": "https://api.polygonscan.com/api",
    "apechain": "https://api.apescan.io/api",
    "abstract": "https://api.abscan.org/api",
}

# 各链默认公共 RPC（生产环境建议在 .env 中覆盖）
_RPC_DEFAULTS = {
    "ethereum": "https://eth.llamarpc.com",
    "base": "https://mainnet.base.org",
    "arbitrum": "https://arb1.arbitrum.io/rpc",
    "polygon": "https://polygon-rpc.com",
    "apechain": "https://rpc.apechain.com/http",
    "abstract": "https://api.mainnet.abs.xyz",
}

_BLOCKED_DOMAINS = [
    "doubleclick.net",
    "adservice.google.com",
    "googlesyndication.com",
    "googletagservices.com",
    "googletagmanager.com",
    "google-analytics.com",
    "adsystem.com",
    "adservice.com",
    "adnxs.com",
    "ads-twitter.com",
    "facebook.net",
    "fbcdn.net",
    "amazon-adsystem.com",
]

_BLOCKED_EXTENSIONS = [
    "png", "jpg", "jpeg", "gif", "svg",
    "mp3", "mp4", "avi", "flac", "ogg", "wav", "webm",
]


@dataclass
class ListingFilterDefaults:
    """列表筛选默认值，请求未携带时回退"""
    max_age_months: int = 6
    min_floor_price: float = 0.1
    min_total_collections: int = 200
    limit: int = 1000
    chain: str = "ethereum"


@dataclass
class ListingSettings:
    """Magic Eden 集合列表 API：限流 2 req/s，间隔 600ms"""
    base_url: str = "https://api-mainnet.magiceden.dev/v3/rtp"
    api_key: str = ""
    max_per_second: int = 2
    min_interval_ms: int = 600
    max_retries: int = 3
    backoff_multiplier: float = 4.0
    request_timeout_seconds: int = 30
    defaults: ListingFilterDefaults = field(default_factory=ListingFilterDefaults)


@dataclass
class ExplorerSettings:
    """区块浏览器 API：比列表 API 更严格，附加 buffer 延迟"""
    api_key: str = ""
    base_urls: Dict[str, str] = field(default_factory=lambda: dict(_EXPLORER_DEFAULTS))
    max_per_second: int = 5
    min_interval_ms: int = 200
    buffer_ms: int = 100
    max_retries: int = 3
    backoff_multiplier: float = 4.0
    request_timeout_seconds: int = 30


@dataclass
class RpcSettings:
    urls: Dict[str, str] = field(default_factory=lambda: dict(_RPC_DEFAULTS))
    request_timeout_seconds: int = 30
    max_events_in_prompt: int = 200


@dataclass
class ScraperSettings:
    """Playwright 网站抓取：导航超时 30s，sitemap 探测 10s"""
    headless: bool = True
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    navigation_timeout_ms: int = 30000
    sitemap_timeout_ms: int = 10000
    settle_ms: int = 2000
    max_pages: int = 20
    blocked_domains: List[str] = field(default_factory=lambda: list(_BLOCKED_DOMAINS))
    blocked_extensions: List[str] = field(default_factory=lambda: list(_BLOCKED_EXTENSIONS))


@dataclass
class WebsiteAnalysisSettings:
    ttl_hours: float = 24.0
    max_content_chars: int = 60000


@dataclass
class AnalysisSettings:
    """单个合约分析的整体期限（秒）与外部定价候选上限"""
    per_contract_timeout_seconds: float = 180.0
    max_external_candidates: int = 3
    max_source_chars: int = 120000


@dataclass
class ApiSettings:
    """API 服务配置"""
    host: str = os.getenv("API_HOST", "0.0.0.0")
    port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class LoggingSettings:
    level: str = os.getenv("HOUNDMASTER_LOG_LEVEL", "INFO")
    log_dir: str = "logs/app"
    max_age_days: int = 14


@dataclass
class LLMPerfSettings:
    """LLM：超时、重试"""
    timeout_seconds: int = 120
    max_retries: int = 3
    retry_backoff: float = 2.0


# LLM 环境变量映射（兼容常见变量名）
_LLM_ENV_KEYS = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
}

# 各 provider 默认 base_url / model（config 未填时回退）
_LLM_DEFAULTS = {
    "openai": {"base_url": "https://api.openai.com/v1", "default_model": "gpt-4o"},
    "gemini": {
        "base_url": "https://generativelanguage.googleapis.com/v1beta/openai",
        "default_model": "gemini-2.0-flash-001",
    },
    "claude": {"base_url": "https://api.anthropic.com", "default_model": "claude-sonnet-4-20250514"},
}


def _llm_provider_raw(name: str) -> Dict[str, Any]:
    return (_section("llm").get("providers") or {}).get(name) or {}


class LLMSettings:
    """
    LLM 配置：config/houndmaster_config.json 中 llm.providers 支持 openai / gemini / claude。
    环境变量覆盖 api_key：HOUNDMASTER_LLM__{PROVIDER}__API_KEY，其次 GEMINI_API_KEY 等。
    """

    def __init__(self):
        cfg = _section("llm")
        self.default: str = os.getenv("DEFAULT_LLM") or cfg.get("default") or "gemini"
        self.dry_run: bool = (
            os.getenv("LLM_DRY_RUN", "").lower() == "true" or cfg.get("dry_run") is True
        )

    def get_provider(self, name: str) -> Dict[str, Any]:
        raw = _llm_provider_raw(name)
        defaults = _LLM_DEFAULTS.get(name) or {}

        # 1) HOUNDMASTER_LLM__{PROVIDER}__API_KEY（优先）
        # 2) 常见变量名（如 GEMINI_API_KEY）
        normalized = name.upper().replace("-", "_")
        api_key = os.getenv(f"HOUNDMASTER_LLM__{normalized}__API_KEY")
        if not api_key:
            legacy_key = _LLM_ENV_KEYS.get(name.split("-")[0])
            api_key = os.getenv(legacy_key) if legacy_key else None
        api_key = api_key or raw.get("api_key") or ""
        return {
            "api_key": api_key,
            "base_url": raw.get("base_url") or defaults.get("base_url") or "",
            "default_model": raw.get("default_model") or defaults.get("default_model") or "",
            "params": raw.get("params") or {},
        }

    def is_available(self, name: str) -> bool:
        """检查某 provider 是否已配置 api_key"""
        key = (self.get_provider(name).get("api_key") or "").strip()
        return bool(key)


@dataclass
class PathSettings:
    base: Path = field(default_factory=lambda: Path(__file__).parent.parent)

    @property
    def data(self) -> Path:
        return self.base / "data"

    @property
    def logs(self) -> Path:
        return self.base / "logs"

    def ensure_dirs(self):
        for p in [self.data, self.logs]:
            p.mkdir(parents=True, exist_ok=True)


def _per_chain(raw: Dict[str, Any], defaults: Dict[str, str], env_prefix: str) -> Dict[str, str]:
    """按链合并默认值、配置文件与环境变量（{env_prefix}{CHAIN}）"""
    merged = dict(defaults)
    merged.update({k: str(v) for k, v in (raw or {}).items() if v})
    for chain in list(merged):
        env_val = os.getenv(f"{env_prefix}{chain.upper()}")
        if env_val:
            merged[chain] = env_val
    return merged


class Settings:
    def __init__(self):
        self.env = os.getenv("HOUNDMASTER_ENV", "dev")

        ls = _section("listing")
        fd = ls.get("default_filters") or {}
        self.listing = ListingSettings(
            base_url=str(ls.get("base_url", "https://api-mainnet.magiceden.dev/v3/rtp")).rstrip("/"),
            api_key=os.getenv("MAGIC_EDEN_API_KEY") or str(ls.get("api_key") or ""),
            max_per_second=int(ls.get("max_per_second", 2)),
            min_interval_ms=int(ls.get("min_interval_ms", 600)),
            max_retries=int(ls.get("max_retries", 3)),
            backoff_multiplier=float(ls.get("backoff_multiplier", 4.0)),
            request_timeout_seconds=int(ls.get("request_timeout_seconds", 30)),
            defaults=ListingFilterDefaults(
                max_age_months=int(fd.get("max_age_months", 6)),
                min_floor_price=float(fd.get("min_floor_price", 0.1)),
                min_total_collections=int(fd.get("min_total_collections", 200)),
                limit=int(fd.get("limit", 1000)),
                chain=str(fd.get("chain", "ethereum")),
            ),
        )

        ex = _section("explorer")
        self.explorer = ExplorerSettings(
            api_key=os.getenv("ETHERSCAN_API_KEY") or str(ex.get("api_key") or ""),
            base_urls=_per_chain(ex.get("base_urls"), _EXPLORER_DEFAULTS, "HOUNDMASTER_EXPLORER__"),
            max_per_second=int(ex.get("max_per_second", 5)),
            min_interval_ms=int(ex.get("min_interval_ms", 200)),
            buffer_ms=int(ex.get("buffer_ms", 100)),
            max_retries=int(ex.get("max_retries", 3)),
            backoff_multiplier=float(ex.get("backoff_multiplier", 4.0)),
            request_timeout_seconds=int(ex.get("request_timeout_seconds", 30)),
        )

        rp = _section("rpc")
        self.rpc = RpcSettings(
            urls=_per_chain(rp.get("urls"), _RPC_DEFAULTS, "HOUNDMASTER_RPC__"),
            request_timeout_seconds=int(rp.get("request_timeout_seconds", 30)),
            max_events_in_prompt=int(rp.get("max_events_in_prompt", 200)),
        )

        sc = _section("scraper")
        self.scraper = ScraperSettings(
            headless=bool(sc.get("headless", True)),
            user_agent=str(sc.get("user_agent") or ScraperSettings.user_agent),
            navigation_timeout_ms=int(sc.get("navigation_timeout_ms", 30000)),
            sitemap_timeout_ms=int(sc.get("sitemap_timeout_ms", 10000)),
            settle_ms=int(sc.get("settle_ms", 2000)),
            max_pages=int(sc.get("max_pages", 20)),
            blocked_domains=list(sc.get("blocked_domains") or _BLOCKED_DOMAINS),
            blocked_extensions=list(sc.get("blocked_extensions") or _BLOCKED_EXTENSIONS),
        )

        wa = _section("website_analysis")
        self.website_analysis = WebsiteAnalysisSettings(
            ttl_hours=float(wa.get("ttl_hours", 24)),
            max_content_chars=int(wa.get("max_content_chars", 60000)),
        )

        an = _section("analysis")
        self.analysis = AnalysisSettings(
            per_contract_timeout_seconds=float(an.get("per_contract_timeout_seconds", 180)),
            max_external_candidates=int(an.get("max_external_candidates", 3)),
            max_source_chars=int(an.get("max_source_chars", 120000)),
        )

        a = _section("api")
        origins = a.get("cors_origins") or ["*"]
        if isinstance(origins, str):
            origins = [x.strip() for x in origins.split(",") if x.strip()]
        self.api = ApiSettings(
            host=str(a.get("host", os.getenv("API_HOST", "0.0.0.0"))),
            port=int(a.get("port", os.getenv("API_PORT", "8000"))),
            cors_origins=origins,
        )

        lg = _section("logging")
        self.logging = LoggingSettings(
            level=str(lg.get("level", os.getenv("HOUNDMASTER_LOG_LEVEL", "INFO"))).upper(),
            log_dir=str(lg.get("log_dir", "logs/app")),
            max_age_days=int(lg.get("max_age_days", 14)),
        )

        self.llm = LLMSettings()
        lp = _section("performance").get("llm") or {}
        self.perf_llm = LLMPerfSettings(
            timeout_seconds=int(lp.get("timeout_seconds", 120)),
            max_retries=int(lp.get("max_retries", 3)),
            retry_backoff=float(lp.get("retry_backoff", 2.0)),
        )
        self.path = PathSettings()

    def print_info(self):
        print(f"""
========================================
  Houndmaster 合约情报服务
========================================
  环境: {self.env}
  列表 API: {self.listing.base_url} ({self.listing.max_per_second} req/s, {self.listing.min_interval_ms}ms)
  浏览器 API: {self.explorer.max_per_second} req/s, {self.explorer.min_interval_ms}ms + {self.explorer.buffer_ms}ms
  LLM: {self.llm.default}{' (dry-run)' if self.llm.dry_run else ''}
  链: {', '.join(sorted(self.explorer.base_urls))}
========================================
        """)


# 全局单例
settings = Settings()
