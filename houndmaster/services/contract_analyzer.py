"""
合约 mint 收入分析：基于证据的显式状态机。

    LOAD_EVIDENCE ──(无 source 或 ABI)──────────────────────────────→ DONE (low)
        │
    SOURCE_ANALYSIS ──(LLM 失败 / JSON 无法解析)───────────────────→ DONE (low)
        │  └─(价格定义在外部合约)→ RESOLVE_EXTERNAL_PRICE ─┐
        ├──────────────────────────────────────────────────┘
    SUPPLY_CALCULATION ──(high + 固定价 + 价格可解析 + 读到供应量)──→ DONE (high)
        │  └─(价格字符串非法)──────────────────────────────────────→ DONE (low)
    EVENT_ANALYSIS ──(有事件)──→ LLM 推断 ──────────────────────────→ DONE
        │
    INSUFFICIENT_DATA ─────────────────────────────────────────────→ DONE (low)

每个状态处理函数只读写 AnalysisContext 并返回下一个状态，可以脱离网络单独测试。
LLM 相关的所有失败都转成低置信度的说明性结果，不向调用方抛出。
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config.settings import settings
from houndmaster.chains import Chain, is_valid_address, native_token, normalize_address
from houndmaster.errors import LLMCallError
from houndmaster.llm.completion import LLMCompleter
from houndmaster.log import get_logger
from houndmaster.observability import metrics, tracer
from houndmaster.services.verification_store import VerificationStore
from houndmaster.sources.onchain import OnChainReader
from houndmaster.utils.json_utils import parse_json_object
from houndmaster.utils.prompt_manager import PromptManager

logger = get_logger(__name__)

CONFIDENCE_LEVELS = ("high", "medium", "low")

MISSING_SOURCE = "verified contract source code"
MISSING_ABI = "contract ABI"
MISSING_EVENTS = "mint event logs"
MISSING_PRICE = "price definition"
MISSING_SUPPLY = "supply data"

_PRICE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?|\.\d+)\s*([A-Za-z]+)?\s*$")
_UNIT_MULTIPLIERS = {"wei": Decimal(1), "gwei": Decimal(10) ** 9}
_NATIVE_MULTIPLIER = Decimal(10) ** 18


def parse_price_to_wei(price: Any) -> int:
    """
    "0.01" / "0.01 ETH" / "10 gwei" / "5000 wei" → wei 整数。
    无单位或其它单位（ETH、APE、MATIC…）一律按 18 位小数处理，调用方需先用
    is_native_denomination 排除 ERC-20 计价（如 USDC 为 6 位）；格式非法抛 ValueError。
    """
    m = _PRICE_RE.match(str(price)) if price is not None else None
    if not m:
        raise ValueError(f"unparseable price: {price!r}")
    amount, unit = m.group(1), (m.group(2) or "").lower()
    try:
        value = Decimal(amount) * _UNIT_MULTIPLIERS.get(unit, _NATIVE_MULTIPLIER)
    except InvalidOperation as e:
        raise ValueError(f"unparseable price: {price!r}") from e
    return int(value)


def price_unit(price: Any) -> str:
    """价格字符串里的单位（小写）；没有单位或无法解析返回空串"""
    m = _PRICE_RE.match(str(price)) if price is not None else None
    return (m.group(2) or "").lower() if m else ""


def is_native_denomination(unit: str, chain: Chain) -> bool:
    """wei / gwei / 链原生币（含 W 前缀的包装币）才能按 18 位小数换算"""
    native = native_token(chain).lower()
    return unit in ("", "wei", "gwei", native, "w" + native)


def _flag(value: Any) -> bool:
    """LLM 返回的布尔字段：只认 true / "true" / "yes" / 1"""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return False


def _confidence(value: Any) -> str:
    v = str(value or "").strip().lower()
    return v if v in CONFIDENCE_LEVELS else "low"


def _optional_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _wei_string(value: Any) -> Optional[str]:
    """LLM 给出的 totalRaised 统一成 wei 整数字符串；无法解释时返回 None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    text = str(value).strip().replace(",", "")
    if text.isdigit():
        return text
    try:
        return str(parse_price_to_wei(text))
    except ValueError:
        return None


class AnalysisState(str, Enum):
    LOAD_EVIDENCE = "load_evidence"
    SOURCE_ANALYSIS = "source_analysis"
    RESOLVE_EXTERNAL_PRICE = "resolve_external_price"
    SUPPLY_CALCULATION = "supply_calculation"
    EVENT_ANALYSIS = "event_analysis"
    INSUFFICIENT_DATA = "insufficient_data"
    DONE = "done"


@dataclass
class MintAnalysisResult:
    total_raised: Optional[str]
    currency: Optional[str]
    confidence: str
    explanation: str
    missing_info: List[str] = field(default_factory=list)
    mint_count: Optional[int] = None
    average_mint_price: Optional[str] = None

    @classmethod
    def low(cls, explanation: str, missing: Optional[List[str]] = None, currency: Optional[str] = None):
        return cls(None, currency, "low", explanation, list(missing or []))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "totalRaised": self.total_raised,
            "currency": self.currency,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "missingInfo": list(self.missing_info),
        }
        if self.mint_count is not None:
            out["mintCount"] = self.mint_count
        if self.average_mint_price is not None:
            out["averageMintPrice"] = self.average_mint_price
        return out


@dataclass
class SourceAnalysis:
    mint_price: Optional[str] = None
    is_variable_price: bool = False
    is_external_price: bool = False
    max_supply: Optional[int] = None
    currency: Optional[str] = None
    mint_functions: List[str] = field(default_factory=list)
    confidence: str = "low"
    explanation: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceAnalysis":
        price = data.get("mintPrice")
        funcs = data.get("mintFunctions")
        return cls(
            mint_price=str(price).strip() if price not in (None, "") else None,
            is_variable_price=_flag(data.get("isVariablePrice")),
            is_external_price=_flag(data.get("isExternalPrice")),
            max_supply=_optional_int(data.get("maxSupply")),
            currency=str(data["currency"]) if data.get("currency") else None,
            mint_functions=[str(f) for f in funcs] if isinstance(funcs, list) else [],
            confidence=_confidence(data.get("confidence")),
            explanation=str(data.get("explanation") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mintPrice": self.mint_price,
            "isVariablePrice": self.is_variable_price,
            "isExternalPrice": self.is_external_price,
            "maxSupply": self.max_supply,
            "currency": self.currency,
            "mintFunctions": self.mint_functions,
            "confidence": self.confidence,
            "explanation": self.explanation,
        }


@dataclass
class AnalysisContext:
    """一次分析过程中在各状态间传递的证据"""
    address: str
    chain: Chain
    source_code: Optional[str] = None
    constructor_arguments: Optional[str] = None
    abi: List[Dict[str, Any]] = field(default_factory=list)
    has_abi: bool = False
    analysis: Optional[SourceAnalysis] = None
    price_source: Optional[str] = None
    supply: Optional[int] = None
    events: List[Dict[str, Any]] = field(default_factory=list)
    result: Optional[MintAnalysisResult] = None
    trail: List[str] = field(default_factory=list)

    @property
    def currency(self) -> str:
        if self.analysis and self.analysis.currency:
            return self.analysis.currency
        return native_token(self.chain)


class ContractAnalyzer:
    def __init__(
        self,
        store: VerificationStore,
        onchain: OnChainReader,
        llm: Optional[LLMCompleter] = None,
        prompts: Optional[PromptManager] = None,
        max_external_candidates: Optional[int] = None,
        max_source_chars: Optional[int] = None,
        max_events_in_prompt: Optional[int] = None,
    ):
        self.store = store
        self.onchain = onchain
        self.llm = llm or LLMCompleter()
        self.prompts = prompts or PromptManager()
        self.max_external_candidates = (
            max_external_candidates if max_external_candidates is not None
            else settings.analysis.max_external_candidates
        )
        self.max_source_chars = max_source_chars or settings.analysis.max_source_chars
        self.max_events_in_prompt = max_events_in_prompt or settings.rpc.max_events_in_prompt

        self._handlers: Dict[AnalysisState, Callable[[AnalysisContext], Awaitable[AnalysisState]]] = {
            AnalysisState.LOAD_EVIDENCE: self._load_evidence,
            AnalysisState.SOURCE_ANALYSIS: self._source_analysis,
            AnalysisState.RESOLVE_EXTERNAL_PRICE: self._resolve_external_price,
            AnalysisState.SUPPLY_CALCULATION: self._supply_calculation,
            AnalysisState.EVENT_ANALYSIS: self._event_analysis,
            AnalysisState.INSUFFICIENT_DATA: self._insufficient_data,
        }

    async def analyze(self, address: str, chain: Chain) -> MintAnalysisResult:
        ctx = AnalysisContext(address=normalize_address(address), chain=chain)
        state = AnalysisState.LOAD_EVIDENCE
        last = state
        while state is not AnalysisState.DONE:
            ctx.trail.append(state.value)
            last = state
            with tracer.start_as_current_span(f"contract_analyzer.{state.value}") as span:
                span.set_attribute("contract.address", ctx.address)
                span.set_attribute("contract.chain", chain.value)
                state = await self._handlers[state](ctx)

        result = ctx.result or MintAnalysisResult.low("Analysis ended without a result")
        metrics.analysis_total.labels(outcome=last.value, confidence=result.confidence).inc()
        logger.info(
            f"[analyzer] {ctx.address}@{chain.value}: {' → '.join(ctx.trail)} "
            f"=> {result.confidence}, totalRaised={result.total_raised}"
        )
        return result

    # --------------------------------------------------------
    # LLM 辅助
    # --------------------------------------------------------

    async def _ask_json(self, template: str, **kwargs: Any) -> Dict[str, Any]:
        """渲染模板 → LLM → JSON；LLMCallError / ValueError 由调用方处理"""
        text = await self.llm.complete(self.prompts.render(template, **kwargs))
        return parse_json_object(text)

    def _clip_source(self, source: Optional[str]) -> str:
        source = source or ""
        if len(source) > self.max_source_chars:
            return source[: self.max_source_chars] + "\n// ... truncated ..."
        return source

    # --------------------------------------------------------
    # 状态处理
    # --------------------------------------------------------

    async def _load_evidence(self, ctx: AnalysisContext) -> AnalysisState:
        data = await self.store.ensure_verified(ctx.address, ctx.chain)
        ctx.source_code = data.source_code or None
        ctx.constructor_arguments = data.constructor_arguments
        if data.abi:
            try:
                parsed = json.loads(data.abi)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list):
                ctx.abi = parsed
                ctx.has_abi = True

        missing = []
        if not ctx.source_code:
            missing.append(MISSING_SOURCE)
        if not ctx.has_abi:
            missing.append(MISSING_ABI)
        if missing:
            explanation = "No verified source code found" if not ctx.source_code else "No contract ABI found"
            ctx.result = MintAnalysisResult.low(explanation, missing)
            return AnalysisState.DONE
        return AnalysisState.SOURCE_ANALYSIS

    async def _source_analysis(self, ctx: AnalysisContext) -> AnalysisState:
        try:
            data = await self._ask_json(
                "contract_source_analysis.txt",
                chain=ctx.chain.value,
                address=ctx.address,
                native_token=native_token(ctx.chain),
                abi=json.dumps(ctx.abi),
                source_code=self._clip_source(ctx.source_code),
            )
        except LLMCallError as e:
            ctx.result = MintAnalysisResult.low(f"Source code analysis failed: {e}", [MISSING_PRICE])
            return AnalysisState.DONE
        except ValueError as e:
            ctx.result = MintAnalysisResult.low(f"Could not parse source code analysis response: {e}", [MISSING_PRICE])
            return AnalysisState.DONE

        ctx.analysis = SourceAnalysis.from_dict(data)
        logger.debug(f"[analyzer] {ctx.address} source analysis: {ctx.analysis.to_dict()}")
        if ctx.analysis.is_external_price and not ctx.analysis.mint_price:
            return AnalysisState.RESOLVE_EXTERNAL_PRICE
        return AnalysisState.SUPPLY_CALCULATION

    async def _resolve_external_price(self, ctx: AnalysisContext) -> AnalysisState:
        try:
            data = await self._ask_json(
                "external_price_candidates.txt",
                chain=ctx.chain.value,
                address=ctx.address,
                source_analysis=json.dumps(ctx.analysis.to_dict()),
                constructor_arguments=ctx.constructor_arguments or "(none)",
                source_code=self._clip_source(ctx.source_code),
            )
        except (LLMCallError, ValueError) as e:
            logger.warning(f"[analyzer] {ctx.address} 外部定价候选获取失败: {e}")
            return AnalysisState.SUPPLY_CALCULATION

        raw_candidates = data.get("candidates")
        if not isinstance(raw_candidates, list):
            logger.warning(f"[analyzer] {ctx.address} 外部定价候选格式不对: {type(raw_candidates).__name__}")
            raw_candidates = []
        candidates: List[str] = []
        for item in raw_candidates:
            addr = item.get("address") if isinstance(item, dict) else item
            if not is_valid_address(addr):
                continue
            addr = normalize_address(addr)
            if addr != ctx.address and addr not in candidates:
                candidates.append(addr)
        candidates = candidates[: self.max_external_candidates]

        for candidate in candidates:
            referenced = await self.store.ensure_verified(candidate, ctx.chain)
            if not referenced.source_code:
                logger.debug(f"[analyzer] 候选 {candidate} 无已验证源码，跳过")
                continue
            try:
                found = await self._ask_json(
                    "external_price_extraction.txt",
                    chain=ctx.chain.value,
                    target_address=ctx.address,
                    candidate_address=candidate,
                    source_code=self._clip_source(referenced.source_code),
                )
            except (LLMCallError, ValueError) as e:
                logger.warning(f"[analyzer] 候选 {candidate} 价格提取失败: {e}")
                continue
            price = found.get("mintPrice")
            if price in (None, ""):
                continue

            ctx.analysis.mint_price = str(price).strip()
            ctx.analysis.is_variable_price = _flag(found.get("isVariablePrice"))
            ctx.analysis.confidence = _confidence(found.get("confidence"))
            if found.get("currency"):
                ctx.analysis.currency = str(found["currency"])
            ctx.price_source = candidate
            logger.info(f"[analyzer] {ctx.address} 价格来自外部合约 {candidate}: {ctx.analysis.mint_price}")
            break
        return AnalysisState.SUPPLY_CALCULATION

    async def _supply_calculation(self, ctx: AnalysisContext) -> AnalysisState:
        a = ctx.analysis
        if not (a and a.confidence == "high" and not a.is_variable_price and a.mint_price):
            return AnalysisState.EVENT_ANALYSIS

        try:
            price_wei = parse_price_to_wei(a.mint_price)
        except ValueError:
            ctx.result = MintAnalysisResult.low(
                f'Could not parse mint price "{a.mint_price}" as a numeric amount',
                [MISSING_PRICE],
                currency=ctx.currency,
            )
            return AnalysisState.DONE

        unit = price_unit(a.mint_price) or (a.currency or "").strip().lower()
        if not is_native_denomination(unit, ctx.chain):
            logger.info(f"[analyzer] {ctx.address} 价格以 {unit} 计价，非原生币，改用事件分析")
            return AnalysisState.EVENT_ANALYSIS

        ctx.supply = await self.onchain.read_supply(ctx.address, ctx.chain, ctx.abi)
        if ctx.supply is None:
            return AnalysisState.EVENT_ANALYSIS

        origin = f" (price defined in {ctx.price_source})" if ctx.price_source else ""
        ctx.result = MintAnalysisResult(
            total_raised=str(price_wei * ctx.supply),
            currency=ctx.currency,
            confidence="high",
            explanation=(
                f"Calculated from fixed mint price of {a.mint_price} {ctx.currency}"
                f" * total supply of {ctx.supply}{origin}"
            ),
        )
        return AnalysisState.DONE

    async def _event_analysis(self, ctx: AnalysisContext) -> AnalysisState:
        try:
            ctx.events = await self.onchain.get_mint_events(ctx.address, ctx.chain)
        except Exception as e:
            logger.warning(f"[analyzer] {ctx.address}@{ctx.chain.value} 事件查询失败: {e}")
            ctx.events = []
        if not ctx.events:
            return AnalysisState.INSUFFICIENT_DATA

        shown = ctx.events[: self.max_events_in_prompt]
        try:
            data = await self._ask_json(
                "mint_events_analysis.txt",
                chain=ctx.chain.value,
                address=ctx.address,
                event_count=len(ctx.events),
                shown_count=len(shown),
                events=json.dumps(shown),
                source_analysis=json.dumps(ctx.analysis.to_dict() if ctx.analysis else None),
            )
        except (LLMCallError, ValueError) as e:
            ctx.result = MintAnalysisResult.low(
                f"Found {len(ctx.events)} mint events but could not analyze them: {e}",
                currency=ctx.currency,
            )
            return AnalysisState.DONE

        ctx.result = MintAnalysisResult(
            total_raised=_wei_string(data.get("totalRaised")),
            currency=str(data.get("currency") or ctx.currency),
            confidence=_confidence(data.get("confidence")),
            explanation=str(data.get("explanation") or f"Inferred from {len(ctx.events)} mint events"),
            mint_count=_optional_int(data.get("mintCount")),
            average_mint_price=(
                str(data["averageMintPrice"]) if data.get("averageMintPrice") is not None else None
            ),
        )
        return AnalysisState.DONE

    async def _insufficient_data(self, ctx: AnalysisContext) -> AnalysisState:
        missing: List[str] = []
        if not ctx.source_code:
            missing.append(MISSING_SOURCE)
        if not ctx.has_abi:
            missing.append(MISSING_ABI)
        if not ctx.events:
            missing.append(MISSING_EVENTS)
        if not (ctx.analysis and ctx.analysis.mint_price):
            missing.append(MISSING_PRICE)
        if ctx.supply is None:
            missing.append(MISSING_SUPPLY)
        ctx.result = MintAnalysisResult.low(
            "Could not determine total raised from available data", missing, currency=None
        )
        return AnalysisState.DONE
