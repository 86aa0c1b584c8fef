"""LLM 输出的 JSON 抽取：去掉 markdown 代码块围栏后解析。"""

import json
import re
from typing import Any, Dict

_FENCE_OPEN = re.compile(r"^```(?:json|JSON)?\s*")
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


def strip_code_fence(text: str) -> str:
    text = (text or "").strip()
    text = _FENCE_OPEN.sub("", text)
    return _FENCE_CLOSE.sub("", text)


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    解析 LLM 返回的 JSON 对象（允许 ```json 围栏、前后多余说明文字）。
    无法得到 dict 时抛 ValueError。
    """
    raw = strip_code_fence(text)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        # 模型偶尔在 JSON 前后加说明；退而取最外层花括号
        start, end = raw.find("{"), raw.rfind("}")
        if start == -1 or end <= start:
            raise ValueError(f"no JSON object in LLM output: {raw[:200]!r}") from None
        data = json.loads(raw[start:end + 1])
    if not isinstance(data, dict):
        raise ValueError(f"expected JSON object, got {type(data).__name__}")
    return data
