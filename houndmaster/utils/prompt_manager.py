"""Prompt asset manager: singleton that loads and caches .txt prompt templates."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict

_PROMPTS_DIR = Path(__file__).resolve().parents[1] / "prompts"


class PromptManager:
    """Singleton prompt template manager.

    Templates live in ``houndmaster/prompts/`` and are rendered with
    ``str.format(**kwargs)``; literal JSON braces in a template are doubled.
    Each file is read from disk at most once per process.

    Usage::

        pm = PromptManager()
        text = pm.render("contract_source_analysis.txt", source_code=src, abi=abi)
    """

    _instance: PromptManager | None = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls) -> "PromptManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    inst = super().__new__(cls)
                    inst._cache: Dict[str, str] = {}
                    cls._instance = inst
        return cls._instance

    def load(self, template_name: str) -> str:
        if template_name not in self._cache:
            self._cache[template_name] = (_PROMPTS_DIR / template_name).read_text(encoding="utf-8")
        return self._cache[template_name]

    def render(self, template_name: str, **kwargs: object) -> str:
        return self.load(template_name).format(**kwargs)

    def invalidate(self, template_name: str | None = None) -> None:
        """Clear one or all cached templates."""
        if template_name is None:
            self._cache.clear()
        else:
            self._cache.pop(template_name, None)
