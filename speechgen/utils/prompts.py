"""Prompt templates shipped under ``speechgen/prompts``."""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Mapping

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


@lru_cache(maxsize=None)
def _template(name: str) -> str:
    path = PROMPTS_DIR / f"{name}.txt"
    if not path.is_file():
        raise FileNotFoundError(f"Unknown prompt template {name!r} (looked in {PROMPTS_DIR})")
    return path.read_text(encoding="utf-8")


@lru_cache(maxsize=None)
def _field(key: str) -> re.Pattern[str]:
    return re.compile(r"\{\{\s*" + re.escape(key) + r"\s*\}\}")


def load_prompt(name: str, variables: Mapping[str, object] | None = None) -> str:
    """Render prompt ``name`` with ``variables`` filled into its ``{{key}}`` fields.

    Fields without a variable are left in place; ``None`` renders as empty text.
    """
    rendered = _template(name)
    for key, value in (variables or {}).items():
        text = "" if value is None else str(value)
        rendered = _field(key).sub(lambda _match: text, rendered)
    return rendered


__all__ = ["PROMPTS_DIR", "load_prompt"]
