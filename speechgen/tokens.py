"""Rough token estimation for mixed Korean/English text.

Planning heuristics only; they avoid pulling in a tokenizer.
"""

from __future__ import annotations

import math
import re

KOREAN_CHAR_TO_TOKEN_RATIO = 0.7
OTHER_CHAR_TO_TOKEN_RATIO = 0.25
_KOREAN_PATTERN = re.compile(r"[\u3131-\uD79D]")


def estimate_token_count(text: str) -> int:
    """Estimate the token count of ``text``."""
    if not text:
        return 0
    korean_chars = len(_KOREAN_PATTERN.findall(text))
    other_chars = len(text) - korean_chars
    return math.ceil(korean_chars * KOREAN_CHAR_TO_TOKEN_RATIO + other_chars * OTHER_CHAR_TO_TOKEN_RATIO)
