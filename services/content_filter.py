"""Keyword screen for answer-seeking prompts.

Runs before quota and retrieval: a matching prompt is answered with a fixed
redirect message and never reaches the chat model.
"""

from __future__ import annotations

import re

_INAPPROPRIATE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"homework\s+answers?",
        r"cheat",
        r"solution\s+manual",
        r"exam\s+answers?",
        r"give\s+me\s+the\s+answer",
        r"just\s+tell\s+me\s+the\s+answer",
    )
]


def contains_inappropriate_content(text: str) -> bool:
    return any(p.search(text) for p in _INAPPROPRIATE_PATTERNS)
