"""Heuristic entity extraction: capitalised word runs plus double-quoted substrings."""

from __future__ import annotations

import re
from typing import List

_PROPER_NOUN = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")
_QUOTED = re.compile(r'"([^"]+)"')
_STOPWORDS = frozenset({"The", "A", "An", "I"})
# speaker label on interaction records, not part of the message
_ROLE_PREFIX = re.compile(r"^\s*(?:User|Assistant|VI)\s*:\s*")


def extract_entities(text: str) -> List[str]:
    text = _ROLE_PREFIX.sub("", text, count=1)
    entities: List[str] = []
    for match in _PROPER_NOUN.finditer(text):
        candidate = match.group(0)
        if candidate in _STOPWORDS or candidate in entities:
            continue
        entities.append(candidate)

    for match in _QUOTED.finditer(text):
        quoted = match.group(1).strip()
        if quoted and quoted not in entities:
            entities.append(quoted)
    return entities


def overlap_ratio(left: List[str], right: List[str]) -> float:
    """Shared entities divided by the size of the union (0.0 when both are empty)."""
    a, b = set(left), set(right)
    union = len(a | b)
    if union == 0:
        return 0.0
    return len(a & b) / union


__all__ = ["extract_entities", "overlap_ratio"]
