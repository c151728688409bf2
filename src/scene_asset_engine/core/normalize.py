from __future__ import annotations

import json
import re
from typing import Any

_CURLY_QUOTES_RE = re.compile(r"[‘’]")
_DISALLOWED_RE = re.compile(r"[^\w\s']|_")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_match_key(value: str) -> str:
    value = (value or "").lower()
    value = _CURLY_QUOTES_RE.sub("'", value)
    value = _DISALLOWED_RE.sub("", value)
    value = _WHITESPACE_RE.sub(" ", value)
    return value.strip()


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j - 1], current[j - 1], previous[j]) + 1)
        previous = current
    return previous[-1]


def fuzzy_match(query: str, target: str, threshold: float = 0.7) -> tuple[bool, float]:
    """Return ``(is_match, confidence)`` for two free-text names.

    Names that normalize to nothing never match. Exact normalized equality
    scores 1.0 and containment in either direction scores 0.9. Anything
    else is scored by normalized edit distance and only matches at or
    above ``threshold``.
    """
    q = normalize_match_key(query)
    t = normalize_match_key(target)

    if not q or not t:
        return False, 0.0
    if q == t:
        return True, 1.0
    if q in t or t in q:
        return True, 0.9

    similarity = 1 - (levenshtein_distance(q, t) / max(len(q), len(t)))
    return similarity >= threshold, similarity


def portrait_key(character_name: str, expression: str) -> str:
    return f"{normalize_match_key(character_name)}|{normalize_match_key(expression or 'neutral')}"


def dump_json(data: dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=True, indent=2)
