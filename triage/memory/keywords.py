"""Keyword, person and project extraction from capture text."""

import re
from typing import Iterable, List

MIN_TOKEN_LENGTH = 2
MAX_TOKEN_LENGTH = 8
MAX_GENERIC_TOKENS = 5
MAX_CJK_TOKENS = 5
MAX_KEYWORDS = 8

# Runs of letters/digits in any script; underscore counts as a separator
_TOKEN_RE = re.compile(r"[^\W_]+")
_CJK_RE = re.compile(r"[\u4e00-\u9fa5]{2,6}")

PERSON_PATTERNS: List[re.Pattern[str]] = [
    re.compile(r"[\u4e00-\u9fa5]{1,2}(?:先生|小姐|总|哥|姐)"),
    re.compile(r"(?:小|老)[\u4e00-\u9fa5]{1,2}"),
    re.compile(r"@[\w\u4e00-\u9fa5]+"),
]

PROJECT_PATTERNS: List[re.Pattern[str]] = [
    re.compile(r"[\u4e00-\u9fa5a-zA-Z0-9]{2,10}(?:项目|系统|平台|产品|APP|app)"),
    re.compile(r"\[([^\]]+)\]"),
]


def _dedupe(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(items))


def extract_keywords(text: str) -> List[str]:
    """Extract up to 8 keywords from ``text``.

    Generic tokens (2-8 characters between non-alphanumeric boundaries, first
    five) come before CJK ideograph runs (2-6 characters, first five); the
    combined list is deduplicated in order and capped.
    """
    tokens = [
        token
        for token in _TOKEN_RE.findall(text)
        if MIN_TOKEN_LENGTH <= len(token) <= MAX_TOKEN_LENGTH
    ][:MAX_GENERIC_TOKENS]
    cjk = _CJK_RE.findall(text)[:MAX_CJK_TOKENS]
    return _dedupe(tokens + cjk)[:MAX_KEYWORDS]


def detect_people(text: str) -> List[str]:
    """Names like 王先生, 小李, 老张 or @handle."""
    found: List[str] = []
    for pattern in PERSON_PATTERNS:
        found.extend(match.group(0) for match in pattern.finditer(text))
    return _dedupe(found)


def detect_projects(text: str) -> List[str]:
    """Project/product names like 支付系统 or [Apollo]."""
    found: List[str] = []
    for pattern in PROJECT_PATTERNS:
        for match in pattern.finditer(text):
            # Bracketed names are stored without the brackets
            found.append(match.group(1) if match.groups() else match.group(0))
    return _dedupe(name.strip() for name in found if name.strip())
