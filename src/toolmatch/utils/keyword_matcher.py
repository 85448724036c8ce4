"""
Keyword matching utilities for task classification.
"""

import re
from functools import lru_cache
from typing import Iterable, List


@lru_cache(maxsize=512)
def _keyword_pattern(keyword: str) -> "re.Pattern[str]":
    # Word-boundary match; allows a trailing plural/verb suffix ("scrapers", "designing")
    escaped = r"\s+".join(re.escape(part) for part in keyword.lower().split())
    return re.compile(rf"\b{escaped}(?:s|es|ing|ed|er|ers)?\b")


def find_keyword_matches(text: str, keywords: Iterable[str]) -> List[str]:
    """
    Return every keyword that appears in text (case-insensitive, whole words).

    Args:
        text: Text to search
        keywords: Candidate keywords or multi-word phrases

    Returns:
        Matched keywords, in the order they were given
    """
    if not text:
        return []

    text_lower = text.lower()
    return [kw for kw in keywords if _keyword_pattern(kw).search(text_lower)]


def match_keywords(text: str, keywords: Iterable[str]) -> bool:
    """
    Check if any keyword appears in text (case-insensitive, whole words).

    Args:
        text: Text to search
        keywords: List of keywords

    Returns:
        True if any keyword matches, False otherwise
    """
    return bool(find_keyword_matches(text, keywords))
