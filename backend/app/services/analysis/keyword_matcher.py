"""
Keyword Matcher

Deterministic keyword-based issue detection.
NO LLMs used here - pure substring containment against a fixed table.

A category fires when any of its keywords appears anywhere in the
lower-cased text. Categories are independent; every one that fires is kept.
"""
from __future__ import annotations
from typing import Dict, List, Optional, Tuple

from ...models.ssot import IssueCategory


# =============================================================================
# KEYWORD TABLE
# =============================================================================

CATEGORY_KEYWORDS: Dict[IssueCategory, Tuple[str, ...]] = {
    IssueCategory.SIGNAGE: (
        "sign",
        "unclear",
        "visible",
        "obscured",
        "hidden",
        "faded",
        "road marking",
        "bay marking",
    ),
    IssueCategory.TIMING: (
        "time",
        "minute",
        "hour",
        "grace",
        "arrived late",
        "too early",
        "clock",
        "expired",
    ),
    IssueCategory.PAYMENT_SYSTEM: (
        "pay",
        "machine",
        "meter",
        "card reader",
        "parking app",
        "out of order",
        "ringgo",
        "paybyphone",
    ),
    IssueCategory.ACCESSIBILITY: (
        "disabled",
        "disability",
        "blue badge",
        "wheelchair",
        "accessib",
        "mobility",
    ),
    IssueCategory.LOADING_EXEMPTION: (
        "loading",
        "unloading",
        "delivery",
        "delivering",
        "collecting goods",
    ),
}

# Checked directly against the text, independent of the category table
EMERGENCY_KEYWORDS: Tuple[str, ...] = (
    "emergency",
    "medical",
    "hospital",
    "ambulance",
    "doctor",
    "paramedic",
)


def _normalize(text: Optional[str]) -> str:
    return (text or "").lower()


class KeywordMatcher:
    """Maps free text to issue categories using a category -> keywords table."""

    def __init__(self, table: Optional[Dict[IssueCategory, Tuple[str, ...]]] = None):
        self.table = table or CATEGORY_KEYWORDS

    def matched_keywords(self, text: Optional[str]) -> Dict[IssueCategory, List[str]]:
        """Keywords that fired, per category, in category declaration order."""
        haystack = _normalize(text)
        hits: Dict[IssueCategory, List[str]] = {}
        for category in IssueCategory:
            found = [kw for kw in self.table.get(category, ()) if kw in haystack]
            if found:
                hits[category] = found
        return hits

    def match(self, text: Optional[str]) -> List[IssueCategory]:
        """Matched categories, ordered as declared in IssueCategory."""
        return list(self.matched_keywords(text).keys())


def has_emergency_context(text: Optional[str]) -> bool:
    """True when the text mentions an emergency or medical situation."""
    haystack = _normalize(text)
    return any(kw in haystack for kw in EMERGENCY_KEYWORDS)


# =============================================================================
# CONVENIENCE
# =============================================================================

_matcher: Optional[KeywordMatcher] = None


def get_matcher() -> KeywordMatcher:
    """Get or create the default keyword matcher singleton."""
    global _matcher
    if _matcher is None:
        _matcher = KeywordMatcher()
    return _matcher


def match_categories(text: Optional[str]) -> List[IssueCategory]:
    return get_matcher().match(text)
