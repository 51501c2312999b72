"""
Probability Scorer

Additive weighted success estimate over matched categories.

    score = min(BASE_SCORE + sum(weights of matched categories)
                + EMERGENCY_WEIGHT if emergency terms present, MAX_SCORE)

Weights add without per-category caps; only the final clamp bounds the
result, so the estimate never reports certainty.
"""
from typing import Dict, Iterable, Optional

from ...models.ssot import IssueCategory
from .keyword_matcher import KeywordMatcher, get_matcher, has_emergency_context


BASE_SCORE = 45
MAX_SCORE = 95
EMERGENCY_WEIGHT = 15

CATEGORY_WEIGHTS: Dict[IssueCategory, int] = {
    IssueCategory.SIGNAGE: 25,
    IssueCategory.ACCESSIBILITY: 20,
    IssueCategory.LOADING_EXEMPTION: 15,
    IssueCategory.PAYMENT_SYSTEM: 10,
    IssueCategory.TIMING: 0,
}


def score_categories(categories: Iterable[IssueCategory], emergency: bool = False) -> int:
    """Score an already-matched category set."""
    total = BASE_SCORE
    for category in set(categories):
        total += CATEGORY_WEIGHTS.get(category, 0)
    if emergency:
        total += EMERGENCY_WEIGHT
    return max(0, min(total, MAX_SCORE))


class ProbabilityScorer:
    """Text -> integer success estimate in [0, MAX_SCORE]."""

    def __init__(self, matcher: Optional[KeywordMatcher] = None):
        self.matcher = matcher or get_matcher()

    def score(self, text: Optional[str]) -> int:
        return score_categories(self.matcher.match(text), has_emergency_context(text))


def score_text(text: Optional[str]) -> int:
    return ProbabilityScorer().score(text)
