"""
Compliance Analysis

Deterministic keyword-driven analysis of a user's PCN narrative.

Components:
- KeywordMatcher: text -> issue categories
- ProbabilityScorer: text -> success estimate
- ComplianceAnalysisPipeline: analyze() and generate_appeal()
"""
from .keyword_matcher import (
    KeywordMatcher,
    CATEGORY_KEYWORDS,
    EMERGENCY_KEYWORDS,
    get_matcher,
    match_categories,
    has_emergency_context,
)
from .probability_scorer import (
    ProbabilityScorer,
    BASE_SCORE,
    MAX_SCORE,
    CATEGORY_WEIGHTS,
    score_categories,
    score_text,
)
from .pipeline import ComplianceAnalysisPipeline, get_pipeline, build_summary

__all__ = [
    "KeywordMatcher",
    "CATEGORY_KEYWORDS",
    "EMERGENCY_KEYWORDS",
    "get_matcher",
    "match_categories",
    "has_emergency_context",
    "ProbabilityScorer",
    "BASE_SCORE",
    "MAX_SCORE",
    "CATEGORY_WEIGHTS",
    "score_categories",
    "score_text",
    "ComplianceAnalysisPipeline",
    "get_pipeline",
    "build_summary",
]
