"""
Compliance Analysis Pipeline

Text → KeywordMatcher → ProbabilityScorer → ComplianceAnalysis (free)
Text → KeywordMatcher → LetterComposer → AppealLetter (gated by caller)

The pipeline is a pure transformation layer. It never decides whether
the caller is entitled to the letter; that belongs to the PaymentGate.
"""
from datetime import date
from typing import List, Optional
import logging

from ...models.ssot import ComplianceAnalysis, IssueCategory, TicketDetails
from ...models.letter_object import AppealLetter
from ..letter_generator import LetterComposer, get_composer
from .keyword_matcher import KeywordMatcher, get_matcher, has_emergency_context
from .probability_scorer import score_categories

logger = logging.getLogger(__name__)


CATEGORY_DESCRIPTIONS = {
    IssueCategory.SIGNAGE: "signage may have been missing, obscured or unclear",
    IssueCategory.TIMING: "the recorded times may not prove a contravention",
    IssueCategory.PAYMENT_SYSTEM: "the payment system may have failed",
    IssueCategory.ACCESSIBILITY: "disability or accessibility duties may apply",
    IssueCategory.LOADING_EXEMPTION: "a loading exemption may apply",
}


def build_summary(categories: List[IssueCategory], probability: int, emergency: bool) -> str:
    """Short human-readable summary for the free analysis."""
    if categories:
        count = len(categories)
        noun = "issue" if count == 1 else "issues"
        findings = "; ".join(CATEGORY_DESCRIPTIONS[c] for c in categories)
        lines = [f"We found {count} potential compliance {noun}: {findings}."]
    else:
        lines = [
            "No specific compliance issue was detected. A general review of the legal "
            "basis of the notice is recommended."
        ]
    if emergency:
        lines.append("The emergency circumstances you describe may justify discretionary cancellation.")
    lines.append(f"Estimated chance of a successful appeal: {probability}%.")
    return " ".join(lines)


class ComplianceAnalysisPipeline:
    """Orchestrates matcher, scorer and composer into the two user-facing artifacts."""

    def __init__(
        self,
        matcher: Optional[KeywordMatcher] = None,
        composer: Optional[LetterComposer] = None,
    ):
        self.matcher = matcher or get_matcher()
        self.composer = composer or get_composer()

    def analyze(self, text: str) -> ComplianceAnalysis:
        """Free analysis: categories, probability and summary."""
        categories = self.matcher.match(text)
        emergency = has_emergency_context(text)
        probability = score_categories(categories, emergency)
        logger.info(
            f"Analysis complete: categories={[c.value for c in categories]} "
            f"probability={probability}"
        )
        return ComplianceAnalysis(
            categories=categories,
            probability=probability,
            summary=build_summary(categories, probability, emergency),
            emergency=emergency,
        )

    def generate_appeal(
        self,
        text: str,
        ticket: Optional[TicketDetails] = None,
        today: Optional[date] = None,
    ) -> AppealLetter:
        """Full appeal letter. Callers must pass the PaymentGate first."""
        categories = self.matcher.match(text)
        return self.composer.compose(
            categories,
            text,
            ticket=ticket,
            emergency=has_emergency_context(text),
            today=today,
        )


_pipeline: Optional[ComplianceAnalysisPipeline] = None


def get_pipeline() -> ComplianceAnalysisPipeline:
    """Get or create the default pipeline singleton."""
    global _pipeline
    if _pipeline is None:
        _pipeline = ComplianceAnalysisPipeline()
    return _pipeline
