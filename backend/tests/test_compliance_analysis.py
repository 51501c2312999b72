"""
Tests for the compliance analysis engine.

Test Coverage:
1. KeywordMatcher - categories, case folding, independence, no false timing hits
2. ProbabilityScorer - base score, additive weights, emergency bonus, clamp
3. LetterComposer - section order, grounds per category, general ground,
   evidence list, submission timing with concrete dates, determinism
4. ComplianceAnalysisPipeline - analyze() and generate_appeal()
"""
import pytest
from datetime import date

from app.models.ssot import GENERAL_REVIEW_LABEL, IssueCategory, TicketDetails
from app.models.letter_object import LetterSection
from app.services.analysis import (
    BASE_SCORE,
    MAX_SCORE,
    ComplianceAnalysisPipeline,
    KeywordMatcher,
    ProbabilityScorer,
    has_emergency_context,
    match_categories,
    score_categories,
    score_text,
)
from app.services.letter_generator import LetterComposer, parse_notice_date
from app.services.letter_generator import templates


SIGNAGE_TEXT = "The sign was completely unclear and obscured by a tree"
LETTER_DATE = date(2024, 1, 15)


# =============================================================================
# TEST: KEYWORD MATCHER
# =============================================================================

class TestKeywordMatcher:
    """Tests for table-driven category detection."""

    def test_signage_narrative(self):
        """Unclear, obscured sign → signage only"""
        assert match_categories(SIGNAGE_TEXT) == [IssueCategory.SIGNAGE]

    def test_case_insensitive(self):
        assert match_categories("THE SIGN WAS OBSCURED") == [IssueCategory.SIGNAGE]

    def test_multiple_categories_are_kept(self):
        """Categories are independent; all that fire are returned"""
        result = match_categories("I have a blue badge and the sign was hidden behind a van")
        assert set(result) == {IssueCategory.SIGNAGE, IssueCategory.ACCESSIBILITY}

    def test_payment_system(self):
        result = match_categories("The parking machine was out of order")
        assert result == [IssueCategory.PAYMENT_SYSTEM]

    def test_loading_exemption(self):
        result = match_categories("I was unloading a delivery for a customer")
        assert result == [IssueCategory.LOADING_EXEMPTION]

    def test_timing(self):
        result = match_categories("I arrived late because the clock was wrong")
        assert result == [IssueCategory.TIMING]

    def test_number_plate_is_not_a_timing_issue(self):
        """'plate' must not trip the timing table"""
        assert match_categories("My number plate is AB12 CDE") == []

    def test_no_match(self):
        assert match_categories("I parked on the street") == []

    def test_empty_and_none(self):
        assert match_categories("") == []
        assert match_categories(None) == []

    def test_results_within_vocabulary(self):
        texts = [
            SIGNAGE_TEXT,
            "meter broken, disabled driver, loading bay, sign faded, grace period",
            "nothing relevant here",
        ]
        for text in texts:
            assert set(match_categories(text)) <= set(IssueCategory)

    def test_results_follow_declaration_order(self):
        result = match_categories("loading while the meter was broken and the sign faded")
        assert result == [c for c in IssueCategory if c in result]

    def test_matched_keywords_reports_hits(self):
        hits = KeywordMatcher().matched_keywords(SIGNAGE_TEXT)
        assert set(hits[IssueCategory.SIGNAGE]) == {"sign", "unclear", "obscured"}

    def test_custom_table(self):
        matcher = KeywordMatcher({IssueCategory.TIMING: ("dawn",)})
        assert matcher.match("It was dawn") == [IssueCategory.TIMING]
        assert matcher.match(SIGNAGE_TEXT) == []


class TestEmergencyContext:
    """Tests for the independent emergency/medical check."""

    @pytest.mark.parametrize("text", [
        "I had a medical emergency",
        "Rushing to the HOSPITAL",
        "waiting for an ambulance",
    ])
    def test_detected(self, text):
        assert has_emergency_context(text) is True

    def test_not_detected(self):
        assert has_emergency_context(SIGNAGE_TEXT) is False


# =============================================================================
# TEST: PROBABILITY SCORER
# =============================================================================

class TestProbabilityScorer:
    """Tests for additive scoring with the 95 clamp."""

    def test_signage_scores_70(self):
        """45 base + 25 signage"""
        assert score_text(SIGNAGE_TEXT) == 70

    def test_no_match_is_base(self):
        assert score_text("I parked on the street") == BASE_SCORE

    def test_timing_carries_no_weight(self):
        assert score_text("I arrived late because the clock was wrong") == BASE_SCORE

    def test_payment_system_adds_10(self):
        assert score_text("The machine was out of order") == 55

    def test_emergency_adds_15(self):
        assert score_text("I had to rush to the hospital") == 60

    def test_weights_add(self):
        """signage 25 + accessibility 20"""
        assert score_text("I have a blue badge and the sign was hidden") == 90

    def test_clamped_at_95(self):
        text = "sign hidden, blue badge, loading goods, machine broken, medical emergency"
        assert score_text(text) == MAX_SCORE

    def test_order_does_not_matter(self):
        forward = score_categories([IssueCategory.SIGNAGE, IssueCategory.PAYMENT_SYSTEM])
        backward = score_categories([IssueCategory.PAYMENT_SYSTEM, IssueCategory.SIGNAGE])
        assert forward == backward == 80

    @pytest.mark.parametrize("text", [
        "",
        SIGNAGE_TEXT,
        "sign unclear meter disabled loading emergency doctor" * 3,
        "lorem ipsum",
    ])
    def test_always_in_range(self, text):
        score = ProbabilityScorer().score(text)
        assert BASE_SCORE <= score <= MAX_SCORE


# =============================================================================
# TEST: LETTER COMPOSER
# =============================================================================

class TestLetterComposer:
    """Tests for deterministic letter assembly."""

    def test_section_order(self):
        letter = LetterComposer().compose([IssueCategory.SIGNAGE], SIGNAGE_TEXT, today=LETTER_DATE)
        blocks = letter.get_all_blocks()
        assert blocks[0].section == LetterSection.HEADER
        assert blocks[-1].section == LetterSection.CLOSING
        sections = [b.section for b in blocks]
        assert sections.index(LetterSection.GROUNDS) < sections.index(LetterSection.EVIDENCE_REQUEST)
        assert sections.index(LetterSection.EVIDENCE_REQUEST) < sections.index(LetterSection.SUBMISSION_TIMING)

    def test_one_ground_per_category(self):
        categories = [IssueCategory.PAYMENT_SYSTEM, IssueCategory.SIGNAGE]
        letter = LetterComposer().compose(categories, "text", today=LETTER_DATE)
        grounds = letter.grounds()
        assert [g.category for g in grounds] == ["signage", "payment-system"]
        assert grounds[0].text == templates.GROUND_PARAGRAPHS[IssueCategory.SIGNAGE]

    def test_general_ground_when_nothing_matched(self):
        letter = LetterComposer().compose([], "I parked on the street", today=LETTER_DATE)
        grounds = letter.grounds()
        assert len(grounds) == 1
        assert grounds[0].text == templates.GENERAL_GROUND
        assert grounds[0].category is None

    def test_evidence_request_has_at_least_four_items(self):
        letter = LetterComposer().compose([IssueCategory.SIGNAGE], SIGNAGE_TEXT, today=LETTER_DATE)
        assert len(letter.evidence_items()) >= 4
        assert "1. " in letter.render()

    def test_user_statement_is_quoted(self):
        letter = LetterComposer().compose([IssueCategory.SIGNAGE], SIGNAGE_TEXT, today=LETTER_DATE)
        assert f'"{SIGNAGE_TEXT}"' in letter.render()

    def test_emergency_paragraph(self):
        letter = LetterComposer().compose([], "hospital", emergency=True, today=LETTER_DATE)
        assert templates.EMERGENCY_GROUND in letter.render()

    def test_header_includes_ticket_references(self):
        ticket = TicketDetails(pcn_number="WK12345678", number_plate="AB12CDE", council="Westminster")
        letter = LetterComposer().compose([], "text", ticket=ticket, today=LETTER_DATE)
        header = letter.sections[LetterSection.HEADER][0].text
        assert "PCN reference: WK12345678" in header
        assert "Vehicle registration: AB12CDE" in header
        assert "Issuing authority: Westminster" in header
        assert "15 January 2024" in header

    def test_header_skips_undetected_fields(self):
        letter = LetterComposer().compose([], "text", ticket=TicketDetails.not_detected(), today=LETTER_DATE)
        assert "PCN reference" not in letter.render()

    def test_timing_with_concrete_deadlines(self):
        """Day-first notice date → 14 and 28 day deadlines"""
        ticket = TicketDetails(date="10/01/2024")
        letter = LetterComposer().compose([], "text", ticket=ticket, today=LETTER_DATE)
        timing = letter.sections[LetterSection.SUBMISSION_TIMING][0].text
        assert "10 January 2024" in timing
        assert "24 January 2024" in timing
        assert "07 February 2024" in timing

    def test_timing_general_without_date(self):
        ticket = TicketDetails(date="sometime last week")
        letter = LetterComposer().compose([], "text", ticket=ticket, today=LETTER_DATE)
        timing = letter.sections[LetterSection.SUBMISSION_TIMING][0].text
        assert timing == templates.TIMING_GENERAL

    def test_deterministic(self):
        composer = LetterComposer()
        first = composer.compose([IssueCategory.SIGNAGE], SIGNAGE_TEXT, today=LETTER_DATE)
        second = composer.compose([IssueCategory.SIGNAGE], SIGNAGE_TEXT, today=LETTER_DATE)
        assert first.render() == second.render()
        assert first.content_hash() == second.content_hash()

    def test_to_dict_shape(self):
        data = LetterComposer().compose([IssueCategory.SIGNAGE], SIGNAGE_TEXT, today=LETTER_DATE).to_dict()
        assert data["categories"] == ["signage"]
        assert data["generated_on"] == "2024-01-15"
        assert set(data["sections"]) == {s.value for s in LetterSection}
        assert data["text"].startswith(templates.PREAMBLE)


class TestParseNoticeDate:

    def test_day_first(self):
        assert parse_notice_date(TicketDetails(date="03/02/2024")) == date(2024, 2, 3)

    def test_not_detected(self):
        assert parse_notice_date(TicketDetails.not_detected()) is None

    def test_none(self):
        assert parse_notice_date(None) is None


# =============================================================================
# TEST: PIPELINE
# =============================================================================

class TestComplianceAnalysisPipeline:
    """Tests for analyze() and generate_appeal()."""

    def test_analyze_signage(self):
        analysis = ComplianceAnalysisPipeline().analyze(SIGNAGE_TEXT)
        assert analysis.categories == [IssueCategory.SIGNAGE]
        assert analysis.probability == 70
        assert "70%" in analysis.summary
        assert analysis.emergency is False

    def test_analyze_no_match_uses_general_review_label(self):
        analysis = ComplianceAnalysisPipeline().analyze("I parked on the street")
        assert analysis.categories == []
        assert analysis.labels == [GENERAL_REVIEW_LABEL]
        assert analysis.to_dict()["labels"] == ["general-review"]

    def test_analysis_has_no_letter(self):
        data = ComplianceAnalysisPipeline().analyze(SIGNAGE_TEXT).to_dict()
        assert "letter" not in data

    def test_generate_appeal_contains_signage_ground(self):
        letter = ComplianceAnalysisPipeline().generate_appeal(SIGNAGE_TEXT, today=LETTER_DATE)
        assert letter.categories == ["signage"]
        assert templates.GROUND_PARAGRAPHS[IssueCategory.SIGNAGE] in letter.render()
