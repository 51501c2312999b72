"""
Letter Composer

Assembles an AppealLetter from matched issue categories.

Assembly order:
1. Preamble, date, ticket references, salutation (HEADER)
2. The user's own account of events (CIRCUMSTANCES)
3. One paragraph per matched category, or the legal-basis paragraph (GROUNDS)
4. Evidence request list (EVIDENCE_REQUEST)
5. Submission timing recommendation (SUBMISSION_TIMING)
6. Closing (CLOSING)

The composer ONLY assembles - no I/O, no randomness. The date is an
input so output is reproducible.
"""
from datetime import date, timedelta
from typing import Iterable, List, Optional
import logging

from dateutil import parser as date_parser

from ...models.ssot import IssueCategory, TicketDetails
from ...models.letter_object import AppealLetter, LetterBlock, LetterSection
from . import templates

logger = logging.getLogger(__name__)

DATE_FORMAT = "%d %B %Y"


def parse_notice_date(ticket: Optional[TicketDetails]) -> Optional[date]:
    """Best-effort parse of the PCN date. UK notices are day-first."""
    if ticket is None or not ticket.is_detected("date"):
        return None
    try:
        return date_parser.parse(ticket.date, dayfirst=True).date()
    except (ValueError, OverflowError):
        logger.info(f"Could not parse notice date '{ticket.date}', using general timing advice")
        return None


class LetterComposer:
    """Deterministic category -> letter assembly."""

    def compose(
        self,
        categories: Iterable[IssueCategory],
        text: str,
        ticket: Optional[TicketDetails] = None,
        emergency: bool = False,
        today: Optional[date] = None,
    ) -> AppealLetter:
        """
        Assemble a complete appeal letter.

        Args:
            categories: Matched issue categories
            text: The user's own description of events
            ticket: Extracted ticket details, if any
            emergency: Whether emergency/medical circumstances were mentioned
            today: Letter date (defaults to today)

        Returns:
            AppealLetter with every section populated
        """
        today = today or date.today()
        ordered = [c for c in IssueCategory if c in set(categories)]

        letter = AppealLetter(
            categories=[c.value for c in ordered],
            generated_on=today.isoformat(),
        )

        letter.add_block(self._header_block(today, ticket))

        circumstances = self._circumstances_block(text, emergency)
        if circumstances:
            letter.add_block(circumstances)

        for block in self._grounds_blocks(ordered):
            letter.add_block(block)

        letter.add_block(LetterBlock(
            section=LetterSection.EVIDENCE_REQUEST,
            text=templates.EVIDENCE_INTRO,
            items=list(templates.EVIDENCE_ITEMS),
        ))

        letter.add_block(self._timing_block(ticket))

        letter.add_block(LetterBlock(section=LetterSection.CLOSING, text=templates.CLOSING))
        return letter

    def _header_block(self, today: date, ticket: Optional[TicketDetails]) -> LetterBlock:
        lines = [templates.PREAMBLE, today.strftime(DATE_FORMAT)]
        if ticket is not None:
            if ticket.is_detected("pcn_number"):
                lines.append(templates.REFERENCE_LINE.format(pcn_number=ticket.pcn_number))
            if ticket.is_detected("number_plate"):
                lines.append(templates.VEHICLE_LINE.format(number_plate=ticket.number_plate))
            if ticket.is_detected("council"):
                lines.append(templates.AUTHORITY_LINE.format(council=ticket.council))
        lines.extend(["", templates.SALUTATION, "", templates.INTRODUCTION])
        return LetterBlock(section=LetterSection.HEADER, text="\n".join(lines))

    def _circumstances_block(self, text: str, emergency: bool) -> Optional[LetterBlock]:
        statement = (text or "").strip()
        if not statement and not emergency:
            return None
        parts = []
        if statement:
            parts.append(f"{templates.CIRCUMSTANCES_INTRO}\n\"{statement}\"")
        if emergency:
            parts.append(templates.EMERGENCY_GROUND)
        return LetterBlock(section=LetterSection.CIRCUMSTANCES, text="\n\n".join(parts))

    def _grounds_blocks(self, categories: List[IssueCategory]) -> List[LetterBlock]:
        if not categories:
            return [LetterBlock(section=LetterSection.GROUNDS, text=templates.GENERAL_GROUND)]
        return [
            LetterBlock(
                section=LetterSection.GROUNDS,
                text=templates.GROUND_PARAGRAPHS[category],
                category=category.value,
            )
            for category in categories
        ]

    def _timing_block(self, ticket: Optional[TicketDetails]) -> LetterBlock:
        notice_date = parse_notice_date(ticket)
        if notice_date is None:
            return LetterBlock(section=LetterSection.SUBMISSION_TIMING, text=templates.TIMING_GENERAL)
        text = templates.TIMING_WITH_DATES.format(
            notice_date=notice_date.strftime(DATE_FORMAT),
            discount_deadline=(notice_date + timedelta(days=templates.DISCOUNT_PERIOD_DAYS)).strftime(DATE_FORMAT),
            formal_deadline=(notice_date + timedelta(days=templates.FORMAL_PERIOD_DAYS)).strftime(DATE_FORMAT),
        )
        return LetterBlock(section=LetterSection.SUBMISSION_TIMING, text=text)


# =============================================================================
# CONVENIENCE
# =============================================================================

_composer: Optional[LetterComposer] = None


def get_composer() -> LetterComposer:
    """Get or create the default letter composer singleton."""
    global _composer
    if _composer is None:
        _composer = LetterComposer()
    return _composer


def compose_letter(
    categories: Iterable[IssueCategory],
    text: str,
    ticket: Optional[TicketDetails] = None,
    emergency: bool = False,
    today: Optional[date] = None,
) -> AppealLetter:
    return get_composer().compose(categories, text, ticket=ticket, emergency=emergency, today=today)
