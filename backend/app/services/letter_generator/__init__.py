"""
Appeal Letter Generator

Letters are ASSEMBLED from fixed paragraphs, not written.

Components:
- templates: fixed wording per section and per issue category
- LetterComposer: categories + narrative + ticket -> AppealLetter
"""
from .composer import LetterComposer, get_composer, compose_letter, parse_notice_date
from .templates import GROUND_PARAGRAPHS, GENERAL_GROUND, EVIDENCE_ITEMS

__all__ = [
    "LetterComposer",
    "get_composer",
    "compose_letter",
    "parse_notice_date",
    "GROUND_PARAGRAPHS",
    "GENERAL_GROUND",
    "EVIDENCE_ITEMS",
]
