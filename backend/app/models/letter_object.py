"""
Letter Object Models - Deterministic Appeal Letter Structure

Appeal letters are ASSEMBLED from sections, not written.
Same categories + same ticket details + same date produce identical output.
"""

from dataclasses import dataclass, field
from enum import Enum
from hashlib import sha256
from typing import Any, Dict, List, Optional
import json


class LetterSection(str, Enum):
    """Canonical letter sections - order is fixed by the composer."""
    HEADER = "HEADER"
    CIRCUMSTANCES = "CIRCUMSTANCES"
    GROUNDS = "GROUNDS"
    EVIDENCE_REQUEST = "EVIDENCE_REQUEST"
    SUBMISSION_TIMING = "SUBMISSION_TIMING"
    CLOSING = "CLOSING"


@dataclass
class LetterBlock:
    """
    Atomic unit of letter content.

    A GROUNDS block carries the category label it argues; other blocks
    leave it empty.
    """
    section: LetterSection
    text: str
    category: Optional[str] = None
    items: List[str] = field(default_factory=list)

    def render(self) -> str:
        if not self.items:
            return self.text
        lines = [self.text] if self.text else []
        lines.extend(f"{i}. {item}" for i, item in enumerate(self.items, start=1))
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "section": self.section.value,
            "text": self.text,
            "category": self.category,
            "items": self.items,
        }


@dataclass
class AppealLetter:
    """Complete appeal letter assembled from blocks."""
    sections: Dict[LetterSection, List[LetterBlock]] = field(default_factory=dict)
    categories: List[str] = field(default_factory=list)
    generated_on: str = ""

    def __post_init__(self):
        for section in LetterSection:
            if section not in self.sections:
                self.sections[section] = []

    def add_block(self, block: LetterBlock) -> None:
        self.sections.setdefault(block.section, []).append(block)

    def get_all_blocks(self) -> List[LetterBlock]:
        blocks = []
        for section in LetterSection:
            blocks.extend(self.sections.get(section, []))
        return blocks

    def grounds(self) -> List[LetterBlock]:
        return list(self.sections[LetterSection.GROUNDS])

    def evidence_items(self) -> List[str]:
        items = []
        for block in self.sections[LetterSection.EVIDENCE_REQUEST]:
            items.extend(block.items)
        return items

    def render(self) -> str:
        """Plain-text letter, blocks separated by a blank line."""
        return "\n\n".join(block.render() for block in self.get_all_blocks())

    def content_hash(self) -> str:
        content = {
            "categories": self.categories,
            "blocks": [b.to_dict() for b in self.get_all_blocks()],
        }
        return sha256(json.dumps(content, sort_keys=True).encode()).hexdigest()[:16]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categories": self.categories,
            "generated_on": self.generated_on,
            "sections": {
                section.value: [b.to_dict() for b in blocks]
                for section, blocks in self.sections.items()
            },
            "text": self.render(),
            "content_hash": self.content_hash(),
        }
