"""
Ticket Extraction

- ticket_parser: oracle text -> TicketDetails with sentinel fallback
- vision_oracle: OpenAI vision client and the extraction adapter
"""
from .ticket_parser import FIELD_MAP, find_json_object, parse_amount, parse_oracle_response
from .vision_oracle import EXTRACTION_PROMPT, VisionOracle, TicketExtractionAdapter

__all__ = [
    "FIELD_MAP",
    "find_json_object",
    "parse_amount",
    "parse_oracle_response",
    "EXTRACTION_PROMPT",
    "VisionOracle",
    "TicketExtractionAdapter",
]
