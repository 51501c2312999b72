"""
Ticket Parser

Normalizes the vision oracle's loosely structured reply into TicketDetails.

The oracle is untrusted and schema-less. The first balanced {...} span in
its reply is parsed as JSON; on ANY failure (no object, malformed JSON,
wrong type, missing keys) every string field becomes "Not detected" and
the amount becomes 0. This module never raises to its caller.
"""
from __future__ import annotations
import json
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from ...models.ssot import NOT_DETECTED, TicketDetails

logger = logging.getLogger(__name__)


# Oracle key -> TicketDetails attribute
FIELD_MAP: Dict[str, str] = {
    "numberPlate": "number_plate",
    "pcnNumber": "pcn_number",
    "amount": "amount",
    "date": "date",
    "location": "location",
    "contravention": "contravention",
    "council": "council",
    "paymentDueDate": "payment_due_date",
}

_AMOUNT_PATTERN = re.compile(r"\d+(?:\.\d+)?")


def find_json_object(text: Optional[str]) -> Optional[str]:
    """
    Return the first balanced {...} span, or None.

    Braces inside JSON string literals are ignored.
    """
    if not text:
        return None
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def parse_amount(value: Any) -> int:
    """Pounds (number or text like "£70.00") -> integer pence. Unreadable -> 0."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        pounds = Decimal(str(value))
    else:
        match = _AMOUNT_PATTERN.search(str(value).replace(",", ""))
        if not match:
            return 0
        try:
            pounds = Decimal(match.group(0))
        except InvalidOperation:
            return 0
    if not pounds.is_finite() or pounds < 0:
        return 0
    return int((pounds * 100).to_integral_value())


def _clean_string(value: Any) -> str:
    if value is None:
        return NOT_DETECTED
    text = str(value).strip()
    return text or NOT_DETECTED


def parse_oracle_response(raw_text: Optional[str]) -> TicketDetails:
    """Best-effort TicketDetails from raw oracle text."""
    span = find_json_object(raw_text)
    if span is None:
        logger.warning("No JSON object found in oracle response")
        return TicketDetails.not_detected()

    try:
        data = json.loads(span)
    except json.JSONDecodeError as e:
        logger.warning(f"Malformed JSON in oracle response: {e}")
        return TicketDetails.not_detected()

    if not isinstance(data, dict):
        logger.warning("Oracle JSON is not an object")
        return TicketDetails.not_detected()

    missing = [key for key in FIELD_MAP if key not in data]
    if missing:
        logger.warning(f"Oracle JSON missing keys: {missing}")
        return TicketDetails.not_detected()

    values: Dict[str, Any] = {}
    for key, attr in FIELD_MAP.items():
        if attr == "amount":
            values[attr] = parse_amount(data[key])
        else:
            values[attr] = _clean_string(data[key])
    return TicketDetails(**values)
