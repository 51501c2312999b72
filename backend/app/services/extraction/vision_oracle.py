"""
Vision Oracle

Sends a PCN photo to an OpenAI vision model with a fixed instruction and
hands the free-text reply to the ticket parser.

Oracle failures are recovered here: the caller always receives an
ExtractionResult, degraded to "Not detected" values when the oracle is
unavailable, errors, or returns something unparseable.
"""
import base64
import logging
import os
from typing import Optional

from openai import OpenAI, OpenAIError

from ...models.ssot import ExtractionResult, TicketDetails
from .ticket_parser import parse_oracle_response

logger = logging.getLogger(__name__)

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_VISION_MODEL = os.getenv("OPENAI_VISION_MODEL", "gpt-4o")
MAX_TOKENS = 1000

EXTRACTION_PROMPT = """Analyze this PCN (Penalty Charge Notice) image and extract the following information in JSON format:
{
  "numberPlate": "vehicle registration number",
  "pcnNumber": "PCN reference number",
  "amount": "penalty amount in pounds (number only)",
  "date": "date of contravention",
  "location": "location where contravention occurred",
  "contravention": "description of the contravention",
  "council": "issuing council/authority",
  "paymentDueDate": "payment due date"
}

Also provide a full text transcription of all visible text in the image.

Focus on finding compliance issues like:
- Unclear signage
- Timing issues
- Payment system problems
- Accessibility issues
- Procedural errors"""


class VisionOracle:
    """
    Thin wrapper over the OpenAI chat completions API.

    Args:
        client: preconstructed OpenAI client (tests pass a fake)
        api_key: used to build a client when none is given
        model: vision-capable model name
    """

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
    ):
        self.model = model or OPENAI_VISION_MODEL
        self.client = client
        if self.client is None:
            key = api_key or OPENAI_API_KEY
            if key:
                self.client = OpenAI(api_key=key)
            else:
                logger.warning("No OPENAI_API_KEY found - ticket extraction will return placeholders")

    def is_available(self) -> bool:
        return self.client is not None

    def transcribe(self, image_bytes: bytes, mime_type: str) -> str:
        """Raw model reply for one image. Raises OpenAIError on API failure."""
        encoded = base64.b64encode(image_bytes).decode("ascii")
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": EXTRACTION_PROMPT},
                        {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
                    ],
                }
            ],
            max_tokens=MAX_TOKENS,
        )
        return response.choices[0].message.content or ""


class TicketExtractionAdapter:
    """Image -> ExtractionResult. Never raises for oracle problems."""

    def __init__(self, oracle: VisionOracle):
        self.oracle = oracle

    def extract(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> ExtractionResult:
        if not self.oracle.is_available():
            return ExtractionResult(ticket=TicketDetails.not_detected(), degraded=True)

        try:
            full_text = self.oracle.transcribe(image_bytes, mime_type)
        except (OpenAIError, IndexError, AttributeError) as e:
            logger.warning(f"Vision oracle call failed, using placeholders: {e}")
            return ExtractionResult(ticket=TicketDetails.not_detected(), degraded=True)

        ticket = parse_oracle_response(full_text)
        degraded = not ticket.is_detected("pcn_number") and not ticket.is_detected("number_plate")
        return ExtractionResult(ticket=ticket, full_text=full_text, degraded=degraded)
