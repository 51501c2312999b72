"""
Kerbi - Analysis Router

Free compliance analysis, the conversational flow and PCN photo upload.
Anonymous callers are allowed on all three; only a delivered letter
touches the entitlement ledger.
"""
from typing import List, Literal, Optional
import logging

from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from ..auth import get_optional_user
from ..dependencies import get_appeal_service, get_extraction_adapter
from ..models.db_models import UserDB
from ..services.analysis import get_pipeline
from ..services.appeals import AppealService
from ..services.entitlement import ValidationError
from ..services.extraction import TicketExtractionAdapter
from .appeals import TicketModel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["analysis"])

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")


# =============================================================================
# REQUEST MODELS
# =============================================================================

class AnalysisRequest(BaseModel):
    text: str = Field(..., min_length=1)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatMessage]
    want_letter: bool = False
    number_plate: Optional[str] = None
    ticket_value: int = Field(0, ge=0)
    ticket: Optional[TicketModel] = None


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/analysis", response_model=dict)
async def analyze(request: AnalysisRequest):
    """Categories, success probability and summary. Never gated."""
    return get_pipeline().analyze(request.text).to_dict()


@router.post("/chat", response_model=dict)
async def chat(
    request: ChatRequest,
    current_user: Optional[UserDB] = Depends(get_optional_user),
    service: AppealService = Depends(get_appeal_service),
):
    return service.chat(
        [m.model_dump() for m in request.messages],
        user_id=current_user.id if current_user else None,
        want_letter=request.want_letter,
        number_plate=request.number_plate,
        ticket_value=request.ticket_value,
        ticket=request.ticket.to_ticket() if request.ticket else None,
    )


@router.post("/pcn/upload", response_model=dict)
async def upload_pcn(
    image: UploadFile = File(...),
    adapter: TicketExtractionAdapter = Depends(get_extraction_adapter),
):
    """
    Extract ticket fields from a PCN photo and analyze the transcription.

    Oracle failures degrade to "Not detected" fields; they are not errors.
    """
    mime_type = image.content_type or "image/jpeg"
    if mime_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(f"Unsupported image type: {mime_type}")

    image_bytes = await image.read()
    if not image_bytes:
        raise ValidationError("No image provided")

    # Vision call is blocking network I/O
    result = await run_in_threadpool(adapter.extract, image_bytes, mime_type)
    narrative = result.full_text
    if result.ticket.is_detected("contravention"):
        narrative = f"{result.ticket.contravention}\n{narrative}"

    logger.info(f"PCN upload processed (degraded={result.degraded})")
    return {
        "ticket": result.ticket.to_dict(),
        "full_text": result.full_text,
        "degraded": result.degraded,
        "analysis": get_pipeline().analyze(narrative).to_dict(),
    }
