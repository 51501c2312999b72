"""
Kerbi - Appeals Router

Appeal creation (gated), history and status updates.
"""
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..auth import get_current_user
from ..dependencies import get_appeal_service
from ..models.db_models import AppealStatus, UserDB
from ..models.ssot import NOT_DETECTED, TicketDetails
from ..services.appeals import AppealService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appeals", tags=["appeals"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class TicketModel(BaseModel):
    """Ticket fields as returned by /pcn/upload. Amount in pence."""
    number_plate: str = NOT_DETECTED
    pcn_number: str = NOT_DETECTED
    amount: int = Field(0, ge=0)
    date: str = NOT_DETECTED
    location: str = NOT_DETECTED
    contravention: str = NOT_DETECTED
    council: str = NOT_DETECTED
    payment_due_date: str = NOT_DETECTED

    def to_ticket(self) -> TicketDetails:
        return TicketDetails(**self.model_dump())


class CreateAppealRequest(BaseModel):
    """Also used to save an analysis produced before sign-in."""
    content: str = Field(..., min_length=1, description="User's account of the circumstances")
    number_plate: Optional[str] = None
    ticket_value: int = Field(0, ge=0, description="Ticket value in pence")
    ticket: Optional[TicketModel] = None


class UpdateStatusRequest(BaseModel):
    status: AppealStatus


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=List[dict])
async def list_appeals(
    current_user: UserDB = Depends(get_current_user),
    service: AppealService = Depends(get_appeal_service),
):
    return service.list_appeals(current_user.id)


@router.post("", response_model=dict, status_code=201)
async def create_appeal(
    request: CreateAppealRequest,
    current_user: UserDB = Depends(get_current_user),
    service: AppealService = Depends(get_appeal_service),
):
    """
    Generate an appeal letter.

    The first appeal each calendar month is free; afterwards a succeeded
    additional_appeal payment is required (402 otherwise).
    """
    return service.create_appeal(
        current_user.id,
        request.content,
        number_plate=request.number_plate,
        ticket_value=request.ticket_value,
        ticket=request.ticket.to_ticket() if request.ticket else None,
    )


@router.get("/{appeal_id}", response_model=dict)
async def get_appeal(
    appeal_id: str,
    current_user: UserDB = Depends(get_current_user),
    service: AppealService = Depends(get_appeal_service),
):
    return service.get_appeal(current_user.id, appeal_id)


@router.post("/{appeal_id}/status", response_model=dict)
async def update_appeal_status(
    appeal_id: str,
    request: UpdateStatusRequest,
    current_user: UserDB = Depends(get_current_user),
    service: AppealService = Depends(get_appeal_service),
):
    """Forward-only status change. Accepted/rejected update dashboard stats."""
    return service.update_status(current_user.id, appeal_id, request.status)
