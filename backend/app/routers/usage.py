"""
Kerbi - Usage & Profile Router

Usage check (entitlement + dashboard statistics) and profile upsert.
"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..auth import get_current_user
from ..dependencies import get_ledger
from ..models.db_models import PaymentType, UserDB
from ..services.entitlement import EntitlementLedger, PaymentRequiredError, PAYMENT_AMOUNTS, CURRENCY
from ..models.ssot import ActionType, VehicleRegistrationOutcome

logger = logging.getLogger(__name__)

router = APIRouter(tags=["usage"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class ProfileUpdateRequest(BaseModel):
    """All fields optional; only provided fields are written."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    vehicle_registration: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_color: Optional[str] = None
    vehicle_year: Optional[int] = Field(None, ge=1900, le=2100)


def _profile_response(user: UserDB, ledger: EntitlementLedger) -> dict:
    summary = ledger.usage_summary(user.id)
    profile = user.profile
    return {
        "user_id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "phone": profile.phone,
        "vehicles": ledger.get_vehicles(user.id),
        "usage": summary.to_dict(),
    }


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/usage")
async def check_usage(
    current_user: UserDB = Depends(get_current_user),
    ledger: EntitlementLedger = Depends(get_ledger),
):
    """Entitlement record plus dashboard statistics."""
    summary = ledger.usage_summary(current_user.id)
    data = summary.to_dict()
    data["next_appeal_price"] = None if summary.entitlement.has_free_appeal else {
        "amount": PAYMENT_AMOUNTS[PaymentType.ADDITIONAL_APPEAL],
        "currency": CURRENCY,
    }
    return data


@router.get("/profile")
async def get_profile(
    current_user: UserDB = Depends(get_current_user),
    ledger: EntitlementLedger = Depends(get_ledger),
):
    return _profile_response(current_user, ledger)


@router.post("/profile")
async def update_profile(
    request: ProfileUpdateRequest,
    current_user: UserDB = Depends(get_current_user),
    ledger: EntitlementLedger = Depends(get_ledger),
):
    """
    Upsert profile fields.

    A vehicle registration goes through the same rules as /vehicles: the
    first plate is free, a different plate needs a paid vehicle change.
    """
    fields = request.model_dump(exclude_unset=True, exclude={"vehicle_registration"})
    ledger.upsert_profile(current_user.id)

    # Plate first so a refused change leaves the profile untouched
    if request.vehicle_registration:
        result = ledger.register_vehicle(current_user.id, request.vehicle_registration)
        if result.outcome == VehicleRegistrationOutcome.PAYMENT_REQUIRED:
            raise PaymentRequiredError(
                result.message,
                action=ActionType.CHANGE_VEHICLE.value,
                amount=PAYMENT_AMOUNTS[PaymentType.VEHICLE_ADDITION],
                currency=CURRENCY,
            )

    ledger.upsert_profile(current_user.id, **fields)
    logger.info(f"Profile updated for user {current_user.id}")
    return _profile_response(current_user, ledger)
