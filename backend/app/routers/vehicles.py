"""
Kerbi - Vehicles Router

Single vehicle slot. The first plate is free; changing it requires a
succeeded vehicle_addition payment.
"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..auth import get_current_user
from ..dependencies import get_ledger
from ..models.db_models import PaymentType, UserDB
from ..models.ssot import ActionType, VehicleRegistrationOutcome
from ..services.entitlement import CURRENCY, PAYMENT_AMOUNTS, EntitlementLedger, PaymentRequiredError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vehicles", tags=["vehicles"])


class AddVehicleRequest(BaseModel):
    registration: str = Field(..., min_length=1)
    make: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None
    year: Optional[int] = Field(None, ge=1900, le=2100)


@router.get("")
async def list_vehicles(
    current_user: UserDB = Depends(get_current_user),
    ledger: EntitlementLedger = Depends(get_ledger),
):
    return {"vehicles": ledger.get_vehicles(current_user.id)}


@router.post("")
async def add_vehicle(
    request: AddVehicleRequest,
    current_user: UserDB = Depends(get_current_user),
    ledger: EntitlementLedger = Depends(get_ledger),
):
    result = ledger.register_vehicle(
        current_user.id,
        request.registration,
        make=request.make,
        model=request.model,
        color=request.color,
        year=request.year,
    )
    if result.outcome == VehicleRegistrationOutcome.PAYMENT_REQUIRED:
        raise PaymentRequiredError(
            result.message,
            action=ActionType.ADD_VEHICLE.value,
            amount=PAYMENT_AMOUNTS[PaymentType.VEHICLE_ADDITION],
            currency=CURRENCY,
        )

    return {
        "success": True,
        "outcome": result.outcome.value,
        "registration": result.registration,
        "message": result.message,
        "vehicles": ledger.get_vehicles(current_user.id),
    }


@router.delete("/{vehicle_id}")
async def remove_vehicle(
    vehicle_id: str,
    current_user: UserDB = Depends(get_current_user),
    ledger: EntitlementLedger = Depends(get_ledger),
):
    """The primary vehicle cannot be removed (400); unknown ids are 404."""
    ledger.remove_vehicle(current_user.id, vehicle_id)
    return {"success": True}
