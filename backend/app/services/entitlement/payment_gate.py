"""
Payment Gate

AUTHORITY: SYSTEM
Pure decision function over an EntitlementRecord snapshot.

    create_appeal:   free appeal left      -> ALLOW_FREE
                     paid credit waiting   -> ALLOW_PAID
                     otherwise             -> REQUIRE_PAYMENT

    add_vehicle /    no plate registered   -> ALLOW_FREE
    change_vehicle:  same plate            -> ALLOW_UNCHANGED
                     vehicle credit        -> ALLOW_PAID
                     otherwise             -> REQUIRE_PAYMENT

The gate never mutates. Authorization and the domain write are separate
steps: the write only happens after the processor has confirmed payment.
"""
from typing import Dict, Optional

from ...models.ssot import ActionType, EntitlementRecord, GateDecision
from ...models.db_models import PaymentType


# =============================================================================
# PRICING (pence)
# =============================================================================

CURRENCY = "gbp"

PAYMENT_AMOUNTS: Dict[PaymentType, int] = {
    PaymentType.ADDITIONAL_APPEAL: 500,
    PaymentType.VEHICLE_ADDITION: 300,
}

PAYMENT_DESCRIPTIONS: Dict[PaymentType, str] = {
    PaymentType.ADDITIONAL_APPEAL: "Additional PCN Appeal - £5",
    PaymentType.VEHICLE_ADDITION: "Vehicle Registration Change - £3",
}

ACTION_PAYMENT_TYPE: Dict[ActionType, PaymentType] = {
    ActionType.CREATE_APPEAL: PaymentType.ADDITIONAL_APPEAL,
    ActionType.ADD_VEHICLE: PaymentType.VEHICLE_ADDITION,
    ActionType.CHANGE_VEHICLE: PaymentType.VEHICLE_ADDITION,
}


def normalize_plate(plate: Optional[str]) -> str:
    """Uppercase with all whitespace removed."""
    return "".join((plate or "").split()).upper()


class PaymentGate:
    """Decides whether an action proceeds free, prepaid, or needs payment first."""

    def decide(
        self,
        record: EntitlementRecord,
        action: ActionType,
        plate: Optional[str] = None,
    ) -> GateDecision:
        if action == ActionType.CREATE_APPEAL:
            return self._decide_appeal(record)
        if action in (ActionType.ADD_VEHICLE, ActionType.CHANGE_VEHICLE):
            return self._decide_vehicle(record, plate)
        raise ValueError(f"Unknown action: {action}")

    def _decide_appeal(self, record: EntitlementRecord) -> GateDecision:
        if record.has_free_appeal:
            return GateDecision.ALLOW_FREE
        if record.paid_appeal_credits > 0:
            return GateDecision.ALLOW_PAID
        return GateDecision.REQUIRE_PAYMENT

    def _decide_vehicle(self, record: EntitlementRecord, plate: Optional[str]) -> GateDecision:
        if not record.vehicle_registration:
            return GateDecision.ALLOW_FREE
        if plate is not None and normalize_plate(plate) == record.vehicle_registration:
            return GateDecision.ALLOW_UNCHANGED
        if record.vehicle_change_credits > 0:
            return GateDecision.ALLOW_PAID
        return GateDecision.REQUIRE_PAYMENT

    @staticmethod
    def price_for(action: ActionType) -> int:
        return PAYMENT_AMOUNTS[ACTION_PAYMENT_TYPE[action]]


_gate: Optional[PaymentGate] = None


def get_gate() -> PaymentGate:
    """Get or create the default payment gate singleton."""
    global _gate
    if _gate is None:
        _gate = PaymentGate()
    return _gate
