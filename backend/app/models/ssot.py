"""
Kerbi PCN Appeals - Single Source of Truth Models

Plain data structures passed between the analysis pipeline, the
entitlement ledger and the routers. ORM rows are translated into these
at the service boundary and never leak further.
"""

from __future__ import annotations
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any


NOT_DETECTED = "Not detected"
GENERAL_REVIEW_LABEL = "general-review"


# =============================================================================
# ENUMS
# =============================================================================

class IssueCategory(str, Enum):
    """Fixed vocabulary of compliance issues. Declaration order is display order."""
    SIGNAGE = "signage"
    TIMING = "timing"
    PAYMENT_SYSTEM = "payment-system"
    ACCESSIBILITY = "accessibility"
    LOADING_EXEMPTION = "loading-exemption"


class ActionType(str, Enum):
    """Actions the payment gate can be asked about."""
    CREATE_APPEAL = "create_appeal"
    ADD_VEHICLE = "add_vehicle"
    CHANGE_VEHICLE = "change_vehicle"


class GateDecision(str, Enum):
    ALLOW_FREE = "ALLOW_FREE"
    ALLOW_PAID = "ALLOW_PAID"  # A succeeded payment is waiting to be spent
    ALLOW_UNCHANGED = "ALLOW_UNCHANGED"  # Same plate re-registered, nothing to write
    REQUIRE_PAYMENT = "REQUIRE_PAYMENT"


class VehicleRegistrationOutcome(str, Enum):
    ACCEPTED = "accepted"
    UNCHANGED = "unchanged"
    PAYMENT_REQUIRED = "payment_required"


# =============================================================================
# SSOT #1: TICKET DETAILS (Output of Extraction Adapter)
# =============================================================================

@dataclass
class TicketDetails:
    """Normalized PCN fields. Unknown strings carry the NOT_DETECTED sentinel."""
    number_plate: str = NOT_DETECTED
    pcn_number: str = NOT_DETECTED
    amount: int = 0  # pence
    date: str = NOT_DETECTED
    location: str = NOT_DETECTED
    contravention: str = NOT_DETECTED
    council: str = NOT_DETECTED
    payment_due_date: str = NOT_DETECTED

    @classmethod
    def not_detected(cls) -> "TicketDetails":
        return cls()

    def is_detected(self, field_name: str) -> bool:
        value = getattr(self, field_name)
        if field_name == "amount":
            return value > 0
        return bool(value) and value != NOT_DETECTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "numberPlate": self.number_plate,
            "pcnNumber": self.pcn_number,
            "amount": self.amount,
            "date": self.date,
            "location": self.location,
            "contravention": self.contravention,
            "council": self.council,
            "paymentDueDate": self.payment_due_date,
        }


@dataclass
class ExtractionResult:
    """Ticket fields plus the oracle's full transcription."""
    ticket: TicketDetails
    full_text: str = ""
    degraded: bool = False


# =============================================================================
# SSOT #2: COMPLIANCE ANALYSIS (Output of Analysis Pipeline)
# =============================================================================

@dataclass
class ComplianceAnalysis:
    """Free analysis artifact shown before any gating."""
    categories: List[IssueCategory]
    probability: int
    summary: str
    emergency: bool = False

    @property
    def labels(self) -> List[str]:
        """Display labels; falls back to general-review when nothing matched."""
        if not self.categories:
            return [GENERAL_REVIEW_LABEL]
        return [c.value for c in self.categories]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categories": [c.value for c in self.categories],
            "labels": self.labels,
            "probability": self.probability,
            "summary": self.summary,
            "emergency": self.emergency,
        }


# =============================================================================
# SSOT #3: ENTITLEMENT SNAPSHOT (Output of Entitlement Ledger)
# =============================================================================

@dataclass
class EntitlementRecord:
    """
    Canonical entitlement shape.

    Every endpoint that reports usage serializes this one structure.
    """
    user_id: str
    free_appeals_used: int = 0
    paid_appeals_used: int = 0
    total_appeals_created: int = 0
    last_free_appeal_reset: Optional[datetime] = None
    vehicle_registration: Optional[str] = None
    payment_customer_ref: Optional[str] = None
    paid_appeal_credits: int = 0
    vehicle_change_credits: int = 0

    @property
    def has_free_appeal(self) -> bool:
        return self.free_appeals_used == 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_free_appeal_reset"] = (
            self.last_free_appeal_reset.isoformat() if self.last_free_appeal_reset else None
        )
        data["has_free_appeal"] = self.has_free_appeal
        return data


@dataclass
class VehicleRegistrationResult:
    outcome: VehicleRegistrationOutcome
    registration: Optional[str] = None
    message: str = ""

    @property
    def accepted(self) -> bool:
        return self.outcome != VehicleRegistrationOutcome.PAYMENT_REQUIRED


@dataclass
class UsageSummary:
    """Dashboard view: entitlement plus appeal outcome statistics."""
    entitlement: EntitlementRecord
    successful_appeals: int = 0
    unsuccessful_appeals: int = 0
    pending_appeals: int = 0
    total_ticket_value: int = 0
    total_savings: int = 0
    vehicles: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = self.entitlement.to_dict()
        data.update({
            "successful_appeals": self.successful_appeals,
            "unsuccessful_appeals": self.unsuccessful_appeals,
            "pending_appeals": self.pending_appeals,
            "total_ticket_value": self.total_ticket_value,
            "total_savings": self.total_savings,
            "total_vehicles": len(self.vehicles),
        })
        return data
