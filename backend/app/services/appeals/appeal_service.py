"""
Appeal Service

Appeal records, their status lifecycle and the conversational flow.

Generation order for a gated letter:
1. PaymentGate decides on the current entitlement snapshot.
2. The letter is composed (pure) and the Appeal Record inserted as DRAFT.
3. record_appeal_created() spends the free appeal or a paid credit.
   If another request won the race, or the ledger write fails, the
   inserted record is removed and the error propagates. The ledger is
   unchanged.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import AppealDB, AppealStatus
from ...models.ssot import ActionType, GateDecision, TicketDetails
from ..analysis import ComplianceAnalysisPipeline, get_pipeline
from ..entitlement import (
    AppealEngineError,
    EntitlementLedger,
    NotFoundError,
    PaymentGate,
    PaymentRequiredError,
    PersistenceError,
    ValidationError,
    get_gate,
    normalize_plate,
    CURRENCY,
)

logger = logging.getLogger(__name__)


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================
#
# Forward only. ACCEPTED, REJECTED and WITHDRAWN are terminal.
#
# =============================================================================

STATUS_TRANSITIONS: Dict[AppealStatus, List[AppealStatus]] = {
    AppealStatus.DRAFT: [AppealStatus.SUBMITTED, AppealStatus.WITHDRAWN],
    AppealStatus.SUBMITTED: [
        AppealStatus.UNDER_REVIEW,
        AppealStatus.ACCEPTED,
        AppealStatus.REJECTED,
        AppealStatus.WITHDRAWN,
    ],
    AppealStatus.UNDER_REVIEW: [
        AppealStatus.ACCEPTED,
        AppealStatus.REJECTED,
        AppealStatus.WITHDRAWN,
    ],
    AppealStatus.ACCEPTED: [],
    AppealStatus.REJECTED: [],
    AppealStatus.WITHDRAWN: [],
}


def can_transition(from_status: AppealStatus, to_status: AppealStatus) -> Tuple[bool, str]:
    """Returns (allowed, reason)."""
    if to_status in STATUS_TRANSITIONS.get(from_status, []):
        return True, "Transition allowed"
    return False, f"Cannot transition from {from_status.value} to {to_status.value}"


def is_terminal_status(status: AppealStatus) -> bool:
    return len(STATUS_TRANSITIONS.get(status, [])) == 0


SIGN_IN_PROMPT = "Sign in to save this analysis and generate your appeal letter."
PAYWALL_PROMPT = "You've used your free appeal this month. Additional appeals cost £5 each."


# =============================================================================
# SERVICE
# =============================================================================

class AppealService:
    """
    Appeal CRUD, status transitions and the chat flow.

    Args:
        db: SQLAlchemy session
        ledger: EntitlementLedger sharing the same session
        pipeline: ComplianceAnalysisPipeline (defaults to the singleton)
        gate: PaymentGate (defaults to the singleton)
    """

    def __init__(
        self,
        db: Session,
        ledger: Optional[EntitlementLedger] = None,
        pipeline: Optional[ComplianceAnalysisPipeline] = None,
        gate: Optional[PaymentGate] = None,
    ):
        self.db = db
        self.ledger = ledger or EntitlementLedger(db)
        self.pipeline = pipeline or get_pipeline()
        self.gate = gate or get_gate()

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_appeal(
        self,
        user_id: str,
        content: str,
        number_plate: Optional[str] = None,
        ticket_value: int = 0,
        ticket: Optional[TicketDetails] = None,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Generate and persist an appeal letter, counting it against the quota.

        Raises:
            ValidationError: empty content or negative ticket value
            NotFoundError: no entitlement record
            PaymentRequiredError: no free appeal and no paid credit
        """
        if not content or not content.strip():
            raise ValidationError("Appeal content is required")
        if ticket_value < 0:
            raise ValidationError("Ticket value cannot be negative")

        record = self.ledger.get_entitlement(user_id)
        decision = self.gate.decide(record, ActionType.CREATE_APPEAL)
        if decision == GateDecision.REQUIRE_PAYMENT:
            logger.info(f"Appeal for user {user_id} requires payment")
            raise PaymentRequiredError(
                "Additional appeal requires payment",
                action=ActionType.CREATE_APPEAL.value,
                amount=self.gate.price_for(ActionType.CREATE_APPEAL),
                currency=CURRENCY,
            )
        is_free = decision == GateDecision.ALLOW_FREE

        ticket = ticket or TicketDetails.not_detected()
        if not ticket_value and ticket.is_detected("amount"):
            ticket_value = ticket.amount
        plate = normalize_plate(number_plate)
        if not plate and ticket.is_detected("number_plate"):
            plate = normalize_plate(ticket.number_plate)
        if not plate:
            plate = record.vehicle_registration

        analysis = self.pipeline.analyze(content)
        letter = self.pipeline.generate_appeal(content, ticket=ticket, today=today)

        appeal = AppealDB(
            id=str(uuid4()),
            user_id=user_id,
            number_plate=plate,
            pcn_number=ticket.pcn_number if ticket.is_detected("pcn_number") else None,
            ticket_value=ticket_value,
            content=content,
            letter_content=letter.render(),
            status=AppealStatus.DRAFT,
            is_free_appeal=is_free,
            compliance_issues=analysis.labels,
            success_probability=analysis.probability,
        )
        self.db.add(appeal)
        self._commit()

        try:
            usage = self.ledger.record_appeal_created(user_id, is_free=is_free, ticket_value=ticket_value)
        except AppealEngineError:
            # Uncounted letters must not survive
            self.db.delete(appeal)
            self._commit()
            raise

        logger.info(
            f"Created {'free' if is_free else 'paid'} appeal {appeal.id} for user {user_id} "
            f"(probability {analysis.probability})"
        )
        return {
            "appeal": self.to_dict(appeal),
            "analysis": analysis.to_dict(),
            "letter": letter.to_dict(),
            "usage": usage.to_dict(),
        }

    # =========================================================================
    # READ
    # =========================================================================

    def list_appeals(self, user_id: str) -> List[Dict[str, Any]]:
        appeals = (
            self.db.query(AppealDB)
            .filter(AppealDB.user_id == user_id)
            .order_by(AppealDB.created_at.desc())
            .all()
        )
        return [self.to_dict(a) for a in appeals]

    def get_appeal(self, user_id: str, appeal_id: str) -> Dict[str, Any]:
        return self.to_dict(self._get_row(user_id, appeal_id))

    # =========================================================================
    # STATUS
    # =========================================================================

    def update_status(self, user_id: str, appeal_id: str, status: AppealStatus) -> Dict[str, Any]:
        """Move an appeal forward and record the outcome on the dashboard."""
        to_status = AppealStatus(status)
        appeal = self._get_row(user_id, appeal_id)
        from_status = appeal.status

        allowed, reason = can_transition(from_status, to_status)
        if not allowed:
            raise ValidationError(reason)

        # Guarded on the status we read so two updates cannot both apply
        try:
            updated = (
                self.db.query(AppealDB)
                .filter(AppealDB.id == appeal_id, AppealDB.status == from_status)
                .update(
                    {AppealDB.status: to_status, AppealDB.updated_at: datetime.utcnow()},
                    synchronize_session=False,
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Appeal status update failed: {e}")
            raise PersistenceError("Failed to update appeal") from e

        if not updated:
            raise ValidationError(f"Appeal {appeal_id} was updated concurrently")

        self.ledger.record_appeal_outcome(user_id, to_status, appeal.ticket_value)
        self.db.refresh(appeal)
        logger.info(f"Appeal {appeal_id}: {from_status.value} -> {to_status.value}")
        return self.to_dict(appeal)

    # =========================================================================
    # CHAT
    # =========================================================================

    def chat(
        self,
        messages: List[Dict[str, str]],
        user_id: Optional[str] = None,
        want_letter: bool = False,
        number_plate: Optional[str] = None,
        ticket_value: int = 0,
        ticket: Optional[TicketDetails] = None,
    ) -> Dict[str, Any]:
        """
        One conversational turn.

        Anonymous users get the free analysis and a sign-in prompt. Signed-in
        users asking for the letter get it, or a paywall prompt when the
        quota is spent. Only a delivered letter mutates the ledger.
        """
        if not messages:
            raise ValidationError("Messages are required")
        if messages[-1].get("role") != "user":
            raise ValidationError("Last message must be from user")

        narrative = "\n".join(
            m.get("content", "") for m in messages if m.get("role") == "user" and m.get("content")
        )
        analysis = self.pipeline.analyze(narrative)
        response: Dict[str, Any] = {
            "reply": analysis.summary,
            "analysis": analysis.to_dict(),
            "letter": None,
            "appeal": None,
            "requires_sign_in": False,
            "requires_payment": False,
        }

        if user_id is None:
            response["requires_sign_in"] = want_letter
            response["prompt"] = SIGN_IN_PROMPT
            return response

        if not want_letter:
            return response

        try:
            created = self.create_appeal(
                user_id,
                narrative,
                number_plate=number_plate,
                ticket_value=ticket_value,
                ticket=ticket,
            )
        except PaymentRequiredError as e:
            response["requires_payment"] = True
            response["prompt"] = PAYWALL_PROMPT
            response["payment"] = e.to_dict()
            return response

        response["letter"] = created["letter"]
        response["appeal"] = created["appeal"]
        response["usage"] = created["usage"]
        return response

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _get_row(self, user_id: str, appeal_id: str) -> AppealDB:
        appeal = (
            self.db.query(AppealDB)
            .filter(AppealDB.id == appeal_id, AppealDB.user_id == user_id)
            .first()
        )
        if appeal is None:
            raise NotFoundError(f"Appeal {appeal_id} not found")
        return appeal

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Appeal write failed: {e}")
            raise PersistenceError("Failed to save appeal") from e

    @staticmethod
    def to_dict(appeal: AppealDB) -> Dict[str, Any]:
        return {
            "id": appeal.id,
            "user_id": appeal.user_id,
            "number_plate": appeal.number_plate,
            "pcn_number": appeal.pcn_number,
            "ticket_value": appeal.ticket_value,
            "content": appeal.content,
            "letter_content": appeal.letter_content,
            "status": appeal.status.value,
            "is_free_appeal": appeal.is_free_appeal,
            "compliance_issues": appeal.compliance_issues,
            "success_probability": appeal.success_probability,
            "created_at": appeal.created_at.isoformat() if appeal.created_at else None,
            "updated_at": appeal.updated_at.isoformat() if appeal.updated_at else None,
        }
