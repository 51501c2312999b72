"""
Entitlement Ledger

Per-user usage accounting: free appeal quota with lazy monthly reset,
paid appeals, the single vehicle slot and dashboard statistics.

Core Principles:
1. Every counter change is ONE conditional UPDATE (increment with guard).
   No read-modify-write in application code.
2. A missing record is a NotFoundError. Mutations never create records;
   only upsert_profile does.
3. A succeeded payment unlocks the NEXT write. It never performs the
   plate write itself.

Concurrency:
- Two concurrent free-appeal requests cannot both succeed: the guard
  `free_appeals_used == 0` lets exactly one UPDATE match.
- The monthly reset is guarded by the stored reset timestamp, so
  concurrent readers reset at most once and never undo a newer write.
"""
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import AppealDB, AppealStatus, EntitlementDB, PaymentType
from ...models.ssot import (
    ActionType,
    EntitlementRecord,
    UsageSummary,
    VehicleRegistrationOutcome,
    VehicleRegistrationResult,
)
from .exceptions import NotFoundError, PaymentRequiredError, PersistenceError, ValidationError
from .payment_gate import CURRENCY, PaymentGate, normalize_plate

logger = logging.getLogger(__name__)


# Fields a user may set through the profile endpoint
PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "phone",
    "vehicle_make",
    "vehicle_model",
    "vehicle_color",
    "vehicle_year",
)

PENDING_STATUSES = (AppealStatus.DRAFT, AppealStatus.SUBMITTED, AppealStatus.UNDER_REVIEW)

PRIMARY_VEHICLE_ID = "primary"


def reset_due(last_reset: Optional[datetime], now: datetime) -> bool:
    """True when `now` is in a later calendar month than the last reset."""
    if last_reset is None:
        return True
    return (last_reset.year, last_reset.month) < (now.year, now.month)


class EntitlementLedger:
    """
    Usage/quota state machine over the user_profiles table.

    Args:
        db: SQLAlchemy session
        clock: returns "now"; injectable for month-boundary tests
        gate: PaymentGate used to price PaymentRequiredError
    """

    def __init__(
        self,
        db: Session,
        clock: Optional[Callable[[], datetime]] = None,
        gate: Optional[PaymentGate] = None,
    ):
        self.db = db
        self.clock = clock or datetime.utcnow
        self.gate = gate or PaymentGate()

    # =========================================================================
    # READS
    # =========================================================================

    def get_entitlement(self, user_id: str) -> EntitlementRecord:
        """
        Return the entitlement record, applying the monthly reset first.

        If the stored reset timestamp is in an earlier calendar month, the
        free counter is set to 0 and the timestamp moved to now.
        """
        row = self._get_row(user_id)
        now = self.clock()

        if reset_due(row.last_free_appeal_reset, now):
            previous = row.last_free_appeal_reset
            query = self.db.query(EntitlementDB).filter(EntitlementDB.user_id == user_id)
            if previous is None:
                query = query.filter(EntitlementDB.last_free_appeal_reset.is_(None))
            else:
                query = query.filter(EntitlementDB.last_free_appeal_reset == previous)
            updated = self._execute(lambda: query.update(
                {
                    EntitlementDB.free_appeals_used: 0,
                    EntitlementDB.last_free_appeal_reset: now,
                },
                synchronize_session=False,
            ))
            if updated:
                logger.info(f"Monthly free appeal reset for user {user_id} (last reset {previous})")
            self.db.refresh(row)

        return self._to_record(row)

    def has_free_appeal_available(self, user_id: str) -> bool:
        return self.get_entitlement(user_id).has_free_appeal

    def get_vehicles(self, user_id: str) -> List[Dict[str, Any]]:
        """Vehicle slot as a list; empty when no plate is registered."""
        row = self._get_row(user_id)
        if not row.vehicle_registration:
            return []
        return [{
            "id": PRIMARY_VEHICLE_ID,
            "registration": row.vehicle_registration,
            "make": row.vehicle_make,
            "model": row.vehicle_model,
            "color": row.vehicle_color,
            "year": row.vehicle_year,
            "is_primary": True,
        }]

    def usage_summary(self, user_id: str) -> UsageSummary:
        """Dashboard view of the entitlement record."""
        record = self.get_entitlement(user_id)
        row = self._get_row(user_id)
        pending = (
            self.db.query(func.count(AppealDB.id))
            .filter(AppealDB.user_id == user_id, AppealDB.status.in_(PENDING_STATUSES))
            .scalar()
        ) or 0
        return UsageSummary(
            entitlement=record,
            successful_appeals=row.successful_appeals,
            unsuccessful_appeals=row.unsuccessful_appeals,
            pending_appeals=pending,
            total_ticket_value=row.total_ticket_value,
            total_savings=row.total_savings,
            vehicles=[row.vehicle_registration] if row.vehicle_registration else [],
        )

    # =========================================================================
    # PROFILE
    # =========================================================================

    def upsert_profile(self, user_id: str, **fields: Any) -> EntitlementRecord:
        """
        Insert-if-absent, then apply profile fields.

        This is the only operation that creates an entitlement record.
        """
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

        row = self.db.query(EntitlementDB).filter(EntitlementDB.user_id == user_id).first()
        if row is None:
            row = EntitlementDB(
                user_id=user_id,
                free_appeals_used=0,
                paid_appeals_used=0,
                total_appeals_created=0,
                last_free_appeal_reset=self.clock(),
            )
            self.db.add(row)
            logger.info(f"Created entitlement record for user {user_id}")

        for name, value in fields.items():
            if value is not None:
                setattr(row, name, value)

        self._commit()
        return self._to_record(row)

    def set_payment_customer_ref(self, user_id: str, customer_ref: str) -> None:
        updated = self._execute(lambda: self.db.query(EntitlementDB)
                                .filter(EntitlementDB.user_id == user_id)
                                .update({EntitlementDB.payment_customer_ref: customer_ref},
                                        synchronize_session=False))
        if not updated:
            raise NotFoundError(f"No entitlement record for user {user_id}")

    # =========================================================================
    # APPEALS
    # =========================================================================

    def record_appeal_created(self, user_id: str, is_free: bool, ticket_value: int = 0) -> EntitlementRecord:
        """
        Count a generated appeal against the free or paid quota.

        Free path is guarded by `free_appeals_used == 0`; paid path spends
        one paid appeal credit. Either way total_appeals_created moves with
        it, so total == free + paid holds after every success.

        Raises:
            NotFoundError: no entitlement record
            PaymentRequiredError: the guard did not match (quota spent)
        """
        if ticket_value < 0:
            raise ValidationError("Ticket value cannot be negative")

        # Applies any pending monthly reset before the guard is evaluated
        self.get_entitlement(user_id)

        query = self.db.query(EntitlementDB).filter(EntitlementDB.user_id == user_id)
        values: Dict[Any, Any] = {
            EntitlementDB.total_appeals_created: EntitlementDB.total_appeals_created + 1,
            EntitlementDB.total_ticket_value: EntitlementDB.total_ticket_value + ticket_value,
        }
        if is_free:
            query = query.filter(EntitlementDB.free_appeals_used == 0)
            values[EntitlementDB.free_appeals_used] = EntitlementDB.free_appeals_used + 1
        else:
            query = query.filter(EntitlementDB.paid_appeal_credits > 0)
            values[EntitlementDB.paid_appeals_used] = EntitlementDB.paid_appeals_used + 1
            values[EntitlementDB.paid_appeal_credits] = EntitlementDB.paid_appeal_credits - 1

        updated = self._execute(lambda: query.update(values, synchronize_session=False))
        if not updated:
            kind = "free appeal" if is_free else "paid appeal credit"
            logger.info(f"Appeal creation refused for user {user_id}: no {kind} available")
            raise PaymentRequiredError(
                "Additional appeal requires payment",
                action=ActionType.CREATE_APPEAL.value,
                amount=self.gate.price_for(ActionType.CREATE_APPEAL),
                currency=CURRENCY,
            )

        logger.info(f"Recorded {'free' if is_free else 'paid'} appeal for user {user_id}")
        return self.get_entitlement(user_id)

    def record_appeal_outcome(self, user_id: str, status: AppealStatus, ticket_value: int = 0) -> None:
        """Update dashboard statistics when an appeal reaches a decision."""
        if status == AppealStatus.ACCEPTED:
            values = {
                EntitlementDB.successful_appeals: EntitlementDB.successful_appeals + 1,
                EntitlementDB.total_savings: EntitlementDB.total_savings + ticket_value,
            }
        elif status == AppealStatus.REJECTED:
            values = {EntitlementDB.unsuccessful_appeals: EntitlementDB.unsuccessful_appeals + 1}
        else:
            return

        updated = self._execute(lambda: self.db.query(EntitlementDB)
                                .filter(EntitlementDB.user_id == user_id)
                                .update(values, synchronize_session=False))
        if not updated:
            raise NotFoundError(f"No entitlement record for user {user_id}")

    # =========================================================================
    # VEHICLES
    # =========================================================================

    def register_vehicle(
        self,
        user_id: str,
        plate: str,
        make: Optional[str] = None,
        model: Optional[str] = None,
        color: Optional[str] = None,
        year: Optional[int] = None,
    ) -> VehicleRegistrationResult:
        """
        Store a plate in the vehicle slot.

        - Empty slot: accepted unconditionally.
        - Same plate: unchanged.
        - Different plate: accepted only by spending a vehicle change
          credit (granted by a succeeded vehicle_addition payment);
          otherwise PAYMENT_REQUIRED and nothing is written.
        """
        normalized = normalize_plate(plate)
        if not normalized:
            raise ValidationError("Vehicle registration required")

        record = self.get_entitlement(user_id)
        details = {
            EntitlementDB.vehicle_make: make,
            EntitlementDB.vehicle_model: model,
            EntitlementDB.vehicle_color: color,
            EntitlementDB.vehicle_year: year,
        }
        values: Dict[Any, Any] = {EntitlementDB.vehicle_registration: normalized}
        values.update({k: v for k, v in details.items() if v is not None})

        if not record.vehicle_registration:
            updated = self._execute(lambda: self.db.query(EntitlementDB)
                                    .filter(EntitlementDB.user_id == user_id,
                                            EntitlementDB.vehicle_registration.is_(None))
                                    .update(values, synchronize_session=False))
            if updated:
                logger.info(f"Registered first vehicle {normalized} for user {user_id}")
                return VehicleRegistrationResult(
                    outcome=VehicleRegistrationOutcome.ACCEPTED,
                    registration=normalized,
                    message="Vehicle added successfully",
                )
            # Lost a race with another first registration; decide again
            record = self.get_entitlement(user_id)

        if record.vehicle_registration == normalized:
            return VehicleRegistrationResult(
                outcome=VehicleRegistrationOutcome.UNCHANGED,
                registration=normalized,
                message="Vehicle already registered",
            )

        values[EntitlementDB.vehicle_change_credits] = EntitlementDB.vehicle_change_credits - 1
        updated = self._execute(lambda: self.db.query(EntitlementDB)
                                .filter(EntitlementDB.user_id == user_id,
                                        EntitlementDB.vehicle_change_credits > 0)
                                .update(values, synchronize_session=False))
        if updated:
            logger.info(
                f"Changed vehicle for user {user_id}: {record.vehicle_registration} -> {normalized}"
            )
            return VehicleRegistrationResult(
                outcome=VehicleRegistrationOutcome.ACCEPTED,
                registration=normalized,
                message="Vehicle changed successfully",
            )

        logger.info(f"Vehicle change for user {user_id} requires payment")
        return VehicleRegistrationResult(
            outcome=VehicleRegistrationOutcome.PAYMENT_REQUIRED,
            registration=record.vehicle_registration,
            message="You already have a vehicle registered. Additional vehicles cost £3 each.",
        )

    def remove_vehicle(self, user_id: str, vehicle_id: str) -> None:
        """The primary slot cannot be emptied; there are no other vehicles."""
        self._get_row(user_id)
        if vehicle_id == PRIMARY_VEHICLE_ID:
            raise ValidationError("Cannot remove primary vehicle")
        raise NotFoundError(f"Vehicle {vehicle_id} not found")

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    def apply_payment_succeeded(
        self,
        user_id: str,
        payment_type: PaymentType,
        payload: Optional[Dict[str, Any]] = None,
    ) -> EntitlementRecord:
        """
        Apply a confirmed payment from the webhook boundary.

        additional_appeal: unlocks one paid appeal; paid_appeals_used moves
            when record_appeal_created(is_free=False) spends it.
        vehicle_addition: unlocks the next plate change; the plate itself is
            written only by a follow-up register_vehicle call.
        """
        payment_type = PaymentType(payment_type)
        if payment_type == PaymentType.ADDITIONAL_APPEAL:
            column = EntitlementDB.paid_appeal_credits
        else:
            column = EntitlementDB.vehicle_change_credits

        updated = self._execute(lambda: self.db.query(EntitlementDB)
                                .filter(EntitlementDB.user_id == user_id)
                                .update({column: column + 1}, synchronize_session=False))
        if not updated:
            raise NotFoundError(f"No entitlement record for user {user_id}")

        payload = payload or {}
        logger.info(
            f"Payment applied for user {user_id}: type={payment_type.value} "
            f"amount={payload.get('amount')} currency={payload.get('currency')}"
        )
        return self.get_entitlement(user_id)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _get_row(self, user_id: str) -> EntitlementDB:
        row = self.db.query(EntitlementDB).filter(EntitlementDB.user_id == user_id).first()
        if row is None:
            raise NotFoundError(f"No entitlement record for user {user_id}")
        return row

    def _execute(self, statement: Callable[[], int]) -> int:
        """Run one UPDATE and commit. Returns affected row count."""
        try:
            count = statement()
            self.db.commit()
            return count
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Entitlement update failed: {e}")
            raise PersistenceError("Failed to update usage record") from e

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Entitlement write failed: {e}")
            raise PersistenceError("Failed to save profile") from e

    @staticmethod
    def _to_record(row: EntitlementDB) -> EntitlementRecord:
        return EntitlementRecord(
            user_id=row.user_id,
            free_appeals_used=row.free_appeals_used,
            paid_appeals_used=row.paid_appeals_used,
            total_appeals_created=row.total_appeals_created,
            last_free_appeal_reset=row.last_free_appeal_reset,
            vehicle_registration=row.vehicle_registration,
            payment_customer_ref=row.payment_customer_ref,
            paid_appeal_credits=row.paid_appeal_credits,
            vehicle_change_credits=row.vehicle_change_credits,
        )
