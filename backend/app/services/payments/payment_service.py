"""
Payment Service

Payment intents out, webhook events in.

Flow:
1. create_payment_intent() records a PENDING payment and returns the
   client secret. Nothing is unlocked yet.
2. The processor confirms asynchronously. handle_event() marks the
   payment SUCCEEDED and applies it to the entitlement ledger exactly once
   per payment intent, however many times the event is delivered.
3. A FAILED event is recorded and logged. The ledger is never touched.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import PaymentDB, PaymentStatus, PaymentType
from ..entitlement.exceptions import AppealEngineError, NotFoundError, PersistenceError, ValidationError
from ..entitlement.ledger import EntitlementLedger
from ..entitlement.payment_gate import CURRENCY, PAYMENT_AMOUNTS, PAYMENT_DESCRIPTIONS
from .stripe_client import StripePaymentProcessor

logger = logging.getLogger(__name__)


EVENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_FAILED = "payment_intent.payment_failed"


class PaymentService:
    """Coordinates the payment processor, payment records and the ledger."""

    def __init__(
        self,
        db: Session,
        processor: StripePaymentProcessor,
        ledger: Optional[EntitlementLedger] = None,
    ):
        self.db = db
        self.processor = processor
        self.ledger = ledger or EntitlementLedger(db)

    # =========================================================================
    # CUSTOMERS & INTENTS
    # =========================================================================

    def ensure_customer(self, user_id: str, email: str, name: str) -> str:
        """Create the processor customer once and remember its id."""
        record = self.ledger.get_entitlement(user_id)
        if record.payment_customer_ref:
            return record.payment_customer_ref

        customer_id = self.processor.create_customer(email, name, metadata={"user_id": user_id})
        self.ledger.set_payment_customer_ref(user_id, customer_id)
        logger.info(f"Created payment customer {customer_id} for user {user_id}")
        return customer_id

    def create_payment_intent(
        self,
        user_id: str,
        payment_type: PaymentType,
        appeal_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Request a payment intent and record it as pending."""
        payment_type = PaymentType(payment_type)
        record = self.ledger.get_entitlement(user_id)
        if not record.payment_customer_ref:
            raise NotFoundError("User not found or no Stripe customer ID")

        amount = PAYMENT_AMOUNTS[payment_type]
        metadata = {"userId": user_id, "paymentType": payment_type.value}
        if appeal_id:
            metadata["appealId"] = appeal_id

        intent = self.processor.create_payment_intent(
            amount=amount,
            currency=CURRENCY,
            customer_id=record.payment_customer_ref,
            metadata=metadata,
            description=PAYMENT_DESCRIPTIONS[payment_type],
        )

        payment = PaymentDB(
            id=str(uuid4()),
            user_id=user_id,
            payment_intent_id=intent.payment_intent_id,
            amount=amount,
            currency=CURRENCY,
            status=PaymentStatus.PENDING,
            payment_type=payment_type,
            appeal_id=appeal_id,
        )
        self.db.add(payment)
        self._commit()

        logger.info(f"Payment intent {intent.payment_intent_id} created for user {user_id} ({payment_type.value})")
        return {
            "client_secret": intent.client_secret,
            "payment_intent_id": intent.payment_intent_id,
            "customer_id": record.payment_customer_ref,
            "amount": amount,
            "currency": CURRENCY,
        }

    def get_payment(self, payment_intent_id: str) -> Optional[PaymentDB]:
        return self.db.query(PaymentDB).filter(PaymentDB.payment_intent_id == payment_intent_id).first()

    # =========================================================================
    # WEBHOOK EVENTS
    # =========================================================================

    def handle_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Apply one verified processor event. Safe under duplicate delivery."""
        event_type = event.get("type", "")
        intent = (event.get("data") or {}).get("object") or {}

        if event_type == EVENT_SUCCEEDED:
            status = self._handle_success(intent)
        elif event_type == EVENT_FAILED:
            status = self._handle_failure(intent)
        else:
            logger.info(f"Unhandled event type: {event_type}")
            status = "ignored"

        return {"received": True, "status": status}

    def _handle_success(self, intent: Dict[str, Any]) -> str:
        intent_id = intent.get("id")
        metadata = intent.get("metadata") or {}
        user_id = metadata.get("userId")

        if not intent_id or not user_id:
            logger.error("No payment intent id or userId in payment metadata")
            return "ignored"

        try:
            payment_type = PaymentType(metadata.get("paymentType"))
        except ValueError:
            logger.error(f"Unknown paymentType in metadata for intent {intent_id}: {metadata.get('paymentType')}")
            return "ignored"

        self._ensure_payment_row(intent, user_id, payment_type)

        # Claim the payment: only one delivery can move applied_at off NULL
        claimed = self._update(
            self.db.query(PaymentDB).filter(
                PaymentDB.payment_intent_id == intent_id,
                PaymentDB.applied_at.is_(None),
            ),
            {PaymentDB.status: PaymentStatus.SUCCEEDED, PaymentDB.applied_at: datetime.utcnow()},
        )
        if not claimed:
            logger.info(f"Duplicate success event for intent {intent_id}, already applied")
            return "duplicate"

        try:
            self.ledger.apply_payment_succeeded(
                user_id,
                payment_type,
                {"amount": intent.get("amount"), "currency": intent.get("currency"), "payment_intent_id": intent_id},
            )
        except AppealEngineError:
            # Release the claim so a redelivery can try again
            self._update(
                self.db.query(PaymentDB).filter(PaymentDB.payment_intent_id == intent_id),
                {PaymentDB.applied_at: None},
            )
            raise

        logger.info(
            f"Payment successful: user={user_id} type={payment_type.value} "
            f"amount={intent.get('amount')} currency={intent.get('currency')}"
        )
        return "applied"

    def _handle_failure(self, intent: Dict[str, Any]) -> str:
        intent_id = intent.get("id")
        metadata = intent.get("metadata") or {}
        logger.warning(
            f"Payment failed: user={metadata.get('userId')} type={metadata.get('paymentType')} "
            f"amount={intent.get('amount')} currency={intent.get('currency')} "
            f"error={intent.get('last_payment_error')}"
        )
        if not intent_id:
            return "ignored"

        # A late failure never overrides a success that was already applied
        self._update(
            self.db.query(PaymentDB).filter(
                PaymentDB.payment_intent_id == intent_id,
                PaymentDB.status == PaymentStatus.PENDING,
            ),
            {PaymentDB.status: PaymentStatus.FAILED},
        )
        return "failed"

    def _ensure_payment_row(self, intent: Dict[str, Any], user_id: str, payment_type: PaymentType) -> None:
        """Webhook may beat our own insert; record the payment from the event."""
        if self.get_payment(intent["id"]) is not None:
            return
        self.db.add(PaymentDB(
            id=str(uuid4()),
            user_id=user_id,
            payment_intent_id=intent["id"],
            amount=intent.get("amount") or PAYMENT_AMOUNTS[payment_type],
            currency=intent.get("currency") or CURRENCY,
            status=PaymentStatus.PENDING,
            payment_type=payment_type,
            appeal_id=(intent.get("metadata") or {}).get("appealId"),
        ))
        self._commit()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _update(self, query, values: Dict[Any, Any]) -> int:
        try:
            count = query.update(values, synchronize_session=False)
            self.db.commit()
            return count
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Payment update failed: {e}")
            raise PersistenceError("Failed to update payment record") from e

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Payment write failed: {e}")
            raise PersistenceError("Failed to create payment record") from e


def parse_payment_type(value: Optional[str]) -> PaymentType:
    try:
        return PaymentType(value)
    except ValueError:
        raise ValidationError(f"Unknown payment type: {value}")
