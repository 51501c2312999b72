"""
Kerbi - Service Dependencies

FastAPI providers for external client handles and services. Each client
is constructed explicitly here and injected; tests replace them through
app.dependency_overrides.
"""
from datetime import datetime
from typing import Callable

from fastapi import Depends
from sqlalchemy.orm import Session

from .database import get_db
from .services.appeals import AppealService
from .services.entitlement import EntitlementLedger
from .services.extraction import TicketExtractionAdapter, VisionOracle
from .services.payments import PaymentService, StripePaymentProcessor


def get_clock() -> Callable[[], datetime]:
    return datetime.utcnow


def get_payment_processor() -> StripePaymentProcessor:
    return StripePaymentProcessor()


def get_extraction_adapter() -> TicketExtractionAdapter:
    return TicketExtractionAdapter(VisionOracle())


def get_ledger(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> EntitlementLedger:
    return EntitlementLedger(db, clock=clock)


def get_appeal_service(
    db: Session = Depends(get_db),
    ledger: EntitlementLedger = Depends(get_ledger),
) -> AppealService:
    return AppealService(db, ledger=ledger)


def get_payment_service(
    db: Session = Depends(get_db),
    ledger: EntitlementLedger = Depends(get_ledger),
    processor: StripePaymentProcessor = Depends(get_payment_processor),
) -> PaymentService:
    return PaymentService(db, processor, ledger=ledger)
