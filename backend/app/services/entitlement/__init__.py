"""
Entitlement System

Usage accounting and payment gating for appeals and vehicles.

- EntitlementLedger: quota state machine over user_profiles
- PaymentGate: pure ALLOW_FREE / ALLOW_PAID / REQUIRE_PAYMENT decisions
- exceptions: error taxonomy mapped to HTTP statuses at the API boundary
"""

from .exceptions import (
    AppealEngineError,
    ValidationError,
    NotFoundError,
    PaymentRequiredError,
    PaymentProcessorError,
    WebhookSignatureError,
    PersistenceError,
)
from .payment_gate import (
    PaymentGate,
    get_gate,
    normalize_plate,
    CURRENCY,
    PAYMENT_AMOUNTS,
    PAYMENT_DESCRIPTIONS,
)
from .ledger import EntitlementLedger, reset_due, PRIMARY_VEHICLE_ID

__all__ = [
    'AppealEngineError',
    'ValidationError',
    'NotFoundError',
    'PaymentRequiredError',
    'PaymentProcessorError',
    'WebhookSignatureError',
    'PersistenceError',
    'PaymentGate',
    'get_gate',
    'normalize_plate',
    'CURRENCY',
    'PAYMENT_AMOUNTS',
    'PAYMENT_DESCRIPTIONS',
    'EntitlementLedger',
    'reset_due',
    'PRIMARY_VEHICLE_ID',
]
