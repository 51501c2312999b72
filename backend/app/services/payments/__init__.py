"""
Payments

- StripePaymentProcessor: injected Stripe client handle
- PaymentService: intents, payment records and webhook application
"""
from .stripe_client import StripePaymentProcessor, PaymentIntentResult
from .payment_service import PaymentService, parse_payment_type, EVENT_SUCCEEDED, EVENT_FAILED

__all__ = [
    "StripePaymentProcessor",
    "PaymentIntentResult",
    "PaymentService",
    "parse_payment_type",
    "EVENT_SUCCEEDED",
    "EVENT_FAILED",
]
