"""
Stripe Payment Processor

Explicitly constructed client handle around the Stripe SDK. The API key
is passed per call instead of being set on the global `stripe` module, so
several processors (or a fake in tests) can coexist.
"""
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe

from ..entitlement.exceptions import PaymentProcessorError, WebhookSignatureError

logger = logging.getLogger(__name__)

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")


@dataclass
class PaymentIntentResult:
    payment_intent_id: str
    client_secret: str


class StripePaymentProcessor:
    """createCustomer / createPaymentIntent / webhook verification."""

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.api_key = api_key or STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or STRIPE_WEBHOOK_SECRET

    def create_customer(self, email: str, name: str, metadata: Optional[Dict[str, str]] = None) -> str:
        try:
            customer = stripe.Customer.create(
                api_key=self.api_key,
                email=email,
                name=name,
                metadata=metadata or {},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe customer creation failed: {e}")
            raise PaymentProcessorError("Failed to create Stripe customer") from e
        return customer.id

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer_id: str,
        metadata: Dict[str, str],
        description: str = "",
    ) -> PaymentIntentResult:
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.api_key,
                amount=amount,
                currency=currency,
                customer=customer_id,
                metadata=metadata,
                description=description,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe payment intent creation failed: {e}")
            raise PaymentProcessorError("Payment failed") from e
        return PaymentIntentResult(payment_intent_id=intent.id, client_secret=intent.client_secret)

    def construct_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Verify the webhook signature and return the event as a plain dict."""
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret not configured")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (stripe.SignatureVerificationError, ValueError) as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise WebhookSignatureError("Invalid signature") from e
        return json.loads(payload)
