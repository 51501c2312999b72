"""
Kerbi - Payments Router

Stripe customer and payment-intent creation, plus the webhook receiver.
The webhook is the only path that turns a payment into an entitlement.
"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel

from ..auth import get_current_user
from ..dependencies import get_payment_processor, get_payment_service
from ..models.db_models import PaymentType, UserDB
from ..services.entitlement import WebhookSignatureError
from ..services.payments import PaymentService, StripePaymentProcessor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


class CreateIntentRequest(BaseModel):
    payment_type: PaymentType
    appeal_id: Optional[str] = None


@router.post("/payments/customer")
async def create_customer(
    current_user: UserDB = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Create the Stripe customer for this user once; repeat calls return it."""
    customer_id = service.ensure_customer(
        current_user.id,
        current_user.email,
        current_user.full_name or current_user.email,
    )
    return {"customer_id": customer_id}


@router.post("/payments/intent")
async def create_payment_intent(
    request: CreateIntentRequest,
    current_user: UserDB = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Returns the client secret. Nothing is unlocked until the webhook confirms."""
    return service.create_payment_intent(current_user.id, request.payment_type, request.appeal_id)


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    processor: StripePaymentProcessor = Depends(get_payment_processor),
    service: PaymentService = Depends(get_payment_service),
):
    payload = await request.body()
    if not stripe_signature:
        raise WebhookSignatureError("No signature")

    event = processor.construct_event(payload, stripe_signature)
    logger.info(f"Webhook received: {event.get('type')}")
    return service.handle_event(event)
