"""
Error taxonomy for the appeal engine.

Each error carries the HTTP status the API boundary reports it with.
Services raise; routers never translate by hand - the handlers in
app.main turn these into {"error": ...} responses.
"""
from typing import Any, Dict, Optional


class AppealEngineError(Exception):
    """Base class for all domain errors."""

    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        body.update(self.details)
        return body


class ValidationError(AppealEngineError):
    """Missing or malformed input. Nothing was mutated."""

    http_status = 400


class NotFoundError(AppealEngineError):
    """Referenced user or record does not exist. Nothing was mutated."""

    http_status = 404


class PaymentRequiredError(AppealEngineError):
    """
    The entitlement gate denied a free action.

    Distinct from a generic failure so the client can branch into the
    payment flow for `action`.
    """

    http_status = 402

    def __init__(self, message: str, action: str, amount: Optional[int] = None, currency: str = "gbp"):
        details: Dict[str, Any] = {"requires_payment": True, "action": action}
        if amount is not None:
            details["amount"] = amount
            details["currency"] = currency
        super().__init__(message, details)
        self.action = action
        self.amount = amount


class PaymentProcessorError(AppealEngineError):
    """Webhook signature invalid or processor API call failed."""

    http_status = 500


class WebhookSignatureError(PaymentProcessorError):
    http_status = 400


class PersistenceError(AppealEngineError):
    """Data store write failed. Not retried here."""

    http_status = 500
