"""
Shared fixtures.

- In-memory SQLite engine (StaticPool) with all tables created per test
- FixedClock for month-boundary tests
- Fake Stripe processor and fake OpenAI client
- TestClient with get_db and the client handles overridden
"""
import json
import os
from datetime import datetime
from types import SimpleNamespace
from uuid import uuid4

# Must be set before app.database builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.models.db_models import UserDB
from app.services.entitlement import EntitlementLedger, WebhookSignatureError
from app.services.payments import PaymentIntentResult


VALID_SIGNATURE = "t=1,v1=valid"


# =============================================================================
# TEST DOUBLES
# =============================================================================

class FixedClock:
    """Callable clock; tests move it explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance_to(self, when: datetime) -> None:
        self.now = when


class FakeStripeProcessor:
    """Stands in for StripePaymentProcessor; records every call."""

    def __init__(self):
        self.customers = []
        self.intents = []

    def create_customer(self, email, name, metadata=None):
        customer_id = f"cus_test_{len(self.customers) + 1}"
        self.customers.append({"id": customer_id, "email": email, "name": name, "metadata": metadata})
        return customer_id

    def create_payment_intent(self, amount, currency, customer_id, metadata, description=""):
        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents.append({
            "id": intent_id,
            "amount": amount,
            "currency": currency,
            "customer": customer_id,
            "metadata": metadata,
            "description": description,
        })
        return PaymentIntentResult(payment_intent_id=intent_id, client_secret=f"{intent_id}_secret")

    def construct_event(self, payload, signature):
        if signature != VALID_SIGNATURE:
            raise WebhookSignatureError("Invalid signature")
        return json.loads(payload)


class FakeOpenAIClient:
    """Mimics client.chat.completions.create() with a canned reply or error."""

    def __init__(self, reply: str = "", error: Exception = None):
        self.reply = reply
        self.error = error
        self.calls = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def payment_event(event_type, intent_id, user_id, payment_type, amount=500):
    return {
        "id": f"evt_{uuid4().hex[:12]}",
        "type": event_type,
        "data": {
            "object": {
                "id": intent_id,
                "amount": amount,
                "currency": "gbp",
                "metadata": {"userId": user_id, "paymentType": payment_type},
            }
        },
    }


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 15, 12, 0, 0))


@pytest.fixture
def ledger(db_session, clock):
    return EntitlementLedger(db_session, clock=clock)


@pytest.fixture
def user_id(db_session, ledger):
    """A user with a fresh entitlement record."""
    user = UserDB(
        id=str(uuid4()),
        email=f"driver-{uuid4().hex[:8]}@example.com",
        full_name="Test Driver",
        password_hash="not-a-real-hash",
    )
    db_session.add(user)
    db_session.commit()
    ledger.upsert_profile(user.id)
    return user.id


@pytest.fixture
def fake_stripe():
    return FakeStripeProcessor()


@pytest.fixture
def fake_openai():
    return FakeOpenAIClient()


# =============================================================================
# API CLIENT
# =============================================================================

@pytest.fixture
def client(db_session, clock, fake_stripe, fake_openai):
    from fastapi.testclient import TestClient

    from app.main import app
    from app.dependencies import get_clock, get_extraction_adapter, get_payment_processor
    from app.services.extraction import TicketExtractionAdapter, VisionOracle

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_payment_processor] = lambda: fake_stripe
    app.dependency_overrides[get_extraction_adapter] = lambda: TicketExtractionAdapter(
        VisionOracle(client=fake_openai)
    )

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register a user through the API; returns (user_id, headers)."""

    def _register(email=None, password="Str0ng!pass"):
        email = email or f"driver-{uuid4().hex[:8]}@example.com"
        response = client.post("/auth/register", json={
            "email": email,
            "password": password,
            "first_name": "Test",
            "last_name": "Driver",
        })
        assert response.status_code == 201, response.text
        body = response.json()
        return body["user_id"], {"Authorization": f"Bearer {body['access_token']}"}

    return _register
