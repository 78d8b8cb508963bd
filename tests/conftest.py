import json
import os
from decimal import Decimal

# settings are read at import time
os.environ["ENV"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "rzp_whsec_test"
os.environ["ADMIN_EMAILS"] = '["ops@example.com"]'
os.environ["BREVO_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import promptmarket.models  # noqa: F401
from promptmarket.database import get_session
from promptmarket.errors import GatewayError
from promptmarket.gateways import get_payment_gateway, get_webhook_gateway
from promptmarket.gateways.base import (
    GatewayIntent,
    GatewayRefund,
    IntentState,
    IntentStatus,
    PaymentGateway,
    PurchaseMetadata,
    WebhookEvent,
    WebhookEventType,
)
from promptmarket.main import app
from promptmarket.models.prompt import PricingModel, Prompt, PromptStatus
from promptmarket.models.user import User, UserRole
from promptmarket.services.profile_service import get_or_create_profile
from promptmarket.utils.hash import hash_password
from promptmarket.utils.token import create_access_token


class FakeGateway(PaymentGateway):
    """In-memory provider. Signatures are valid when they read ``sig:<secret>``."""

    name = "stripe"

    def __init__(self):
        self.intents = {}
        self.refunds = []
        self.configured = True
        self.fail_create = False
        self.fail_retrieve = False
        self.fail_refund = False

    def is_configured(self) -> bool:
        return self.configured

    @property
    def publishable_key(self):
        return "pk_test_fake"

    def create_intent(self, amount, currency, metadata, description=""):
        if self.fail_create:
            raise GatewayError("card network unavailable")
        intent_id = f"pi_fake_{len(self.intents) + 1}"
        self.intents[intent_id] = IntentStatus(
            id=intent_id,
            status=IntentState.requires_action,
            amount=amount,
            currency=currency,
            metadata=metadata,
        )
        return GatewayIntent(id=intent_id, client_secret=f"{intent_id}_secret")

    def set_status(self, intent_id, status: IntentState):
        self.intents[intent_id].status = status

    def retrieve_intent(self, intent_id):
        if self.fail_retrieve or intent_id not in self.intents:
            raise GatewayError(f"No such payment_intent: {intent_id}")
        return self.intents[intent_id]

    def verify_webhook_signature(self, payload, signature, secret):
        if not secret or signature != f"sig:{secret}":
            return None
        data = json.loads(payload)
        return WebhookEvent(
            id=data["id"],
            type=WebhookEventType(data["type"]),
            raw_type=data["type"],
            intent_id=data.get("intent_id"),
            metadata=PurchaseMetadata.from_dict(data.get("metadata")),
            failure_reason=data.get("reason"),
        )

    def issue_refund(self, intent_id, amount, metadata):
        if self.fail_refund:
            raise GatewayError("refund declined")
        full = self.intents[intent_id].amount if intent_id in self.intents else 0
        refund = GatewayRefund(
            id=f"re_fake_{len(self.refunds) + 1}",
            status="succeeded",
            amount=amount if amount is not None else full,
        )
        self.refunds.append(refund)
        return refund


def webhook_body(event_type, purchase=None, intent_id=None, reason=None, event_id="evt_1") -> bytes:
    data = {"id": event_id, "type": event_type, "intent_id": intent_id, "reason": reason}
    if purchase is not None:
        data["metadata"] = {
            "purchase_id": str(purchase.id),
            "order_number": purchase.order_number,
            "buyer_id": str(purchase.buyer_id),
            "prompt_id": str(purchase.prompt_id),
        }
    return json.dumps(data).encode("utf-8")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    sent = []

    def fake_send_email(to, subject, html):
        sent.append({"to": to, "subject": subject, "html": html})
        return True

    monkeypatch.setattr("promptmarket.notifications.email_handlers.send_email", fake_send_email)
    return sent


@pytest.fixture
def client(engine, gateway):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_webhook_gateway] = lambda: gateway

    yield TestClient(app)

    app.dependency_overrides.clear()


# ---------- factories ----------

@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make(role=UserRole.buyer, name=None, email=None, password="secret-pass"):
        counter["n"] += 1
        user = User(
            name=name or f"{role.value} {counter['n']}",
            email=email or f"{role.value}{counter['n']}@example.com",
            password=hash_password(password),
            role=role,
        )
        session.add(user)
        session.flush()
        get_or_create_profile(session, user.id)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_prompt(session):
    counter = {"n": 0}

    def _make(
        seller,
        price="10.00",
        pricing_model=PricingModel.fixed,
        min_price=None,
        status=PromptStatus.approved,
        title=None,
        **fields,
    ):
        counter["n"] += 1
        prompt = Prompt(
            seller_id=seller.id,
            title=title or f"Prompt {counter['n']}",
            slug=f"prompt-{counter['n']}",
            description="Writes things",
            content="You are a helpful assistant.",
            price=Decimal(price),
            pricing_model=pricing_model,
            min_price=Decimal(min_price) if min_price is not None else None,
            status=status,
            **fields,
        )
        session.add(prompt)
        session.commit()
        session.refresh(prompt)
        return prompt

    return _make


@pytest.fixture
def buyer(make_user):
    return make_user(UserRole.buyer)


@pytest.fixture
def seller(make_user):
    return make_user(UserRole.seller)


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.admin)


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'user_id': user.id})}"}
