"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any ``companion`` import so the
settings object is built for tests: in-memory SQLite, no .env file,
billing and assistant left unconfigured unless a test opts in.
"""

from __future__ import annotations

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-key-for-jwt-signing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("APP_FILE_EXTRACTION_TIMEOUT_SECONDS", "5")

from collections.abc import Iterator
from datetime import timedelta
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from companion.adapters.llm import get_llm_client
from companion.adapters.payments import (
    AbstractPaymentProvider,
    get_optional_payment_provider,
    get_payment_provider,
)
from companion.core.app_factory import create_app
from companion.core.config import DatabaseSettings
from companion.core.errors import PaymentResourceMissingError
from companion.core.rate_limit import reset_rate_limiters
from companion.core.security import create_access_token, hash_password
from companion.db.models import (
    Document,
    MemberRole,
    Plan,
    Project,
    ProjectMember,
    Subscription,
    SubscriptionStatus,
    User,
)
from companion.db.session import build_engine, get_db, init_db
from companion.services.member_service import apply_role
from companion.utils.dates import utcnow

DEFAULT_PASSWORD = "motdepasse-solide"


class FakePaymentProvider(AbstractPaymentProvider):
    """In-memory stand-in for the Stripe adapter that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple, dict]] = []
        self.sessions: dict[str, dict[str, Any]] = {}
        self.subscriptions: dict[str, dict[str, Any]] = {}
        self.invoices: dict[str, list[dict[str, Any]]] = {}
        self.cards: dict[str, list[dict[str, Any]]] = {}
        self.defaults: dict[str, str | None] = {}
        self.fail_with: Exception | None = None

    def _record(self, name: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((name, args, kwargs))
        if self.fail_with is not None:
            raise self.fail_with

    def called(self, name: str) -> list[tuple[tuple, dict]]:
        return [(args, kwargs) for call, args, kwargs in self.calls if call == name]

    def create_checkout_session(self, **kwargs: Any) -> dict[str, Any]:
        self._record("create_checkout_session", **kwargs)
        session_id = f"cs_test_{len(self.sessions) + 1}"
        return {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}

    def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        self._record("retrieve_checkout_session", session_id)
        if session_id not in self.sessions:
            raise PaymentResourceMissingError(
                code="payment_resource_missing", message="missing"
            )
        return self.sessions[session_id]

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        self._record("retrieve_subscription", subscription_id)
        if subscription_id not in self.subscriptions:
            raise PaymentResourceMissingError(
                code="payment_resource_missing", message="missing"
            )
        return self.subscriptions[subscription_id]

    def update_subscription(self, subscription_id: str, *, cancel_at_period_end: bool) -> dict[str, Any]:
        self._record("update_subscription", subscription_id, cancel_at_period_end=cancel_at_period_end)
        if subscription_id not in self.subscriptions:
            raise PaymentResourceMissingError(
                code="payment_resource_missing", message="missing"
            )
        self.subscriptions[subscription_id]["cancel_at_period_end"] = cancel_at_period_end
        return self.subscriptions[subscription_id]

    def cancel_subscription(self, subscription_id: str) -> None:
        self._record("cancel_subscription", subscription_id)

    def list_invoices(self, customer_id: str, *, limit: int = 10) -> list[dict[str, Any]]:
        self._record("list_invoices", customer_id, limit=limit)
        return self.invoices.get(customer_id, [])[:limit]

    def list_card_payment_methods(self, customer_id: str) -> list[dict[str, Any]]:
        self._record("list_card_payment_methods", customer_id)
        return list(self.cards.get(customer_id, []))

    def get_default_payment_method(self, customer_id: str) -> str | None:
        self._record("get_default_payment_method", customer_id)
        return self.defaults.get(customer_id)

    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        self._record("set_default_payment_method", customer_id, payment_method_id)
        self.defaults[customer_id] = payment_method_id

    def detach_payment_method(self, payment_method_id: str) -> None:
        self._record("detach_payment_method", payment_method_id)
        for customer_id, cards in self.cards.items():
            self.cards[customer_id] = [c for c in cards if c["id"] != payment_method_id]

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        self._record("create_portal_session", customer_id, return_url)
        return f"https://billing.stripe.test/session/{customer_id}"


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return create_app()


@pytest.fixture
def db_session() -> Iterator[Session]:
    """Fresh in-memory database per test."""
    engine = build_engine(DatabaseSettings(url="sqlite://"))
    init_db(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def payment_provider() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def client(
    app: FastAPI, db_session: Session, payment_provider: FakePaymentProvider
) -> Iterator[TestClient]:
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_payment_provider] = lambda: payment_provider
    app.dependency_overrides[get_optional_payment_provider] = lambda: payment_provider
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _fresh_rate_limiters() -> Iterator[None]:
    reset_rate_limiters()
    yield
    reset_rate_limiters()


def make_user(
    db: Session,
    email: str = "avocat@cabinet-dupont.fr",
    *,
    name: str = "Claire Dupont",
    password: str = DEFAULT_PASSWORD,
    plan: Plan = Plan.FREEMIUM,
) -> User:
    user = User(email=email, password_hash=hash_password(password), name=name, plan=plan)
    db.add(user)
    db.commit()
    return user


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}


def make_project(db: Session, owner: User, name: str = "Bail commercial Lyon") -> Project:
    project = Project(name=name, owner_id=owner.id)
    db.add(project)
    db.commit()
    return project


def add_member(
    db: Session,
    project: Project,
    user: User,
    role: MemberRole = MemberRole.EDITOR,
    *,
    accepted: bool = True,
) -> ProjectMember:
    member = ProjectMember(
        project_id=project.id,
        user_id=user.id,
        invited_by_id=project.owner_id,
        accepted_at=utcnow() if accepted else None,
    )
    apply_role(member, role)
    db.add(member)
    db.commit()
    return member


def make_subscription(
    db: Session,
    user: User,
    *,
    stripe_subscription_id: str = "sub_test_123",
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    cancel_at_period_end: bool = False,
    period_days_left: int = 20,
) -> Subscription:
    now = utcnow()
    subscription = Subscription(
        user_id=user.id,
        stripe_subscription_id=stripe_subscription_id,
        stripe_customer_id="cus_test_123",
        status=status,
        plan=Plan.STANDARD,
        current_period_start=now - timedelta(days=10),
        current_period_end=now + timedelta(days=period_days_left),
        cancel_at_period_end=cancel_at_period_end,
    )
    db.add(subscription)
    user.plan = Plan.STANDARD
    user.customer_id = "cus_test_123"
    db.commit()
    db.refresh(user)
    return subscription


@pytest.fixture
def user(db_session: Session) -> User:
    return make_user(db_session)


@pytest.fixture
def headers(user: User) -> dict[str, str]:
    return auth_headers(user)


@pytest.fixture
def llm_override(app: FastAPI):
    """Install an LLM client for the assistant routes."""

    def install(llm_client) -> None:
        app.dependency_overrides[get_llm_client] = lambda: llm_client

    return install


def make_document(
    db: Session,
    project: Project,
    uploader: User,
    name: str = "bail.pdf",
    text: str | None = "Article 1",
) -> Document:
    document = Document(
        name=name,
        original_name=name,
        mime_type="application/pdf",
        size=4,
        file_data=b"%PDF",
        extracted_text=text,
        version=1,
        project_id=project.id,
        uploaded_by_id=uploader.id,
    )
    db.add(document)
    db.commit()
    return document
