"""
Shared fixtures for the invoice payment test suite.

Provides an in-memory database, settings, a seeded invoice form, a fake
payment provider and a recording notifier so that all tests run WITHOUT
any external services.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import Settings
from models import Base, InvoiceForm
from providers.base import PAID_STATUSES, CreatedInvoice, InvoiceStatusResult
from providers.coinsnap import CoinsnapClient
from providers.registry import ProviderRegistry
from services.form_service import FormRepository
from services.invoice_store import InvoiceStore
from services.reconciliation import ReconciliationEngine


WEBHOOK_SECRET = "whsec_test"
JWT_SECRET = "test-jwt-secret"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeProvider(CoinsnapClient):
    """Coinsnap client with the two outbound calls replaced.

    Webhook parsing and signature checks are the real ones.
    """

    def __init__(self, settings):
        super().__init__(settings, http=MagicMock())
        self.created = []
        self.status_calls = []
        self.statuses = {}
        self.error = None

    def create_invoice(self, form_id, amount, currency, customer):
        if self.error:
            raise self.error
        invoice_id = f"inv_{len(self.created) + 1}"
        self.created.append(
            {"form_id": form_id, "amount": amount, "currency": currency, "customer": dict(customer)}
        )
        return CreatedInvoice(invoice_id=invoice_id, payment_url=f"https://pay.example.com/i/{invoice_id}")

    def check_status(self, invoice_id):
        self.status_calls.append(invoice_id)
        if self.error:
            raise self.error
        status = self.statuses.get(invoice_id, "New")
        return InvoiceStatusResult(invoice_id=invoice_id, paid=status in PAID_STATUSES, status=status)


class FakeRegistry(ProviderRegistry):
    """Registry that hands out the same fake client for every key."""

    def __init__(self, settings, provider):
        super().__init__(settings)
        self.provider = provider
        self.requested = []

    def get(self, key):
        self.requested.append(key)
        return self.provider


class RecordingNotifier:
    def __init__(self):
        self.notified = []
        self.error = None

    def notify_paid(self, invoice):
        self.notified.append(invoice.payment_invoice_id)
        if self.error:
            raise self.error


# ---------------------------------------------------------------------------
# Settings / database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    """Return test settings with credentials for both providers."""
    return Settings(
        payment_provider="coinsnap",
        default_amount=0,
        default_currency="USD",
        coinsnap_api_key="cs_key",
        coinsnap_store_id="cs_store",
        coinsnap_webhook_secret=WEBHOOK_SECRET,
        btcpay_host="https://btcpay.example.com",
        btcpay_api_key="bp_key",
        btcpay_store_id="bp_store",
        btcpay_webhook_secret="bp_secret",
        jwt_secret=JWT_SECRET,
        admin_email="ops@example.com",
        database_url="sqlite://",
    )


@pytest.fixture
def db_engine():
    """In-memory SQLite shared across threads (TestClient runs sync routes in a pool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    session = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def invoice_form(db_session):
    """Seed a 100 USD invoice form with a 10% discount."""
    form = InvoiceForm(
        title="Consulting",
        form_type="bif_invoice_form",
        amount=Decimal("100"),
        currency="USD",
        discount_enabled=True,
        discount_type="percent",
        discount_value=Decimal("10"),
        success_page="https://example.com/thanks",
        admin_email="billing@example.com",
    )
    db_session.add(form)
    db_session.commit()
    return form


@pytest.fixture
def plain_form(db_session):
    """Seed a form without amount or discount."""
    form = InvoiceForm(title="Open amount", form_type="coinsnap_invoice_form", currency="EUR")
    db_session.add(form)
    db_session.commit()
    return form


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def provider(settings):
    return FakeProvider(settings)


@pytest.fixture
def registry(settings, provider):
    return FakeRegistry(settings, provider)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store(db_session):
    return InvoiceStore(db_session)


@pytest.fixture
def reconciliation(db_session, store, registry, notifier, settings):
    return ReconciliationEngine(
        store=store,
        forms=FormRepository(db_session),
        registry=registry,
        notifier=notifier,
        settings=settings,
    )


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def client(db_session, settings, registry, notifier):
    """TestClient with database, settings, provider and notifier overridden."""
    from fastapi.testclient import TestClient

    from config import get_settings
    from database import get_session
    from main import app
    from routers.dependencies import get_notifier, get_provider_registry

    def _session():
        yield db_session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_provider_registry] = lambda: registry
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    token = jwt.encode({"id": 1, "role": "admin"}, JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}
