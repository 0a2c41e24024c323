"""Tests for invoice creation and payment status convergence."""

import json
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query, sessionmaker

from models import Base, Currency, Invoice, InvoiceForm, PaymentStatus
from providers.base import sign_payload
from services.errors import (
    AllEndpointsFailed,
    InvalidAmount,
    InvalidForm,
    InvalidResponse,
    NetworkError,
    NotFound,
    PersistenceError,
    SignatureInvalid,
    UnsupportedCurrency,
)
from services.form_service import FormRepository
from services.invoice_store import InvoiceStore
from services.reconciliation import PaymentSource, ReconciliationEngine, generate_transaction_id

from conftest import WEBHOOK_SECRET


def _webhook(invoice_id, event_type="InvoiceSettled", secret=WEBHOOK_SECRET):
    body = json.dumps({"invoiceId": invoice_id, "type": event_type}).encode()
    return body, {"X-Coinsnap-Signature": sign_payload(body, secret)}


def _status(db_session, invoice_id):
    db_session.expire_all()
    return db_session.query(Invoice).filter(Invoice.payment_invoice_id == invoice_id).one().payment_status


# ---------------------------------------------------------------------------
# Invoice creation
# ---------------------------------------------------------------------------

class TestCreateInvoice:
    def test_form_amount_with_percent_discount(self, reconciliation, invoice_form, provider, db_session):
        result = reconciliation.create_invoice(
            invoice_form.id,
            {"name": "Satoshi", "email": "satoshi@example.com", "invoice_number": "INV-1"},
            ip="203.0.113.5",
            user_agent="pytest",
        )

        assert result.amount == 9000
        assert result.currency == "USD"
        assert result.invoice_id == "inv_1"
        assert result.success_page == "https://example.com/thanks"
        assert result.transaction_id.startswith("bif_")
        assert provider.created[0]["amount"] == 9000

        invoice = db_session.query(Invoice).one()
        assert invoice.payment_status == PaymentStatus.UNPAID
        assert invoice.amount == 9000
        assert invoice.payment_provider == "coinsnap"
        assert invoice.ip == "203.0.113.5"
        assert invoice.invoice_number == "INV-1"

    def test_submitted_amount_beats_form_amount(self, reconciliation, invoice_form):
        result = reconciliation.create_invoice(invoice_form.id, {"amount": "50"})
        assert result.amount == 4500

    def test_fixed_discount_floors_at_zero(self, reconciliation, invoice_form, provider, db_session):
        invoice_form.discount_type = "fixed"
        invoice_form.discount_value = Decimal("500")
        db_session.commit()
        reconciliation.create_invoice(invoice_form.id, {})
        assert provider.created[0]["amount"] == 0

    def test_global_default_amount(self, reconciliation, plain_form, settings):
        settings.default_amount = 12.5
        result = reconciliation.create_invoice(plain_form.id, {})
        assert result.amount == 1250
        assert result.currency == "EUR"

    def test_no_amount_anywhere(self, reconciliation, plain_form, provider):
        with pytest.raises(InvalidAmount):
            reconciliation.create_invoice(plain_form.id, {"amount": ""})
        assert provider.created == []

    def test_non_numeric_amount(self, reconciliation, invoice_form):
        with pytest.raises(InvalidAmount):
            reconciliation.create_invoice(invoice_form.id, {"amount": "ten"})

    def test_negative_amount(self, reconciliation, plain_form):
        with pytest.raises(InvalidAmount):
            reconciliation.create_invoice(plain_form.id, {"amount": "-5"})

    def test_currency_selection_is_normalised(self, reconciliation, invoice_form):
        assert reconciliation.create_invoice(invoice_form.id, {"currency": "eur"}).currency == "EUR"

    def test_unsupported_currency(self, reconciliation, invoice_form, provider):
        with pytest.raises(UnsupportedCurrency):
            reconciliation.create_invoice(invoice_form.id, {"currency": "DOGE"})
        assert provider.created == []

    def test_unknown_form(self, reconciliation):
        with pytest.raises(InvalidForm):
            reconciliation.create_invoice(999, {})

    def test_wrong_form_type(self, reconciliation, invoice_form, db_session):
        invoice_form.form_type = "contact_form"
        db_session.commit()
        with pytest.raises(InvalidForm):
            reconciliation.create_invoice(invoice_form.id, {})

    def test_provider_override_is_used(self, reconciliation, invoice_form, registry, db_session):
        invoice_form.provider_override = "btcpay"
        db_session.commit()
        reconciliation.create_invoice(invoice_form.id, {})
        assert registry.requested == ["btcpay"]
        assert db_session.query(Invoice).one().payment_provider == "btcpay"

    def test_provider_failure_persists_nothing(self, reconciliation, invoice_form, provider, db_session):
        provider.error = AllEndpointsFailed("down")
        with pytest.raises(AllEndpointsFailed):
            reconciliation.create_invoice(invoice_form.id, {})
        assert db_session.query(Invoice).count() == 0

    def test_persistence_failure_is_reported(self, reconciliation, invoice_form):
        with patch.object(InvoiceStore, "add", side_effect=PersistenceError("disk full")):
            with pytest.raises(PersistenceError):
                reconciliation.create_invoice(invoice_form.id, {})


def test_transaction_ids_are_unique():
    ids = {generate_transaction_id() for _ in range(200)}
    assert len(ids) == 200
    assert all(i.startswith("bif_") for i in ids)


# ---------------------------------------------------------------------------
# Status convergence
# ---------------------------------------------------------------------------

@pytest.fixture
def created(reconciliation, invoice_form):
    return reconciliation.create_invoice(invoice_form.id, {"email": "satoshi@example.com"})


class TestApplyPaymentResult:
    def test_paid_transition_notifies_once(self, reconciliation, created, notifier, db_session):
        assert reconciliation.apply_payment_result(created.invoice_id, True, PaymentSource.WEBHOOK)
        assert not reconciliation.apply_payment_result(created.invoice_id, True, PaymentSource.POLL)
        assert notifier.notified == [created.invoice_id]
        assert _status(db_session, created.invoice_id) == PaymentStatus.PAID

    def test_not_paid_marks_failed(self, reconciliation, created, notifier, db_session):
        assert not reconciliation.apply_payment_result(created.invoice_id, False, PaymentSource.WEBHOOK)
        assert _status(db_session, created.invoice_id) == PaymentStatus.FAILED
        assert notifier.notified == []

    def test_failed_can_become_paid(self, reconciliation, created, notifier, db_session):
        reconciliation.apply_payment_result(created.invoice_id, False, PaymentSource.WEBHOOK)
        assert reconciliation.apply_payment_result(created.invoice_id, True, PaymentSource.WEBHOOK)
        assert _status(db_session, created.invoice_id) == PaymentStatus.PAID

    def test_paid_never_regresses(self, reconciliation, created, db_session):
        reconciliation.apply_payment_result(created.invoice_id, True, PaymentSource.WEBHOOK)
        reconciliation.apply_payment_result(created.invoice_id, False, PaymentSource.WEBHOOK)
        assert _status(db_session, created.invoice_id) == PaymentStatus.PAID

    def test_unknown_invoice(self, reconciliation):
        with pytest.raises(NotFound):
            reconciliation.apply_payment_result("nope", True, PaymentSource.WEBHOOK)

    def test_notifier_failure_keeps_paid(self, reconciliation, created, notifier, db_session):
        notifier.error = RuntimeError("smtp down")
        assert reconciliation.apply_payment_result(created.invoice_id, True, PaymentSource.WEBHOOK)
        assert _status(db_session, created.invoice_id) == PaymentStatus.PAID


class TestCheckStatus:
    def test_unpaid(self, reconciliation, created, notifier):
        result = reconciliation.check_status(created.invoice_id)
        assert not result.paid
        assert result.status == "New"
        assert notifier.notified == []

    def test_paid_at_provider_is_applied(self, reconciliation, created, provider, notifier, db_session):
        provider.statuses[created.invoice_id] = "Settled"
        result = reconciliation.check_status(created.invoice_id)
        assert result.paid
        assert _status(db_session, created.invoice_id) == PaymentStatus.PAID
        assert notifier.notified == [created.invoice_id]

    def test_lookup_by_transaction_id(self, reconciliation, created):
        assert reconciliation.check_status(created.transaction_id).invoice_id == created.invoice_id

    def test_already_paid_skips_provider(self, reconciliation, created, provider):
        reconciliation.apply_payment_result(created.invoice_id, True, PaymentSource.WEBHOOK)
        provider.status_calls.clear()
        result = reconciliation.check_status(created.invoice_id)
        assert result.paid
        assert result.status == "paid"
        assert provider.status_calls == []

    def test_provider_unreachable_leaves_invoice(self, reconciliation, created, provider, db_session):
        provider.error = NetworkError("timeout")
        with pytest.raises(NetworkError):
            reconciliation.check_status(created.invoice_id)
        assert _status(db_session, created.invoice_id) == PaymentStatus.UNPAID

    def test_manual_verify(self, reconciliation, created, provider, notifier):
        provider.statuses[created.invoice_id] = "Complete"
        assert reconciliation.verify_payment(created.invoice_id).paid
        reconciliation.verify_payment(created.invoice_id)
        assert notifier.notified == [created.invoice_id]

    def test_unknown(self, reconciliation):
        with pytest.raises(NotFound):
            reconciliation.check_status("missing")


class TestHandleWebhook:
    def test_settled_webhook(self, reconciliation, created, notifier, db_session):
        body, headers = _webhook(created.invoice_id)
        assert reconciliation.handle_webhook("coinsnap", body, headers)
        assert _status(db_session, created.invoice_id) == PaymentStatus.PAID
        assert notifier.notified == [created.invoice_id]

    def test_redelivery_is_idempotent(self, reconciliation, created, notifier):
        body, headers = _webhook(created.invoice_id)
        reconciliation.handle_webhook("coinsnap", body, headers)
        assert not reconciliation.handle_webhook("coinsnap", body, headers)
        assert notifier.notified == [created.invoice_id]

    def test_bad_signature_mutates_nothing(self, reconciliation, created, notifier, db_session):
        body, headers = _webhook(created.invoice_id, secret="forged")
        with pytest.raises(SignatureInvalid):
            reconciliation.handle_webhook("coinsnap", body, headers)
        assert _status(db_session, created.invoice_id) == PaymentStatus.UNPAID
        assert notifier.notified == []

    def test_missing_secret_rejects(self, reconciliation, created, provider):
        provider.webhook_secret = ""
        body, headers = _webhook(created.invoice_id, secret="")
        with pytest.raises(SignatureInvalid):
            reconciliation.handle_webhook("coinsnap", body, headers)

    def test_verification_override(self, reconciliation, created, settings, db_session):
        settings.disable_webhook_verification = True
        body = json.dumps({"invoiceId": created.invoice_id, "type": "InvoicePaid"}).encode()
        assert reconciliation.handle_webhook("coinsnap", body, {})
        assert _status(db_session, created.invoice_id) == PaymentStatus.PAID

    def test_expired_event_marks_failed(self, reconciliation, created, db_session):
        body, headers = _webhook(created.invoice_id, event_type="InvoiceExpired")
        assert not reconciliation.handle_webhook("coinsnap", body, headers)
        assert _status(db_session, created.invoice_id) == PaymentStatus.FAILED

    def test_unknown_invoice(self, reconciliation):
        body, headers = _webhook("inv_unknown")
        with pytest.raises(NotFound):
            reconciliation.handle_webhook("coinsnap", body, headers)

    def test_unusable_body(self, reconciliation):
        body = b'{"type": "InvoiceSettled"}'
        headers = {"X-Coinsnap-Signature": sign_payload(body, WEBHOOK_SECRET)}
        with pytest.raises(InvalidResponse):
            reconciliation.handle_webhook("coinsnap", body, headers)


def test_end_to_end_webhook_then_poll(reconciliation, invoice_form, provider, notifier, db_session):
    created = reconciliation.create_invoice(invoice_form.id, {"name": "Satoshi"})
    body, headers = _webhook(created.invoice_id)
    reconciliation.handle_webhook("coinsnap", body, headers)

    provider.statuses[created.invoice_id] = "Settled"
    assert reconciliation.check_status(created.invoice_id).paid
    assert notifier.notified == [created.invoice_id]


def test_lookup_failure_is_a_persistence_error(store):
    db_down = OperationalError("SELECT", {}, Exception("database is locked"))
    with patch.object(Query, "first", side_effect=db_down):
        with pytest.raises(PersistenceError):
            store.get_by_external_id("inv_1")


# ---------------------------------------------------------------------------
# Webhook and poll racing on separate sessions
# ---------------------------------------------------------------------------

@pytest.fixture
def file_db(tmp_path):
    """File-backed SQLite so that each session holds its own connection."""
    engine = create_engine(f"sqlite:///{tmp_path / 'invoices.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    with factory() as setup:
        form = InvoiceForm(title="Race", form_type="bif_invoice_form")
        setup.add(form)
        setup.commit()
        setup.add(Invoice(
            form_id=form.id,
            transaction_id="bif_1760000000_race0001",
            customer_name="Satoshi",
            customer_email="satoshi@example.com",
            amount=9000,
            currency=Currency.USD,
            payment_provider="coinsnap",
            payment_invoice_id="inv_race",
        ))
        setup.commit()

    yield factory
    engine.dispose()


def test_racing_confirmations_notify_once(file_db, registry, notifier, settings):
    webhook_db, poll_db = file_db(), file_db()
    try:
        engines = [
            ReconciliationEngine(InvoiceStore(db), FormRepository(db), registry, notifier, settings)
            for db in (webhook_db, poll_db)
        ]

        # Both requests load the row while it is still unpaid
        for db in (webhook_db, poll_db):
            assert InvoiceStore(db).get_by_external_id("inv_race").payment_status == PaymentStatus.UNPAID

        results = [
            engines[0].apply_payment_result("inv_race", True, PaymentSource.WEBHOOK),
            engines[1].apply_payment_result("inv_race", True, PaymentSource.POLL),
        ]

        assert results.count(True) == 1
        assert notifier.notified == ["inv_race"]
        poll_db.expire_all()
        assert InvoiceStore(poll_db).get_by_external_id("inv_race").payment_status == PaymentStatus.PAID
    finally:
        webhook_db.close()
        poll_db.close()
