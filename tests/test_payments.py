"""Tests for payment confirmation, checkout creation and reconciliation."""

from datetime import timedelta
from types import SimpleNamespace

import pytest
import stripe

from barberbook.core.config import settings
from barberbook.core.errors import AppointmentNotFound, HoldExpired, InvalidDepositAmount, InvalidTransition, PaymentProviderError
from barberbook.domain.appointments import AppointmentStatus
from barberbook.services import payments as payments_module
from barberbook.services.payments import ConfirmationOutcome, PaymentService
from barberbook.utils.time import now_utc
from conftest import local


@pytest.fixture
def hold(make_appointment):
    return make_appointment(
        local(2030, 3, 5, 10, 0),
        status=AppointmentStatus.PENDING_PAYMENT,
        hold_expires_at=now_utc() + timedelta(minutes=5),
        deposit_amount_cents=1000,
    )


@pytest.fixture
def pending_payment(store, tenant, hold):
    return store.seed(
        "appointment_payments",
        org_id=tenant["id"],
        appointment_id=hold["id"],
        provider="stripe",
        status="pending",
        stripe_checkout_session_id="cs_test_1",
        amount_cents=1000,
        currency="brl",
    )


@pytest.fixture
def sent_messages(monkeypatch):
    sent = []

    async def fake_send(instance_name, recipient_number, text):
        sent.append({"instance": instance_name, "to": recipient_number, "text": text})
        return True

    monkeypatch.setattr(payments_module, "send_text_message", fake_send)
    return sent


def confirm(tenant, hold, event_id="evt_1", session_id="cs_test_1"):
    return PaymentService().confirm_payment(
        provider_event_id=event_id,
        tenant_id=tenant["id"],
        appointment_id=hold["id"],
        session_id=session_id,
        amount_cents=1000,
        currency="BRL",
        payment_intent_id="pi_1",
    )


@pytest.mark.asyncio
class TestConfirmPayment:
    """Tests for PaymentService.confirm_payment."""

    async def test_confirms_hold_and_marks_payment_paid(self, store, tenant, hold, pending_payment, sent_messages):
        outcome = await confirm(tenant, hold)

        assert outcome == ConfirmationOutcome.CONFIRMED
        appointment = store.get("appointments", hold["id"])
        assert appointment["status"] == "confirmed"
        assert appointment["hold_expires_at"] is None
        payment = store.get("appointment_payments", pending_payment["id"])
        assert payment["status"] == "paid"
        assert payment["stripe_event_id"] == "evt_1"
        assert payment["stripe_payment_intent_id"] == "pi_1"
        assert payment["needs_reconciliation"] is False

    async def test_duplicate_event_is_a_no_op(self, store, tenant, hold, pending_payment, sent_messages):
        await confirm(tenant, hold)
        outcome = await confirm(tenant, hold)

        assert outcome == ConfirmationOutcome.DUPLICATE
        payments = store.rows("appointment_payments")
        assert len(payments) == 1
        assert payments[0]["status"] == "paid"

    async def test_records_payment_when_checkout_row_is_missing(self, store, tenant, hold, sent_messages):
        outcome = await confirm(tenant, hold, session_id="cs_untracked")

        assert outcome == ConfirmationOutcome.CONFIRMED
        payments = store.rows("appointment_payments")
        assert len(payments) == 1
        assert payments[0]["status"] == "paid"
        assert payments[0]["currency"] == "brl"
        assert payments[0]["stripe_checkout_session_id"] == "cs_untracked"

    async def test_expired_hold_goes_to_reconciliation(self, store, tenant, hold, pending_payment, sent_messages):
        await PaymentService().lifecycle.expire_stale_holds(now=now_utc() + timedelta(minutes=6))

        outcome = await confirm(tenant, hold)

        assert outcome == ConfirmationOutcome.RECONCILIATION_REQUIRED
        assert store.get("appointments", hold["id"])["status"] == "expired"
        payment = store.get("appointment_payments", pending_payment["id"])
        assert payment["status"] == "paid"
        assert payment["needs_reconciliation"] is True
        assert sent_messages == []

        queue = await PaymentService().list_reconciliation_queue(tenant["id"])
        assert [p["id"] for p in queue] == [pending_payment["id"]]

    async def test_redelivery_after_interrupted_run(self, store, tenant, hold, pending_payment, sent_messages):
        """Confirmed but never stamped: the redelivery finishes the job."""
        await PaymentService().lifecycle.confirm(tenant["id"], hold["id"])
        store.update_rows("appointment_payments", {"status": "paid"}, [lambda r: r["id"] == pending_payment["id"]])

        outcome = await confirm(tenant, hold)

        assert outcome == ConfirmationOutcome.CONFIRMED
        assert store.get("appointment_payments", pending_payment["id"])["stripe_event_id"] == "evt_1"
        assert len(store.rows("appointment_payments")) == 1

    async def test_second_paid_session_goes_to_reconciliation(self, store, tenant, hold, sent_messages):
        """Two Checkout sessions paid for one appointment: only the first confirms it."""
        for session_id in ("cs_a", "cs_b"):
            store.seed(
                "appointment_payments",
                org_id=tenant["id"],
                appointment_id=hold["id"],
                provider="stripe",
                status="pending",
                stripe_checkout_session_id=session_id,
                amount_cents=1000,
                currency="brl",
            )

        first = await confirm(tenant, hold, event_id="evt_a", session_id="cs_a")
        second = await confirm(tenant, hold, event_id="evt_b", session_id="cs_b")

        assert first == ConfirmationOutcome.CONFIRMED
        assert second == ConfirmationOutcome.RECONCILIATION_REQUIRED
        assert store.get("appointments", hold["id"])["status"] == "confirmed"
        flags = {p["stripe_checkout_session_id"]: p["needs_reconciliation"] for p in store.rows("appointment_payments")}
        assert flags == {"cs_a": False, "cs_b": True}

        queue = await PaymentService().list_reconciliation_queue(tenant["id"])
        assert [p["stripe_checkout_session_id"] for p in queue] == ["cs_b"]

    async def test_unknown_appointment_writes_nothing(self, store, tenant, hold, pending_payment, sent_messages):
        other_tenant = store.seed("organizations", name="Outra Barbearia", timezone="America/Sao_Paulo")

        with pytest.raises(AppointmentNotFound):
            await confirm(other_tenant, hold)

        assert len(store.rows("appointment_payments")) == 1
        assert store.get("appointment_payments", pending_payment["id"])["status"] == "pending"

    async def test_sends_whatsapp_confirmation(self, store, tenant, hold, pending_payment, sent_messages):
        store.update_rows("organizations", {"whatsapp_instance_id": "barbearia-ze"}, [lambda r: r["id"] == tenant["id"]])

        await confirm(tenant, hold)

        assert len(sent_messages) == 1
        assert sent_messages[0]["instance"] == "barbearia-ze"
        assert sent_messages[0]["to"] == hold["customer_phone"]
        assert "05/03/2030 10:00" in sent_messages[0]["text"]

    async def test_notification_failure_does_not_fail_confirmation(self, store, tenant, hold, pending_payment, monkeypatch):
        store.update_rows("organizations", {"whatsapp_instance_id": "barbearia-ze"}, [lambda r: r["id"] == tenant["id"]])

        async def broken_send(**kwargs):
            raise RuntimeError("evolution down")

        monkeypatch.setattr(payments_module, "send_text_message", broken_send)

        assert await confirm(tenant, hold) == ConfirmationOutcome.CONFIRMED
        assert store.get("appointment_payments", pending_payment["id"])["stripe_event_id"] == "evt_1"


@pytest.fixture
def fake_stripe(monkeypatch, stripe_settings):
    calls = {"create": [], "retrieve": []}

    def create(**kwargs):
        calls["create"].append(kwargs)
        session_id = f"cs_test_{len(calls['create'])}"
        return SimpleNamespace(id=session_id, url=f"https://checkout.stripe.com/c/pay/{session_id}")

    def retrieve(session_id, **kwargs):
        calls["retrieve"].append(session_id)
        return {"id": session_id, "url": f"https://checkout.stripe.com/c/pay/{session_id}"}

    monkeypatch.setattr(stripe.checkout.Session, "create", create)
    monkeypatch.setattr(stripe.checkout.Session, "retrieve", retrieve)
    return calls


@pytest.mark.asyncio
class TestCreateCheckout:
    """Tests for PaymentService.create_checkout."""

    async def test_creates_session_and_pending_payment(self, store, tenant, haircut, make_appointment, fake_stripe):
        appt = make_appointment(local(2030, 3, 5, 10, 0), status=AppointmentStatus.HOLD,
                                hold_expires_at=now_utc() + timedelta(minutes=5))

        link = await PaymentService().create_checkout(tenant["id"], appt["id"])

        assert link.url == "https://checkout.stripe.com/c/pay/cs_test_1"
        assert link.reused is False
        kwargs = fake_stripe["create"][0]
        assert kwargs["mode"] == "payment"
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 1000
        assert kwargs["line_items"][0]["price_data"]["product_data"]["name"] == "Sinal - Corte"
        assert kwargs["metadata"] == {
            "appointment_id": appt["id"],
            "org_id": tenant["id"],
            "phone": appt["customer_phone"],
        }
        payments = store.rows("appointment_payments")
        assert len(payments) == 1
        assert payments[0]["status"] == "pending"
        assert payments[0]["stripe_checkout_session_id"] == "cs_test_1"
        assert store.get("appointments", appt["id"])["status"] == "pending_payment"

    async def test_reuses_open_session(self, store, tenant, haircut, make_appointment, fake_stripe):
        appt = make_appointment(local(2030, 3, 5, 10, 0), status=AppointmentStatus.HOLD,
                                hold_expires_at=now_utc() + timedelta(minutes=5))
        service = PaymentService()

        first = await service.create_checkout(tenant["id"], appt["id"])
        second = await service.create_checkout(tenant["id"], appt["id"])

        assert second.reused is True
        assert second.session_id == first.session_id
        assert len(fake_stripe["create"]) == 1
        assert len(store.rows("appointment_payments")) == 1

    async def test_new_session_when_old_one_cannot_be_retrieved(self, store, tenant, haircut, make_appointment,
                                                                fake_stripe, monkeypatch):
        appt = make_appointment(local(2030, 3, 5, 10, 0), status=AppointmentStatus.HOLD,
                                hold_expires_at=now_utc() + timedelta(minutes=5))
        service = PaymentService()
        await service.create_checkout(tenant["id"], appt["id"])

        def gone(session_id, **kwargs):
            raise stripe.StripeError("No such checkout.session")

        monkeypatch.setattr(stripe.checkout.Session, "retrieve", gone)
        link = await service.create_checkout(tenant["id"], appt["id"])

        assert link.reused is False
        assert link.session_id == "cs_test_2"

    async def test_expired_hold_is_rejected(self, store, tenant, make_appointment, fake_stripe):
        appt = make_appointment(local(2030, 3, 5, 10, 0), status=AppointmentStatus.HOLD,
                                hold_expires_at=now_utc() - timedelta(seconds=1))

        with pytest.raises(HoldExpired):
            await PaymentService().create_checkout(tenant["id"], appt["id"])
        assert fake_stripe["create"] == []

    async def test_confirmed_appointment_is_rejected(self, store, tenant, make_appointment, fake_stripe):
        appt = make_appointment(local(2030, 3, 5, 10, 0), status=AppointmentStatus.CONFIRMED)

        with pytest.raises(InvalidTransition):
            await PaymentService().create_checkout(tenant["id"], appt["id"])

    async def test_zero_deposit_is_rejected(self, store, tenant, make_appointment, fake_stripe):
        appt = make_appointment(local(2030, 3, 5, 10, 0), status=AppointmentStatus.HOLD,
                                hold_expires_at=now_utc() + timedelta(minutes=5), deposit_amount_cents=0)

        with pytest.raises(InvalidDepositAmount):
            await PaymentService().create_checkout(tenant["id"], appt["id"])

    async def test_missing_stripe_key(self, store, tenant, make_appointment, monkeypatch):
        monkeypatch.setattr(settings, "stripe_secret_key", None)
        appt = make_appointment(local(2030, 3, 5, 10, 0), status=AppointmentStatus.HOLD,
                                hold_expires_at=now_utc() + timedelta(minutes=5))

        with pytest.raises(PaymentProviderError):
            await PaymentService().create_checkout(tenant["id"], appt["id"])

    async def test_stripe_failure_leaves_hold_untouched(self, store, tenant, haircut, make_appointment,
                                                        fake_stripe, monkeypatch):
        appt = make_appointment(local(2030, 3, 5, 10, 0), status=AppointmentStatus.HOLD,
                                hold_expires_at=now_utc() + timedelta(minutes=5))

        def down(**kwargs):
            raise stripe.StripeError("API unavailable")

        monkeypatch.setattr(stripe.checkout.Session, "create", down)

        with pytest.raises(PaymentProviderError):
            await PaymentService().create_checkout(tenant["id"], appt["id"])
        assert store.get("appointments", appt["id"])["status"] == "hold"
        assert store.rows("appointment_payments") == []
