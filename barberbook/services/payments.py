"""
Payment confirmation bridge and Stripe Checkout boundary.

confirm_payment may run more than once for the same provider event (Stripe
redelivers) and concurrently with the expiry sweep. The provider event id is
stamped on the payment row as the very last write, so a failure anywhere
before it leaves the event unrecorded and a redelivery safely re-drives the
remaining steps.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytz
import stripe
from postgrest.exceptions import APIError

from barberbook.core.config import settings
from barberbook.core.errors import (
    HoldExpired,
    InvalidDepositAmount,
    InvalidTransition,
    PaymentProviderError,
    ServiceNotFound,
)
from barberbook.core.supabase_client import SupabaseBacked, maybe_row
from barberbook.domain.appointments import AppointmentStatus, HOLD_STATUSES, PaymentStatus
from barberbook.services.catalog import CatalogService
from barberbook.services.lifecycle import LifecycleService
from barberbook.services.whatsapp import send_text_message
from barberbook.utils.time import now_utc, parse_ts

logger = logging.getLogger(__name__)

PROVIDER = "stripe"
UNIQUE_VIOLATION = "23505"


class ConfirmationOutcome(str, enum.Enum):
    CONFIRMED = "confirmed"
    DUPLICATE = "duplicate"
    # Money received but the hold had already expired or been canceled
    RECONCILIATION_REQUIRED = "reconciliation_required"


@dataclass
class CheckoutLink:
    url: str
    session_id: str
    reused: bool = False


def stripe_field(obj, key):
    """Reads a field from a dict or a StripeObject."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def format_datetime_pt_br(value: datetime, timezone_name: str) -> str:
    return value.astimezone(pytz.timezone(timezone_name)).strftime("%d/%m/%Y %H:%M")


class PaymentService(SupabaseBacked):

    def __init__(self, client=None):
        super().__init__(client)
        self.catalog = CatalogService(client)
        self.lifecycle = LifecycleService(client)

    # --- Confirmation ---

    async def confirm_payment(
        self,
        provider_event_id: str,
        tenant_id: str,
        appointment_id: str,
        session_id: str,
        amount_cents: int,
        currency: str,
        payment_intent_id: Optional[str] = None,
    ) -> ConfirmationOutcome:
        if self._event_already_applied(provider_event_id):
            logger.info(f"Stripe event {provider_event_id} already applied, skipping")
            return ConfirmationOutcome.DUPLICATE

        # Raises AppointmentNotFound before any payment row is written
        await self.lifecycle.get(tenant_id, appointment_id)

        payment_id = self._record_paid(
            tenant_id, appointment_id, session_id, amount_cents, currency, payment_intent_id
        )

        confirmed = await self.lifecycle.confirm(tenant_id, appointment_id)
        if confirmed:
            outcome = ConfirmationOutcome.CONFIRMED
            logger.info(f"SUCCESS: Appointment {appointment_id} confirmed by payment {payment_id}")
        else:
            current = await self.lifecycle.get(tenant_id, appointment_id)
            already_confirmed = current["status"] == AppointmentStatus.CONFIRMED.value
            if already_confirmed and not self._other_paid_payment(tenant_id, appointment_id, payment_id):
                # An earlier, interrupted delivery of this payment already confirmed it
                outcome = ConfirmationOutcome.CONFIRMED
            elif already_confirmed:
                outcome = ConfirmationOutcome.RECONCILIATION_REQUIRED
                logger.warning(
                    f"RECONCILIATION: payment {payment_id} for Tenant {tenant_id} is a second paid "
                    f"checkout for appointment {appointment_id}; left for staff review"
                )
            else:
                outcome = ConfirmationOutcome.RECONCILIATION_REQUIRED
                logger.warning(
                    f"RECONCILIATION: payment {payment_id} for Tenant {tenant_id} received while "
                    f"appointment {appointment_id} is '{current['status']}'; left for staff review"
                )

        try:
            self.db.table("appointment_payments")\
                .update({
                    "stripe_event_id": provider_event_id,
                    "needs_reconciliation": outcome == ConfirmationOutcome.RECONCILIATION_REQUIRED,
                })\
                .eq("id", payment_id)\
                .execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.info(f"Stripe event {provider_event_id} stamped by a concurrent delivery")
                return ConfirmationOutcome.DUPLICATE
            raise

        if outcome == ConfirmationOutcome.CONFIRMED and confirmed:
            await self._notify_confirmed(tenant_id, confirmed)
        return outcome

    def _event_already_applied(self, provider_event_id: str) -> bool:
        res = self.db.table("appointment_payments")\
            .select("id")\
            .eq("stripe_event_id", provider_event_id)\
            .limit(1)\
            .execute()
        return bool(res.data)

    def _other_paid_payment(self, tenant_id: str, appointment_id: str, payment_id: str) -> bool:
        res = self.db.table("appointment_payments")\
            .select("id")\
            .eq("org_id", tenant_id)\
            .eq("appointment_id", appointment_id)\
            .eq("status", PaymentStatus.PAID.value)\
            .neq("id", payment_id)\
            .limit(1)\
            .execute()
        return bool(res.data)

    def _record_paid(
        self,
        tenant_id: str,
        appointment_id: str,
        session_id: str,
        amount_cents: int,
        currency: str,
        payment_intent_id: Optional[str],
    ) -> str:
        """Marks the session's payment row paid, inserting it if checkout never recorded one."""
        existing = self._payment_for_session(tenant_id, appointment_id, session_id)
        if existing is None:
            try:
                res = self.db.table("appointment_payments").insert({
                    "org_id": tenant_id,
                    "appointment_id": appointment_id,
                    "provider": PROVIDER,
                    "status": PaymentStatus.PAID.value,
                    "stripe_checkout_session_id": session_id,
                    "stripe_payment_intent_id": payment_intent_id,
                    "amount_cents": amount_cents,
                    "currency": currency.lower(),
                }).execute()
                return res.data[0]["id"]
            except APIError as e:
                if e.code != UNIQUE_VIOLATION:
                    raise
                # Lost the insert race for this session; fall through to update
                existing = self._payment_for_session(tenant_id, appointment_id, session_id)

        self.db.table("appointment_payments")\
            .update({
                "status": PaymentStatus.PAID.value,
                "stripe_payment_intent_id": payment_intent_id,
                "amount_cents": amount_cents,
                "currency": currency.lower(),
            })\
            .eq("id", existing["id"])\
            .execute()
        return existing["id"]

    def _payment_for_session(self, tenant_id: str, appointment_id: str, session_id: str) -> Optional[Dict[str, Any]]:
        res = self.db.table("appointment_payments")\
            .select("id, status")\
            .eq("org_id", tenant_id)\
            .eq("appointment_id", appointment_id)\
            .eq("stripe_checkout_session_id", session_id)\
            .order("created_at", desc=True)\
            .execute()
        rows = res.data or []
        pending = [r for r in rows if r["status"] == PaymentStatus.PENDING.value]
        if pending:
            return pending[0]
        return rows[0] if rows else None

    async def _notify_confirmed(self, tenant_id: str, appointment: Dict[str, Any]):
        """Best-effort WhatsApp confirmation; never fails the payment flow."""
        try:
            tenant = await self.catalog.get_tenant(tenant_id)
            if not tenant or not tenant.get("whatsapp_instance_id"):
                return
            starts_at = parse_ts(appointment.get("starts_at"))
            if not appointment.get("customer_phone") or starts_at is None:
                return
            when = format_datetime_pt_br(starts_at, tenant.get("timezone") or settings.timezone)
            await send_text_message(
                instance_name=tenant["whatsapp_instance_id"],
                recipient_number=appointment["customer_phone"],
                text=f"Pagamento confirmado. Seu horário está confirmado para {when}.",
            )
        except Exception as e:
            logger.exception(f"Confirmation message failed for appointment {appointment.get('id')}: {e}")

    # --- Checkout ---

    async def create_checkout(self, tenant_id: str, appointment_id: str, now: Optional[datetime] = None) -> CheckoutLink:
        """
        Returns a hosted Checkout URL for the appointment's deposit.
        A still-open pending session is reused instead of creating another one.
        """
        appointment = await self.lifecycle.get(tenant_id, appointment_id)
        if AppointmentStatus(appointment["status"]) not in HOLD_STATUSES:
            raise InvalidTransition("appointment is not awaiting payment")

        expires_at = parse_ts(appointment.get("hold_expires_at"))
        if expires_at is None or expires_at <= (now or now_utc()):
            raise HoldExpired()

        amount = appointment.get("deposit_amount_cents") or 0
        if amount <= 0:
            raise InvalidDepositAmount()

        if not settings.stripe_secret_key:
            logger.error("STRIPE_SECRET_KEY is not configured")
            raise PaymentProviderError()

        reused = self._reuse_pending_session(tenant_id, appointment_id)
        if reused:
            await self.lifecycle.mark_pending_payment(tenant_id, appointment_id)
            return reused

        try:
            service = await self.catalog.get_service(tenant_id, appointment["service_id"])
            service_name = service["name"]
        except ServiceNotFound:
            service_name = "Agendamento"

        currency = settings.default_currency
        try:
            session = stripe.checkout.Session.create(
                api_key=settings.stripe_secret_key,
                mode="payment",
                success_url=f"{settings.app_url}/dashboard/appointments?paid=1",
                cancel_url=f"{settings.app_url}/dashboard/appointments?canceled=1",
                currency=currency,
                line_items=[{
                    "quantity": 1,
                    "price_data": {
                        "currency": currency,
                        "unit_amount": amount,
                        "product_data": {"name": f"Sinal - {service_name}"},
                    },
                }],
                metadata={
                    "appointment_id": appointment["id"],
                    "org_id": tenant_id,
                    "phone": appointment["customer_phone"],
                },
            )
        except stripe.StripeError as e:
            logger.exception(f"Stripe Checkout creation failed for appointment {appointment_id}: {e}")
            raise PaymentProviderError() from e

        self.db.table("appointment_payments").insert({
            "org_id": tenant_id,
            "appointment_id": appointment["id"],
            "provider": PROVIDER,
            "status": PaymentStatus.PENDING.value,
            "stripe_checkout_session_id": session.id,
            "amount_cents": amount,
            "currency": currency,
        }).execute()

        await self.lifecycle.mark_pending_payment(tenant_id, appointment_id)
        logger.info(f"Checkout session {session.id} created for appointment {appointment_id}")
        return CheckoutLink(url=session.url, session_id=session.id)

    def _reuse_pending_session(self, tenant_id: str, appointment_id: str) -> Optional[CheckoutLink]:
        res = self.db.table("appointment_payments")\
            .select("id, stripe_checkout_session_id")\
            .eq("org_id", tenant_id)\
            .eq("appointment_id", appointment_id)\
            .eq("status", PaymentStatus.PENDING.value)\
            .order("created_at", desc=True)\
            .limit(1)\
            .maybe_single()\
            .execute()
        pending = maybe_row(res)
        if not pending or not pending.get("stripe_checkout_session_id"):
            return None

        session_id = pending["stripe_checkout_session_id"]
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=settings.stripe_secret_key)
        except stripe.StripeError as e:
            logger.warning(f"Could not retrieve Checkout session {session_id}, creating a new one: {e}")
            return None

        url = stripe_field(session, "url")
        if not url:
            return None
        return CheckoutLink(url=url, session_id=session_id, reused=True)

    # --- Reconciliation ---

    async def list_reconciliation_queue(self, tenant_id: str) -> List[Dict[str, Any]]:
        """Paid payments whose appointment had already left the hold states."""
        res = self.db.table("appointment_payments")\
            .select("*")\
            .eq("org_id", tenant_id)\
            .eq("needs_reconciliation", True)\
            .order("created_at", desc=True)\
            .execute()
        return res.data or []

# Singleton
payment_service = PaymentService()
