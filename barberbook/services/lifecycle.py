"""
Appointment lifecycle.

Every write is conditional on the row's current status (compare-and-swap), so
a delayed or retried request can never overwrite a state that already moved on.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from barberbook.core.errors import AppointmentNotFound, InvalidTransition, PermissionDenied
from barberbook.core.supabase_client import SupabaseBacked, maybe_row
from barberbook.domain.appointments import (
    ADMIN_ROLES,
    CANCELABLE_STATUSES,
    HOLD_STATUSES,
    AppointmentStatus,
    OrgRole,
)
from barberbook.utils.time import now_utc, to_iso

logger = logging.getLogger(__name__)


def _values(statuses) -> list:
    return sorted(AppointmentStatus(s).value for s in statuses)


class LifecycleService(SupabaseBacked):

    async def expire_stale_holds(self, now: Optional[datetime] = None) -> int:
        """
        Moves every hold whose expiry has passed to 'expired'.
        Rows already expired no longer match, so a second run transitions nothing.
        """
        now_iso = to_iso(now or now_utc())
        res = self.db.table("appointments")\
            .update({"status": AppointmentStatus.EXPIRED.value, "hold_expires_at": None})\
            .in_("status", _values(HOLD_STATUSES))\
            .lte("hold_expires_at", now_iso)\
            .execute()
        count = len(res.data or [])
        if count:
            logger.info(f"Expired {count} stale hold(s) at {now_iso}")
        return count

    async def cancel(self, tenant_id: str, appointment_id: str, role: OrgRole) -> Dict[str, Any]:
        """Staff cancellation of an active booking (hold, pending_payment or confirmed)."""
        self._require_admin(role)
        return await self._transition(
            tenant_id,
            appointment_id,
            CANCELABLE_STATUSES,
            {"status": AppointmentStatus.CANCELED.value, "hold_expires_at": None},
        )

    async def complete(self, tenant_id: str, appointment_id: str, role: OrgRole) -> Dict[str, Any]:
        self._require_admin(role)
        return await self._transition(
            tenant_id,
            appointment_id,
            {AppointmentStatus.CONFIRMED},
            {"status": AppointmentStatus.COMPLETED.value},
        )

    async def mark_no_show(self, tenant_id: str, appointment_id: str, role: OrgRole) -> Dict[str, Any]:
        self._require_admin(role)
        return await self._transition(
            tenant_id,
            appointment_id,
            {AppointmentStatus.CONFIRMED},
            {"status": AppointmentStatus.NO_SHOW.value},
        )

    async def mark_pending_payment(self, tenant_id: str, appointment_id: str) -> Dict[str, Any]:
        """hold -> pending_payment once a checkout session exists. Idempotent."""
        try:
            return await self._transition(
                tenant_id,
                appointment_id,
                {AppointmentStatus.HOLD},
                {"status": AppointmentStatus.PENDING_PAYMENT.value},
            )
        except InvalidTransition:
            current = await self.get(tenant_id, appointment_id)
            if current["status"] == AppointmentStatus.PENDING_PAYMENT.value:
                return current
            raise

    async def confirm(self, tenant_id: str, appointment_id: str) -> Optional[Dict[str, Any]]:
        """
        hold|pending_payment -> confirmed, clearing the hold expiry.
        Returns None when the row is no longer a hold.
        """
        res = self.db.table("appointments")\
            .update({"status": AppointmentStatus.CONFIRMED.value, "hold_expires_at": None})\
            .eq("org_id", tenant_id)\
            .eq("id", appointment_id)\
            .in_("status", _values(HOLD_STATUSES))\
            .execute()
        return res.data[0] if res.data else None

    async def get(self, tenant_id: str, appointment_id: str) -> Dict[str, Any]:
        res = self.db.table("appointments")\
            .select("*")\
            .eq("org_id", tenant_id)\
            .eq("id", appointment_id)\
            .maybe_single()\
            .execute()
        appointment = maybe_row(res)
        if not appointment:
            raise AppointmentNotFound()
        return appointment

    async def list_appointments(
        self,
        tenant_id: str,
        professional_id: Optional[str] = None,
        status: Optional[AppointmentStatus] = None,
        starts_from: Optional[datetime] = None,
        starts_to: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        query = self.db.table("appointments").select("*").eq("org_id", tenant_id)
        if professional_id:
            query = query.eq("professional_id", professional_id)
        if status:
            query = query.eq("status", AppointmentStatus(status).value)
        if starts_from:
            query = query.gte("starts_at", to_iso(starts_from))
        if starts_to:
            query = query.lte("starts_at", to_iso(starts_to))
        res = query.order("starts_at").execute()
        return res.data or []

    async def _transition(
        self,
        tenant_id: str,
        appointment_id: str,
        allowed_sources: Iterable[AppointmentStatus],
        changes: Dict[str, Any],
    ) -> Dict[str, Any]:
        res = self.db.table("appointments")\
            .update(changes)\
            .eq("org_id", tenant_id)\
            .eq("id", appointment_id)\
            .in_("status", _values(allowed_sources))\
            .execute()
        if res.data:
            logger.info(f"Appointment {appointment_id} -> {changes['status']}")
            return res.data[0]

        # Nothing matched: either the row doesn't exist or its status moved on
        current = await self.get(tenant_id, appointment_id)
        logger.info(
            f"Rejected transition of appointment {appointment_id}: {current['status']} -> {changes['status']}"
        )
        raise InvalidTransition(f"cannot move from {current['status']} to {changes['status']}")

    @staticmethod
    def _require_admin(role: OrgRole):
        try:
            role = OrgRole(role)
        except ValueError:
            raise PermissionDenied()
        if role not in ADMIN_ROLES:
            raise PermissionDenied()

# Singleton
lifecycle_service = LifecycleService()
