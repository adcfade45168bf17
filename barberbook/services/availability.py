"""
Calendar/availability engine.

Candidate start times are laid on a fixed 30 minute grid from the start of the
requested window. A candidate survives when the whole [start, start+duration)
interval sits inside business hours (tenant-local civil time) and does not
overlap any blocking appointment of the professional. The result is a pure
function of the current rows; nothing is written.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pytz

from barberbook.core.errors import InvalidTimeWindow
from barberbook.core.supabase_client import SupabaseBacked
from barberbook.domain.appointments import AppointmentStatus, HOLD_STATUSES, is_blocking
from barberbook.services.catalog import CatalogService
from barberbook.utils.time import ensure_aware, now_utc, parse_ts, to_iso

logger = logging.getLogger(__name__)

SLOT_STEP = timedelta(minutes=30)
MAX_SUGGESTIONS = 3

# Fixed policy, not configurable per tenant
BUSINESS_OPEN = time(9, 0)
BUSINESS_CLOSE = time(19, 0)

Interval = Tuple[datetime, datetime]


@dataclass(frozen=True)
class Slot:
    starts_at: datetime
    ends_at: datetime

    def as_dict(self) -> Dict[str, str]:
        return {"starts_at": to_iso(self.starts_at), "ends_at": to_iso(self.ends_at)}


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap: touching endpoints do not overlap."""
    return a_start < b_end and a_end > b_start


def within_business_hours(start: datetime, end: datetime, tz: pytz.BaseTzInfo) -> bool:
    local_start = start.astimezone(tz)
    day = local_start.date()
    opens = tz.localize(datetime.combine(day, BUSINESS_OPEN))
    closes = tz.localize(datetime.combine(day, BUSINESS_CLOSE))
    return start >= opens and end <= closes


def compute_slots(
    window_from: datetime,
    window_to: datetime,
    duration: timedelta,
    busy: Sequence[Interval],
    tz: pytz.BaseTzInfo,
    step: timedelta = SLOT_STEP,
    limit: int = MAX_SUGGESTIONS,
) -> List[Slot]:
    """Walks the grid and keeps the first ``limit`` free candidates, ascending."""
    slots: List[Slot] = []
    candidate = window_from
    while candidate + duration <= window_to and len(slots) < limit:
        candidate_end = candidate + duration
        if within_business_hours(candidate, candidate_end, tz) and not any(
            overlaps(candidate, candidate_end, b_start, b_end) for b_start, b_end in busy
        ):
            slots.append(Slot(candidate, candidate_end))
        candidate += step
    return slots


def blocking_intervals(rows: Iterable[Dict[str, Any]], now: datetime) -> List[Interval]:
    return [
        (parse_ts(row["starts_at"]), parse_ts(row["ends_at"]))
        for row in rows
        if is_blocking(row, now)
    ]


class AvailabilityService(SupabaseBacked):

    def __init__(self, client=None):
        super().__init__(client)
        self.catalog = CatalogService(client)

    async def get_available_slots(
        self,
        tenant_id: str,
        professional_id: str,
        service_id: str,
        window_from: datetime,
        window_to: datetime,
        now: Optional[datetime] = None,
    ) -> List[Slot]:
        timezone_name = await self.catalog.tenant_timezone(tenant_id)
        window_from = ensure_aware(window_from, timezone_name)
        window_to = ensure_aware(window_to, timezone_name)
        if window_from >= window_to:
            raise InvalidTimeWindow("window start must be before window end")

        service = await self.catalog.get_service(tenant_id, service_id)
        await self.catalog.get_professional(tenant_id, professional_id)
        duration = timedelta(minutes=int(service["duration_min"]))

        now = now or now_utc()
        busy = blocking_intervals(
            await self._candidate_blockers(tenant_id, professional_id, window_from, window_to),
            now,
        )
        logger.info(
            f"Availability for professional {professional_id} ({duration} service): "
            f"{len(busy)} blocking appointment(s) in window"
        )
        return compute_slots(window_from, window_to, duration, busy, pytz.timezone(timezone_name))

    async def _candidate_blockers(
        self, tenant_id: str, professional_id: str, window_from: datetime, window_to: datetime
    ) -> List[Dict[str, Any]]:
        """Rows overlapping the window whose status could block; expiry is judged in Python."""
        statuses = [AppointmentStatus.CONFIRMED.value] + [s.value for s in HOLD_STATUSES]
        res = self.db.table("appointments")\
            .select("id, starts_at, ends_at, status, hold_expires_at")\
            .eq("org_id", tenant_id)\
            .eq("professional_id", professional_id)\
            .in_("status", statuses)\
            .lt("starts_at", to_iso(window_to))\
            .gt("ends_at", to_iso(window_from))\
            .execute()
        return res.data or []

# Singleton
availability_service = AvailabilityService()
