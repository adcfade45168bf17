"""
Hold allocator.

The overlap check and the insert happen inside the store, in the
``create_hold_appointment`` function (see barberbook/db/sql). Splitting them
into a query followed by an insert from here would let two concurrent callers
both pass the check; the function serializes them per professional.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from postgrest.exceptions import APIError

from barberbook.core.config import settings
from barberbook.core.errors import (
    HoldCreationFailed,
    InvalidPhone,
    ProfessionalNotFound,
    ServiceNotFound,
    SlotUnavailable,
)
from barberbook.core.supabase_client import SupabaseBacked
from barberbook.services.catalog import CatalogService
from barberbook.utils.phone import normalize_whatsapp_phone
from barberbook.utils.time import ensure_aware, to_iso

logger = logging.getLogger(__name__)

HOLD_RPC = "create_hold_appointment"

# Exception text raised by the store function -> domain error
_RPC_ERRORS = {
    "slot_unavailable": SlotUnavailable,
    "service_not_found": ServiceNotFound,
    "professional_not_found": ProfessionalNotFound,
}


def _error_from_rpc(exc: APIError):
    message = (exc.message or "").lower()
    for marker, error_cls in _RPC_ERRORS.items():
        if marker in message:
            return error_cls()
    return None


class HoldService(SupabaseBacked):

    def __init__(self, client=None):
        super().__init__(client)
        self.catalog = CatalogService(client)

    async def create_hold(
        self,
        tenant_id: str,
        phone: str,
        service_id: str,
        professional_id: str,
        starts_at: datetime,
        unit_id: Optional[str] = None,
        customer_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Reserves [starts_at, starts_at + service duration) for the customer.

        Returns the appointment row in 'hold' status. Raises InvalidPhone,
        SlotUnavailable, ServiceNotFound, ProfessionalNotFound or
        HoldCreationFailed; none of them leaves a row behind.
        """
        normalized_phone = normalize_whatsapp_phone(phone)
        if not normalized_phone:
            raise InvalidPhone()

        if starts_at.tzinfo is None:
            starts_at = ensure_aware(starts_at, await self.catalog.tenant_timezone(tenant_id))

        params = {
            "_org_id": tenant_id,
            "_phone": normalized_phone,
            "_service_id": service_id,
            "_professional_id": professional_id,
            "_unit_id": unit_id,
            "_starts_at": to_iso(starts_at),
            "_customer_name": customer_name,
            "_hold_ttl_minutes": settings.hold_ttl_minutes,
        }

        try:
            res = self.db.rpc(HOLD_RPC, params).execute()
        except APIError as e:
            error = _error_from_rpc(e)
            if error is not None:
                logger.info(
                    f"Hold rejected ({error.code}) for Tenant {tenant_id}, Professional {professional_id} at {params['_starts_at']}"
                )
                raise error
            logger.exception(f"Hold RPC failed for Tenant {tenant_id}, Professional {professional_id}: {e.message}")
            raise HoldCreationFailed() from e
        except Exception as e:
            logger.exception(f"Hold RPC unreachable for Tenant {tenant_id}: {e}")
            raise HoldCreationFailed() from e

        row = res.data[0] if isinstance(res.data, list) and res.data else res.data
        if not row:
            logger.error(f"Hold RPC returned no row for Tenant {tenant_id}, Professional {professional_id}")
            raise HoldCreationFailed()

        logger.info(f"SUCCESS: Hold {row['id']} created, expires at {row.get('hold_expires_at')}")
        return row

# Singleton
hold_service = HoldService()
