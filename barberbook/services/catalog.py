import logging
from typing import Any, Dict, List, Optional

from barberbook.core.config import settings
from barberbook.core.errors import ProfessionalNotFound, ServiceNotFound
from barberbook.core.supabase_client import SupabaseBacked, maybe_row

logger = logging.getLogger(__name__)

class CatalogService(SupabaseBacked):
    """Read-only access to tenant configuration (services, professionals, units)."""

    async def list_services(self, tenant_id: str) -> List[Dict[str, Any]]:
        res = self.db.table("services")\
            .select("id, name, price_cents, duration_min, deposit_percent")\
            .eq("org_id", tenant_id)\
            .order("name")\
            .execute()
        return res.data or []

    async def list_professionals(self, tenant_id: str) -> List[Dict[str, Any]]:
        res = self.db.table("professionals")\
            .select("id, name, phone")\
            .eq("org_id", tenant_id)\
            .order("name")\
            .execute()
        return res.data or []

    async def list_units(self, tenant_id: str) -> List[Dict[str, Any]]:
        res = self.db.table("units")\
            .select("id, name, address")\
            .eq("org_id", tenant_id)\
            .order("name")\
            .execute()
        return res.data or []

    async def get_service(self, tenant_id: str, service_id: str) -> Dict[str, Any]:
        res = self.db.table("services")\
            .select("id, name, price_cents, duration_min, deposit_percent")\
            .eq("org_id", tenant_id)\
            .eq("id", service_id)\
            .maybe_single()\
            .execute()
        service = maybe_row(res)
        if not service:
            raise ServiceNotFound()
        return service

    async def get_professional(self, tenant_id: str, professional_id: str) -> Dict[str, Any]:
        res = self.db.table("professionals")\
            .select("id, name, phone")\
            .eq("org_id", tenant_id)\
            .eq("id", professional_id)\
            .maybe_single()\
            .execute()
        professional = maybe_row(res)
        if not professional:
            raise ProfessionalNotFound()
        return professional

    async def get_tenant(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        res = self.db.table("organizations")\
            .select("id, name, timezone, whatsapp_instance_id")\
            .eq("id", tenant_id)\
            .maybe_single()\
            .execute()
        return maybe_row(res)

    async def get_tenant_by_instance(self, instance_name: str) -> Optional[Dict[str, Any]]:
        res = self.db.table("organizations")\
            .select("id, name, timezone, whatsapp_instance_id")\
            .eq("whatsapp_instance_id", instance_name)\
            .maybe_single()\
            .execute()
        return maybe_row(res)

    async def tenant_timezone(self, tenant_id: str) -> str:
        """IANA timezone used for the tenant's business hours."""
        tenant = await self.get_tenant(tenant_id)
        if tenant and tenant.get("timezone"):
            return tenant["timezone"]
        logger.debug(f"Tenant {tenant_id} has no timezone, using {settings.timezone}")
        return settings.timezone

# Singleton
catalog_service = CatalogService()
