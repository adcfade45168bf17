import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from barberbook.core.config import settings
from barberbook.core.supabase_client import get_supabase
from barberbook.domain.appointments import OrgRole

logger = logging.getLogger(__name__)

security = HTTPBearer()

@dataclass(frozen=True)
class TenantContext:
    """Tenant and role of the authenticated staff member, passed explicitly to services."""
    tenant_id: str
    user_id: str
    role: OrgRole

async def get_current_user(auth: HTTPAuthorizationCredentials = Depends(security)):
    """
    Verifies the Supabase JWT and returns the user object.
    """
    try:
        res = get_supabase().auth.get_user(auth.credentials)
    except Exception as e:
        logger.warning(f"Auth error: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
        )
    if not res or not res.user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return res.user

async def get_tenant_context(current_user = Depends(get_current_user)) -> TenantContext:
    """
    Resolves the user's organization membership (oldest one first).
    """
    res = get_supabase().table("org_users")\
        .select("org_id, role")\
        .eq("user_id", str(current_user.id))\
        .order("created_at")\
        .limit(1)\
        .execute()
    if not res.data:
        raise HTTPException(status_code=404, detail="Organization not found for this user.")

    membership = res.data[0]
    return TenantContext(
        tenant_id=membership["org_id"],
        user_id=str(current_user.id),
        role=OrgRole(membership["role"]),
    )

def _secret_matches(expected: Optional[str], got: Optional[str]) -> bool:
    if not expected or not got:
        return False
    return hmac.compare_digest(expected, got)

async def require_cron_secret(x_cron_secret: Optional[str] = Header(None)):
    if not settings.cron_secret:
        logger.error("CRON_SECRET is not configured; refusing scheduler call")
        raise HTTPException(status_code=500, detail="missing_cron_secret")
    if not _secret_matches(settings.cron_secret, x_cron_secret):
        logger.warning("Rejected scheduler call with a bad x-cron-secret")
        raise HTTPException(status_code=403, detail="forbidden")

async def require_internal_secret(x_internal_secret: Optional[str] = Header(None)):
    # Open when no secret is configured (local development)
    if settings.internal_api_secret and not _secret_matches(settings.internal_api_secret, x_internal_secret):
        raise HTTPException(status_code=403, detail="forbidden")
