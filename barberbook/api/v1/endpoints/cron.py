import logging
from fastapi import APIRouter, Depends

from barberbook.api.deps import require_cron_secret
from barberbook.services.lifecycle import lifecycle_service

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/expire-holds", dependencies=[Depends(require_cron_secret)])
async def expire_holds():
    """
    Periodic sweep, called by an external scheduler (e.g. every minute).
    """
    expired = await lifecycle_service.expire_stale_holds()
    return {"ok": True, "expired_count": expired}
