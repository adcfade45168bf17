from fastapi import APIRouter, Depends, Query
from typing import List
from datetime import datetime
from uuid import UUID

from barberbook.api.deps import TenantContext, get_tenant_context
from barberbook.schemas.appointment import SlotResponse
from barberbook.services.availability import availability_service

router = APIRouter()

@router.get("/", response_model=List[SlotResponse])
async def get_available_slots(
    professional_id: UUID,
    service_id: UUID,
    window_from: datetime = Query(..., alias="from"),
    window_to: datetime = Query(..., alias="to"),
    ctx: TenantContext = Depends(get_tenant_context)
):
    """
    Suggest up to 3 free start times for a professional and service.
    """
    slots = await availability_service.get_available_slots(
        tenant_id=ctx.tenant_id,
        professional_id=str(professional_id),
        service_id=str(service_id),
        window_from=window_from,
        window_to=window_to,
    )
    return [slot.as_dict() for slot in slots]
