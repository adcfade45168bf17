from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from datetime import datetime
from uuid import UUID

from barberbook.api.deps import TenantContext, get_tenant_context
from barberbook.domain.appointments import AppointmentStatus
from barberbook.schemas.appointment import AppointmentResponse, HoldCreate
from barberbook.services.holds import hold_service
from barberbook.services.lifecycle import lifecycle_service

router = APIRouter()

@router.get("/", response_model=List[AppointmentResponse])
async def list_appointments(
    professional_id: Optional[UUID] = Query(None),
    status: Optional[AppointmentStatus] = Query(None),
    starts_from: Optional[datetime] = Query(None),
    starts_to: Optional[datetime] = Query(None),
    ctx: TenantContext = Depends(get_tenant_context)
):
    """
    List the tenant's appointments with optional filters.
    """
    return await lifecycle_service.list_appointments(
        tenant_id=ctx.tenant_id,
        professional_id=str(professional_id) if professional_id else None,
        status=status,
        starts_from=starts_from,
        starts_to=starts_to,
    )

@router.post("/holds", response_model=AppointmentResponse, status_code=201)
async def create_hold(
    hold_in: HoldCreate,
    ctx: TenantContext = Depends(get_tenant_context)
):
    """
    Reserve a slot for a customer. 409 when the slot is taken.
    """
    return await hold_service.create_hold(
        tenant_id=ctx.tenant_id,
        phone=hold_in.phone,
        service_id=str(hold_in.service_id),
        professional_id=str(hold_in.professional_id),
        starts_at=hold_in.starts_at,
        unit_id=str(hold_in.unit_id) if hold_in.unit_id else None,
        customer_name=hold_in.customer_name,
    )

@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context)
):
    """
    Cancel an active booking. Requires an owner or tenant_admin role.
    """
    return await lifecycle_service.cancel(ctx.tenant_id, str(appointment_id), ctx.role)

@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_appointment(
    appointment_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context)
):
    return await lifecycle_service.complete(ctx.tenant_id, str(appointment_id), ctx.role)

@router.post("/{appointment_id}/no-show", response_model=AppointmentResponse)
async def mark_no_show(
    appointment_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context)
):
    return await lifecycle_service.mark_no_show(ctx.tenant_id, str(appointment_id), ctx.role)
