from fastapi import APIRouter, Depends
from typing import List

from barberbook.api.deps import TenantContext, get_tenant_context
from barberbook.schemas.catalog import ProfessionalResponse, ServiceResponse, UnitResponse
from barberbook.services.catalog import catalog_service

router = APIRouter()

@router.get("/services", response_model=List[ServiceResponse])
async def list_services(ctx: TenantContext = Depends(get_tenant_context)):
    return await catalog_service.list_services(ctx.tenant_id)

@router.get("/professionals", response_model=List[ProfessionalResponse])
async def list_professionals(ctx: TenantContext = Depends(get_tenant_context)):
    return await catalog_service.list_professionals(ctx.tenant_id)

@router.get("/units", response_model=List[UnitResponse])
async def list_units(ctx: TenantContext = Depends(get_tenant_context)):
    return await catalog_service.list_units(ctx.tenant_id)
