from fastapi import APIRouter, Depends
from typing import List

from barberbook.api.deps import TenantContext, get_tenant_context, require_internal_secret
from barberbook.schemas.payment import CheckoutRequest, CheckoutResponse, PaymentResponse
from barberbook.services.payments import payment_service

router = APIRouter()

@router.post("/checkout", response_model=CheckoutResponse, dependencies=[Depends(require_internal_secret)])
async def create_checkout(checkout_in: CheckoutRequest):
    """
    Create (or reuse) the Stripe Checkout session for a held appointment's deposit.
    """
    link = await payment_service.create_checkout(str(checkout_in.org_id), str(checkout_in.appointment_id))
    return {"url": link.url}

@router.get("/reconciliation", response_model=List[PaymentResponse])
async def reconciliation_queue(ctx: TenantContext = Depends(get_tenant_context)):
    """
    Payments received after their hold had expired or been canceled.
    """
    return await payment_service.list_reconciliation_queue(ctx.tenant_id)
