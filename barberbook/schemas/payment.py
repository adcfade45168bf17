from pydantic import BaseModel, ConfigDict
from typing import Optional
from uuid import UUID
from datetime import datetime

from barberbook.domain.appointments import PaymentStatus

class CheckoutRequest(BaseModel):
    org_id: UUID
    appointment_id: UUID

class CheckoutResponse(BaseModel):
    url: str

class PaymentResponse(BaseModel):
    id: UUID
    org_id: UUID
    appointment_id: UUID
    provider: str
    status: PaymentStatus
    stripe_checkout_session_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    amount_cents: int
    currency: str
    needs_reconciliation: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
