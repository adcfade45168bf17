from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from uuid import UUID
from datetime import datetime

from barberbook.domain.appointments import AppointmentStatus

class HoldCreate(BaseModel):
    phone: str = Field(min_length=5)
    service_id: UUID
    professional_id: UUID
    unit_id: Optional[UUID] = None
    starts_at: datetime
    customer_name: Optional[str] = Field(default=None, max_length=120)

class AppointmentResponse(BaseModel):
    id: UUID
    org_id: UUID
    unit_id: Optional[UUID] = None
    professional_id: UUID
    service_id: UUID
    starts_at: datetime
    ends_at: datetime
    customer_phone: str
    customer_name: Optional[str] = None
    status: AppointmentStatus
    hold_expires_at: Optional[datetime] = None
    deposit_amount_cents: int = 0
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class SlotResponse(BaseModel):
    starts_at: datetime
    ends_at: datetime
