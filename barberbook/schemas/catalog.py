from pydantic import BaseModel
from typing import Optional
from uuid import UUID

class ServiceResponse(BaseModel):
    id: UUID
    name: str
    price_cents: int
    duration_min: int
    deposit_percent: int

class ProfessionalResponse(BaseModel):
    id: UUID
    name: str
    phone: Optional[str] = None

class UnitResponse(BaseModel):
    id: UUID
    name: str
    address: Optional[str] = None
