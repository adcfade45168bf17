from fastapi import APIRouter
from barberbook.api.v1.endpoints import appointments, availability, catalog, cron, payments, webhook

api_router = APIRouter()
api_router.include_router(availability.router, prefix="/availability", tags=["availability"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["appointments"])
api_router.include_router(catalog.router, prefix="/catalog", tags=["catalog"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(webhook.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(cron.router, prefix="/cron", tags=["cron"])
