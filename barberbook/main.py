import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from barberbook.api.v1.api import api_router
from barberbook.core.config import settings
from barberbook.core.errors import BookingError
from barberbook.core.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    openapi_url=f"{settings.api_v1_str}/openapi.json"
)

@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    # Only the stable code leaves the service; the detail stays in the logs
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code})

app.include_router(api_router, prefix=settings.api_v1_str)

@app.get("/")
async def root():
    return {"message": "Barberbook booking backend is running"}
