"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter

from atlas.config import settings
from atlas.schemas import HealthCheckResponse

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """Return service liveness."""
    return HealthCheckResponse(
        status="OK",
        message="Atlas Taman API is running",
        timestamp=datetime.now(timezone.utc),
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )
