"""Health and service info schemas."""

from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel


class HealthCheckResponse(BaseModel):
    """Health check response."""

    status: str
    message: str
    timestamp: datetime
    version: str
    environment: str


class ServiceInfoResponse(BaseModel):
    """Service description served at the API root."""

    name: str
    description: str
    version: str
    endpoints: Dict[str, str]
    merchants: List[str]
