"""Pydantic schemas for the Atlas API.

All response models are defined here for easy import.
"""

from atlas.schemas.aggregation import (
    AggregatedOffer,
    AggregatedProduct,
    AggregationMetadata,
    AggregationResponse,
    IntegrationError,
    IntegrationMetric,
    MerchantBrief,
)
from atlas.schemas.common import ApiResponse, ErrorDetail, ErrorResponse, PaginationMeta, SearchResults
from atlas.schemas.health import HealthCheckResponse, ServiceInfoResponse

__all__ = [
    # Common
    "ApiResponse",
    "ErrorDetail",
    "ErrorResponse",
    "PaginationMeta",
    "SearchResults",
    # Aggregation
    "AggregatedOffer",
    "AggregatedProduct",
    "AggregationMetadata",
    "AggregationResponse",
    "IntegrationError",
    "IntegrationMetric",
    "MerchantBrief",
    # Health
    "HealthCheckResponse",
    "ServiceInfoResponse",
]
