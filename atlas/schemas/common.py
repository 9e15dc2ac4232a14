"""Common Pydantic schemas used across the API."""

from typing import Generic, List, TypeVar

from pydantic import BaseModel

from atlas.schemas.aggregation import AggregatedProduct, AggregationMetadata, IntegrationError

T = TypeVar("T")


class PaginationMeta(BaseModel):
    """Pagination metadata included in list responses."""

    total: int = 0


class ApiResponse(BaseModel, Generic[T]):
    """Standard API response envelope."""

    success: bool = True
    data: T


class ErrorDetail(BaseModel):
    """Error detail for error responses."""

    code: str
    message: str
    field: str | None = None


class ErrorResponse(BaseModel):
    """Standard API error response."""

    success: bool = False
    error: ErrorDetail


class SearchResults(BaseModel):
    """Payload of the search and catalog endpoints."""

    results: List[AggregatedProduct]
    pagination: PaginationMeta
    errors: List[IntegrationError]
    metadata: AggregationMetadata
