"""Search API endpoint."""

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from atlas.dependencies import get_aggregator
from atlas.schemas import (
    AggregationResponse,
    ApiResponse,
    ErrorDetail,
    ErrorResponse,
    PaginationMeta,
    SearchResults,
)
from atlas.services.aggregator_service import ProductAggregator, sort_products

logger = structlog.get_logger(__name__)

router = APIRouter()


def build_search_results(response: AggregationResponse, sort: str = "relevance") -> SearchResults:
    products = sort_products(response.products, sort)
    return SearchResults(
        results=products,
        pagination=PaginationMeta(total=len(products)),
        errors=response.errors,
        metadata=response.metadata,
    )


def aggregation_failed(error: Exception) -> JSONResponse:
    """500 envelope for failures escaping the aggregator."""
    body = ErrorResponse(
        error=ErrorDetail(
            code="aggregation_failed",
            message=str(error) or "Aggregation failed",
        )
    )
    return JSONResponse(status_code=500, content=body.model_dump(mode="json"))


@router.get("", response_model=ApiResponse[SearchResults])
async def search(
    q: str = Query("", description="Search query"),
    sort: str = Query(
        "relevance",
        pattern="^(relevance|price_asc|price_desc|name)$",
        description="Sort method",
    ),
    aggregator: ProductAggregator = Depends(get_aggregator),
):
    """Search every merchant and return products grouped across merchants.

    Sort options:
    - relevance: Aggregator order (cheapest total price first)
    - price_asc / price_desc: By cheapest total price
    - name: Alphabetical
    """
    try:
        response = await aggregator.search(q)
    except Exception as e:
        logger.error("search_failed", query=q, error=str(e), exc_info=True)
        return aggregation_failed(e)

    return ApiResponse[SearchResults](data=build_search_results(response, sort))
