"""Product catalog endpoint."""

import structlog
from fastapi import APIRouter, Depends

from atlas.api.v1.search import aggregation_failed, build_search_results
from atlas.dependencies import get_aggregator
from atlas.schemas import ApiResponse, SearchResults
from atlas.services.aggregator_service import ProductAggregator

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("", response_model=ApiResponse[SearchResults])
async def list_products(aggregator: ProductAggregator = Depends(get_aggregator)):
    """List every product currently offered, across all merchants."""
    try:
        response = await aggregator.list_products()
    except Exception as e:
        logger.error("catalog_failed", error=str(e), exc_info=True)
        return aggregation_failed(e)

    return ApiResponse[SearchResults](data=build_search_results(response))
