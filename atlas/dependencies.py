"""FastAPI dependency injection providers."""

from fastapi import Request

from atlas.services.aggregator_service import ProductAggregator


def get_aggregator(request: Request) -> ProductAggregator:
    """Return the application-wide aggregator built during startup.

    Usage:
        @router.get("/search")
        async def search(aggregator: ProductAggregator = Depends(get_aggregator)):
            return await aggregator.search("iphone")
    """
    return request.app.state.aggregator
