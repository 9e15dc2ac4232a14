"""API router -- aggregates all endpoint routers."""

from fastapi import APIRouter

from atlas.api.v1 import health, products, search

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(search.router, prefix="/search", tags=["search"])
api_router.include_router(products.router, prefix="/products", tags=["products"])
