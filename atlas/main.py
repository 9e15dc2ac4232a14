"""Atlas Taman -- FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from atlas.api.v1.router import api_router
from atlas.config import settings
from atlas.schemas import ServiceInfoResponse
from atlas.scrapers.register_adapters import create_default_adapters
from atlas.services.aggregator_service import ProductAggregator
from atlas.services.cache_service import build_response_cache

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.DEBUG else logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_aggregator() -> ProductAggregator:
    """Wire the default merchant roster, cache and limits from settings."""
    return ProductAggregator(
        integrations=create_default_adapters(settings),
        cache=build_response_cache(settings),
        rate_limit_ms=settings.RATE_LIMIT_MS,
        max_concurrency=settings.MAX_CONCURRENCY,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    # Startup
    logger.info("Starting Atlas Taman API server...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    if getattr(app.state, "aggregator", None) is None:
        app.state.aggregator = build_aggregator()
    logger.info(
        "Registered merchants: %s",
        ", ".join(integration.id for integration in app.state.aggregator.integrations),
    )

    yield

    # Shutdown
    logger.info("Shutting down Atlas Taman API server...")
    await app.state.aggregator.cache.close()


def create_app(aggregator: Optional[ProductAggregator] = None) -> FastAPI:
    """Build the application.

    Args:
        aggregator: Pre-built aggregator (tests); built at startup when omitted
    """
    app = FastAPI(
        title="Atlas Taman API",
        description="Comparateur de prix intelligent pour le Maroc",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )
    app.state.aggregator = aggregator

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            settings.FRONTEND_URL,
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api")

    @app.get("/api", response_model=ServiceInfoResponse)
    async def service_info(request: Request):
        """API information and the merchants being compared."""
        return ServiceInfoResponse(
            name="Atlas Taman API",
            description="Comparateur de prix intelligent pour le Maroc",
            version=settings.APP_VERSION,
            endpoints={
                "health": "/api/health",
                "search": "/api/search?q=",
                "products": "/api/products",
            },
            merchants=[integration.label for integration in request.app.state.aggregator.integrations],
        )

    return app


app = create_app()
