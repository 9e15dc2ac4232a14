"""Aggregation Pydantic schemas.

AggregationResponse is both the cache value and the search payload.
Cache reads and writes go through ``model_copy(deep=True)``.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class MerchantBrief(BaseModel):
    """Merchant identity embedded in each offer."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    url: str
    logo_url: Optional[str] = None
    city: Optional[str] = None


class AggregatedOffer(BaseModel):
    """One merchant offer inside an aggregated product."""

    id: str
    price: Decimal
    total_price: Decimal  # price + shipping_fee
    currency: str
    shipping_fee: Optional[Decimal] = None
    availability: str
    is_available: bool
    url: str
    merchant: MerchantBrief
    created_at: datetime
    updated_at: datetime


class AggregatedProduct(BaseModel):
    """Offers from every merchant that share a grouping slug."""

    id: str
    slug: str
    name: str
    brand: Optional[str] = None
    category: str = "Divers"
    category_slug: str = "divers"
    images: List[str] = Field(default_factory=list)
    min_price: Decimal
    max_price: Decimal
    min_total_price: Decimal
    offers_count: int
    offers: List[AggregatedOffer]  # Ascending by total_price
    specifications: Dict[str, str] = Field(default_factory=dict)
    created_at: datetime


class IntegrationMetric(BaseModel):
    """Execution telemetry for one merchant in one aggregation round."""

    id: str
    label: str
    duration_ms: float
    offers: int
    status: Literal["fulfilled", "rejected"]
    error: Optional[str] = None


class IntegrationError(BaseModel):
    """User-facing record of a merchant that failed this round."""

    merchant_id: str
    merchant_name: str
    message: str


class AggregationMetadata(BaseModel):
    query: str
    from_cache: bool = False
    took_ms: float
    generated_at: datetime
    integrations: List[IntegrationMetric]


class AggregationResponse(BaseModel):
    products: List[AggregatedProduct]
    errors: List[IntegrationError]
    metadata: AggregationMetadata
