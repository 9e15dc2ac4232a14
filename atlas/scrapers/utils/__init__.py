"""Scraper utilities for fetching, challenge recovery, rate limiting and normalization."""

from .rate_limiter import KeyedRateLimiter
from .user_agents import USER_AGENTS, DEFAULT_USER_AGENT, get_random_user_agent, get_user_agent
from .normalizer import (
    PriceNormalizer,
    AvailabilityClassifier,
    normalize_text,
    normalize_query,
    slugify,
    parse_price,
    parse_shipping_fee,
    parse_availability,
    IN_STOCK,
    OUT_OF_STOCK,
    UNKNOWN,
)
from .merchant_config import MerchantHttpConfig, resolve_merchant_config
from .challenge import (
    ChallengeDetection,
    CloudflareFallback,
    detect_challenge,
    build_cloudflare_fallback,
)
from .resolvers import ChallengeRequest, ChallengeResolver, build_challenge_resolver
from .http import FetchResult, HttpFetcher, fetch_with_config


__all__ = [
    # Rate limiting
    "KeyedRateLimiter",
    # User agents
    "USER_AGENTS",
    "DEFAULT_USER_AGENT",
    "get_random_user_agent",
    "get_user_agent",
    # Normalization
    "PriceNormalizer",
    "AvailabilityClassifier",
    "normalize_text",
    "normalize_query",
    "slugify",
    "parse_price",
    "parse_shipping_fee",
    "parse_availability",
    "IN_STOCK",
    "OUT_OF_STOCK",
    "UNKNOWN",
    # Merchant configuration
    "MerchantHttpConfig",
    "resolve_merchant_config",
    # Challenge handling
    "ChallengeDetection",
    "CloudflareFallback",
    "detect_challenge",
    "build_cloudflare_fallback",
    "ChallengeRequest",
    "ChallengeResolver",
    "build_challenge_resolver",
    # Fetching
    "FetchResult",
    "HttpFetcher",
    "fetch_with_config",
]
