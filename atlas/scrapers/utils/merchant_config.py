"""Per-merchant HTTP configuration resolved from environment overrides.

For a merchant id ``X`` the recognized variables are ``X_SEARCH_URL``,
``X_QUERY_PARAM``, ``X_CURRENCY``, ``X_HEADERS``, ``X_STATIC_PARAMS``,
``X_DELAY_MS``, ``X_TIMEOUT_MS`` and ``X_PROXY_URL``. Values override the
adapter's hard defaults. Headers and static params accept a JSON object or
the ``key:value;key:value`` fallback syntax.
"""

import json
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import unquote, urlsplit

import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict

from atlas.core.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class MerchantHttpConfig:
    """Resolved HTTP settings for one merchant."""

    search_url: str
    query_param: str = "q"
    currency: str = "MAD"
    headers: Dict[str, str] = field(default_factory=dict)
    static_params: Dict[str, str] = field(default_factory=dict)
    delay_ms: Optional[int] = None
    timeout_ms: Optional[int] = None
    proxy_url: Optional[str] = None


class MerchantEnvSettings(BaseSettings):
    """Raw environment overrides for one merchant.

    Instantiate with ``_env_prefix="JUMIA_"`` (or similar). Every field is
    kept as a string so malformed values can be ignored instead of failing
    validation.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    SEARCH_URL: Optional[str] = None
    QUERY_PARAM: Optional[str] = None
    CURRENCY: Optional[str] = None
    HEADERS: Optional[str] = None
    STATIC_PARAMS: Optional[str] = None
    DELAY_MS: Optional[str] = None
    TIMEOUT_MS: Optional[str] = None
    PROXY_URL: Optional[str] = None


def env_prefix_for(merchant_id: str) -> str:
    return merchant_id.upper().replace("-", "_") + "_"


def parse_key_value_map(raw: Optional[str], decode_values: bool = False) -> Dict[str, str]:
    """Parse a JSON object or ``key:value;key:value`` string.

    Args:
        raw: Raw environment value
        decode_values: URL-decode values (used for static query params)

    Returns:
        Mapping of string keys to string values, empty when nothing parses
    """
    if not raw or not raw.strip():
        return {}

    text = raw.strip()
    parsed: Dict[str, str] = {}

    if text.startswith("{"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            for key, value in data.items():
                if value is None:
                    continue
                parsed[str(key)] = str(value)
            return _decode(parsed) if decode_values else parsed

    for pair in text.split(";"):
        key, sep, value = pair.partition(":")
        key = key.strip()
        if not sep or not key:
            continue
        parsed[key] = value.strip()

    return _decode(parsed) if decode_values else parsed


def _decode(values: Dict[str, str]) -> Dict[str, str]:
    return {key: unquote(value) for key, value in values.items()}


def _parse_int(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    return value if value >= 0 else None


def validate_search_url(merchant_id: str, url: str) -> str:
    """Reject search URLs that cannot be requested."""
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigurationError(f"Invalid search URL for {merchant_id}: {url!r}")
    return url


def resolve_merchant_config(
    merchant_id: str,
    defaults: MerchantHttpConfig,
    env: Optional[MerchantEnvSettings] = None,
) -> MerchantHttpConfig:
    """Layer environment overrides on top of an adapter's defaults.

    Args:
        merchant_id: Merchant slug (e.g., "jumia")
        defaults: Hard-coded adapter configuration
        env: Pre-loaded overrides; read from the environment when omitted

    Returns:
        Resolved MerchantHttpConfig

    Raises:
        ConfigurationError: If the resulting search URL is malformed
    """
    if env is None:
        env = MerchantEnvSettings(_env_prefix=env_prefix_for(merchant_id))

    search_url = (env.SEARCH_URL or "").strip() or defaults.search_url
    validate_search_url(merchant_id, search_url)

    headers = dict(defaults.headers)
    headers.update(parse_key_value_map(env.HEADERS))

    static_params = dict(defaults.static_params)
    static_params.update(parse_key_value_map(env.STATIC_PARAMS, decode_values=True))

    delay_ms = _parse_int(env.DELAY_MS)
    timeout_ms = _parse_int(env.TIMEOUT_MS)

    config = MerchantHttpConfig(
        search_url=search_url,
        query_param=(env.QUERY_PARAM or "").strip() or defaults.query_param,
        currency=((env.CURRENCY or "").strip() or defaults.currency).upper(),
        headers=headers,
        static_params=static_params,
        delay_ms=delay_ms if delay_ms is not None else defaults.delay_ms,
        timeout_ms=timeout_ms if timeout_ms is not None else defaults.timeout_ms,
        proxy_url=(env.PROXY_URL or "").strip() or defaults.proxy_url,
    )

    logger.debug(
        "merchant_config_resolved",
        merchant_id=merchant_id,
        search_url=config.search_url,
        timeout_ms=config.timeout_ms,
        has_proxy=bool(config.proxy_url),
    )
    return config
