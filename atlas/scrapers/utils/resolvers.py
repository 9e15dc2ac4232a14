"""Pluggable anti-bot challenge resolvers.

One resolver is selected at startup from ``MERCHANT_SOLVER_PROVIDER``:

- ``scrapingbee``: paid rendering API called with the target URL in the query string
- ``brightdata``: collector endpoint with bearer token or basic auth
- ``custom`` / ``http`` / ``browser``: any endpoint accepting a JSON POST

Every resolver returns raw HTML or None. Failures (non-2xx, timeouts,
malformed payloads) are logged and reported as None, never raised.
"""

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qsl

import httpx
import structlog

from atlas.scrapers.utils.challenge import html_from_solver_response

logger = structlog.get_logger(__name__)

SCRAPINGBEE_DEFAULT_BASE_URL = "https://app.scrapingbee.com/api/v1/"


@dataclass
class ChallengeRequest:
    """The blocked merchant request handed to a resolver."""

    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    status: Optional[int] = None
    challenge_body: Optional[str] = None


class ChallengeResolver(ABC):
    """Strategy that turns a blocked request into the real page HTML."""

    name: str = ""

    def __init__(
        self,
        timeout_ms: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout_ms = timeout_ms
        self._transport = transport
        self.logger = logger.bind(resolver=self.name)

    def _client(self) -> httpx.AsyncClient:
        timeout = self.timeout_ms / 1000.0 if self.timeout_ms else None
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def resolve(self, request: ChallengeRequest) -> Optional[str]:
        """Return resolved HTML, or None when the challenge could not be bypassed."""
        try:
            html = await self._resolve(request)
        except Exception as e:
            self.logger.warning("resolver_failed", url=request.url, error=str(e))
            return None

        if html:
            self.logger.info("resolver_succeeded", url=request.url, length=len(html))
        else:
            self.logger.warning("resolver_returned_nothing", url=request.url)
        return html or None

    @abstractmethod
    async def _resolve(self, request: ChallengeRequest) -> Optional[str]:
        pass


class ScrapingBeeResolver(ChallengeResolver):
    """Rendering API: GET base_url?api_key=...&url=...&render_js=..."""

    name = "scrapingbee"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        render_js: str = "false",
        country_code: Optional[str] = None,
        premium_proxy: Optional[str] = None,
        block_resources: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout_ms=timeout_ms, transport=transport)
        self.api_key = api_key
        self.base_url = self._valid_base_url(base_url)
        self.render_js = render_js or "false"
        self.country_code = country_code
        self.premium_proxy = premium_proxy
        self.block_resources = block_resources

    @staticmethod
    def _valid_base_url(base_url: Optional[str]) -> str:
        if base_url:
            parts = urlsplit(base_url)
            if parts.scheme in ("http", "https") and parts.netloc:
                return base_url
        return SCRAPINGBEE_DEFAULT_BASE_URL

    def build_request_url(self, target_url: str) -> str:
        parts = urlsplit(self.base_url)
        params = dict(parse_qsl(parts.query))
        params["api_key"] = self.api_key
        params["url"] = target_url
        params["render_js"] = self.render_js
        if self.country_code:
            params["country_code"] = self.country_code
        if self.premium_proxy:
            params["premium_proxy"] = self.premium_proxy
        if self.block_resources:
            params["block_resources"] = self.block_resources
        return urlunsplit(parts._replace(query=urlencode(params)))

    async def _resolve(self, request: ChallengeRequest) -> Optional[str]:
        async with self._client() as client:
            response = await client.get(
                self.build_request_url(request.url),
                headers={"Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"},
            )

        if not response.is_success:
            self.logger.warning(
                "resolver_http_error",
                url=request.url,
                status_code=response.status_code,
            )
            return None
        return response.text


class HttpEndpointResolver(ChallengeResolver):
    """POST ``{url, headers, status, html}`` as JSON to a solver endpoint."""

    name = "custom"

    def __init__(
        self,
        endpoint: str,
        auth_headers: Optional[Dict[str, str]] = None,
        timeout_ms: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout_ms=timeout_ms, transport=transport)
        self.endpoint = endpoint
        self.auth_headers = auth_headers or {}

    async def _resolve(self, request: ChallengeRequest) -> Optional[str]:
        headers = {"Content-Type": "application/json"}
        headers.update(self.auth_headers)

        async with self._client() as client:
            response = await client.post(
                self.endpoint,
                headers=headers,
                json={
                    "url": request.url,
                    "headers": request.headers,
                    "status": request.status,
                    "html": request.challenge_body,
                },
            )

        if not response.is_success:
            self.logger.warning(
                "resolver_http_error",
                url=request.url,
                status_code=response.status_code,
            )
            return None
        return html_from_solver_response(response, strict_json=True)


class BrightDataResolver(HttpEndpointResolver):
    name = "brightdata"


def _bearer(token: Optional[str]) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"} if token else {}


def build_challenge_resolver(
    settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[ChallengeResolver]:
    """Select the configured resolver once, at startup.

    Args:
        settings: Application Settings
        transport: Optional httpx transport (tests)

    Returns:
        A ChallengeResolver, or None when no usable provider is configured
    """
    provider = (settings.MERCHANT_SOLVER_PROVIDER or "").strip().lower()
    if not provider:
        return None

    timeout_ms = settings.SOLVER_TIMEOUT_MS

    if provider == "scrapingbee":
        if not settings.SCRAPINGBEE_API_KEY:
            logger.warning("resolver_disabled", provider=provider, reason="missing_api_key")
            return None
        return ScrapingBeeResolver(
            api_key=settings.SCRAPINGBEE_API_KEY,
            base_url=settings.SCRAPINGBEE_BASE_URL,
            render_js=settings.SCRAPINGBEE_RENDER_JS,
            country_code=settings.SCRAPINGBEE_COUNTRY_CODE,
            premium_proxy=settings.SCRAPINGBEE_PREMIUM_PROXY,
            block_resources=settings.SCRAPINGBEE_BLOCK_RESOURCES,
            timeout_ms=timeout_ms,
            transport=transport,
        )

    if provider == "brightdata":
        endpoint = settings.BRIGHTDATA_COLLECTOR_URL or settings.MERCHANT_SOLVER_ENDPOINT
        if not endpoint:
            logger.warning("resolver_disabled", provider=provider, reason="missing_endpoint")
            return None
        headers = _bearer(settings.BRIGHTDATA_API_TOKEN or settings.MERCHANT_SOLVER_API_KEY)
        if settings.BRIGHTDATA_USERNAME and settings.BRIGHTDATA_PASSWORD:
            credentials = f"{settings.BRIGHTDATA_USERNAME}:{settings.BRIGHTDATA_PASSWORD}"
            encoded = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
            headers["Authorization"] = f"Basic {encoded}"
        return BrightDataResolver(
            endpoint=endpoint,
            auth_headers=headers,
            timeout_ms=timeout_ms,
            transport=transport,
        )

    if provider in ("custom", "http", "browser"):
        if not settings.MERCHANT_SOLVER_ENDPOINT:
            logger.warning("resolver_disabled", provider=provider, reason="missing_endpoint")
            return None
        return HttpEndpointResolver(
            endpoint=settings.MERCHANT_SOLVER_ENDPOINT,
            auth_headers=_bearer(settings.MERCHANT_SOLVER_API_KEY),
            timeout_ms=timeout_ms,
            transport=transport,
        )

    logger.warning("resolver_unknown_provider", provider=provider)
    return None
