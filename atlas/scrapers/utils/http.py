"""Outbound HTTP fetch layer for merchant search pages.

Merges browser-like default headers with per-merchant overrides, applies
the merchant timeout and proxy, and classifies every response with the
challenge detector. Blocked responses are handed to the configured
resolver (then to the simple solver fallback) before being reported back.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional
from urllib.parse import urlsplit

import httpx
import structlog

from atlas.core.exceptions import FetchError, FetchTimeoutError
from atlas.scrapers.utils.challenge import CloudflareFallback, detect_challenge
from atlas.scrapers.utils.resolvers import ChallengeRequest, ChallengeResolver
from atlas.scrapers.utils.user_agents import get_user_agent

logger = structlog.get_logger(__name__)

DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8"
DEFAULT_ACCEPT_LANGUAGE = "fr-MA,fr;q=0.9,en-US;q=0.8,en;q=0.7,ar;q=0.6"


@dataclass
class FetchResult:
    """Outcome of one merchant request.

    ``failed`` is set for non-2xx and blocked responses. When a resolver
    recovered the page, ``fallback_html`` holds it and the caller parses
    that instead of fetching again.
    """

    response: httpx.Response
    failed: bool = False
    fallback_html: Optional[str] = None
    was_blocked: bool = False

    @property
    def status_code(self) -> int:
        return self.response.status_code


def build_headers(
    url: str,
    overrides: Optional[Mapping[str, str]] = None,
    rotate_user_agent: bool = False,
) -> Dict[str, str]:
    """Default browser headers with caller overrides applied case-insensitively."""
    parts = urlsplit(url)
    headers = {
        "User-Agent": get_user_agent(rotate_user_agent),
        "Accept": DEFAULT_ACCEPT,
        "Accept-Language": DEFAULT_ACCEPT_LANGUAGE,
    }
    if parts.scheme and parts.netloc:
        headers["Referer"] = f"{parts.scheme}://{parts.netloc}/"

    for name, value in (overrides or {}).items():
        for existing in [key for key in headers if key.lower() == name.lower()]:
            del headers[existing]
        headers[name] = value

    return headers


class HttpFetcher:
    """Performs merchant requests and recovers from anti-bot challenges.

    One instance is shared by all adapters; it holds the resolver chosen at
    startup and the optional simple solver fallback.
    """

    def __init__(
        self,
        resolver: Optional[ChallengeResolver] = None,
        fallback: Optional[CloudflareFallback] = None,
        rotate_user_agent: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.resolver = resolver
        self.fallback = fallback
        self.rotate_user_agent = rotate_user_agent
        self._transport = transport

    def _client(self, timeout_ms: Optional[int], proxy_url: Optional[str]) -> httpx.AsyncClient:
        kwargs = {
            "timeout": timeout_ms / 1000.0 if timeout_ms else None,
            "follow_redirects": True,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        elif proxy_url:
            kwargs["proxy"] = proxy_url
        return httpx.AsyncClient(**kwargs)

    async def fetch(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout_ms: Optional[int] = None,
        proxy_url: Optional[str] = None,
    ) -> FetchResult:
        """Fetch a merchant page.

        Args:
            url: Fully built search URL
            headers: Per-merchant header overrides
            timeout_ms: Abort deadline; None waits indefinitely
            proxy_url: Optional HTTP(S) proxy

        Returns:
            FetchResult

        Raises:
            FetchTimeoutError: If the deadline elapsed
            FetchError: On network-level failures
        """
        request_headers = build_headers(url, headers, self.rotate_user_agent)

        try:
            async with self._client(timeout_ms, proxy_url) as client:
                response = await client.get(url, headers=request_headers)
        except httpx.TimeoutException:
            logger.warning("fetch_timeout", url=url, timeout_ms=timeout_ms)
            raise FetchTimeoutError(url, timeout_ms or 0)
        except httpx.HTTPError as e:
            logger.warning("fetch_failed", url=url, error=str(e))
            raise FetchError(url, str(e) or e.__class__.__name__)

        detection = detect_challenge(response)
        if not detection.blocked:
            return FetchResult(response=response, failed=not response.is_success)

        logger.warning(
            "challenge_detected",
            url=url,
            status_code=response.status_code,
            reason=detection.reason,
        )

        if self.resolver is not None:
            html = await self.resolver.resolve(
                ChallengeRequest(
                    url=url,
                    headers=request_headers,
                    status=response.status_code,
                    challenge_body=detection.body_text,
                )
            )
            if html:
                return FetchResult(
                    response=response,
                    failed=True,
                    fallback_html=html,
                    was_blocked=True,
                )

        if self.fallback is not None:
            solved = await self.fallback.trigger(url, request_headers, detection)
            if solved is not None:
                return FetchResult(
                    response=solved,
                    failed=True,
                    fallback_html=solved.text,
                    was_blocked=True,
                )

        return FetchResult(response=response, failed=True, was_blocked=True)


async def fetch_with_config(
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    timeout_ms: Optional[int] = None,
    proxy_url: Optional[str] = None,
    fetcher: Optional[HttpFetcher] = None,
) -> FetchResult:
    """Module-level shortcut around HttpFetcher.fetch."""
    fetcher = fetcher or HttpFetcher()
    return await fetcher.fetch(url, headers=headers, timeout_ms=timeout_ms, proxy_url=proxy_url)
