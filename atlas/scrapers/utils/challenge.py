"""Anti-bot challenge detection and the direct solver fallback.

A response is treated as blocked when its status is 403/503, or when an
HTML body carries one of the known Cloudflare interstitial markers.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)

CHALLENGE_PATTERNS = [
    re.compile(r"__cf_chl_(?:jschl_)?tk__", re.IGNORECASE),
    re.compile(r"cf_chl_opt", re.IGNORECASE),
    re.compile(r"cf-browser-verification", re.IGNORECASE),
    re.compile(r"attention required!?\s*\|\s*cloudflare", re.IGNORECASE),
    re.compile(r"ddos protection by cloudflare", re.IGNORECASE),
    re.compile(r"checking your browser", re.IGNORECASE),
    re.compile(r"ray id", re.IGNORECASE),
]

BLOCKING_STATUS_CODES = (403, 503)

MAX_FORWARDED_BODY = 64 * 1024

SOLVER_HTML_KEYS = ("html", "content", "result", "body", "data")

FALLBACK_MARKER_HEADER = "x-atlas-cloudflare-fallback"


@dataclass
class ChallengeDetection:
    """Outcome of inspecting a merchant response."""

    blocked: bool
    reason: Optional[str] = None  # 'status_code' or 'html_marker'
    status_code: Optional[int] = None
    body_text: Optional[str] = None


def _read_text(response: httpx.Response) -> Optional[str]:
    # httpx buffers non-streamed bodies, so reading text here leaves the
    # response readable for the caller.
    try:
        return response.text
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return None


def detect_challenge(response: httpx.Response) -> ChallengeDetection:
    """Classify a response as a challenge page or a real page."""
    status_code = response.status_code

    if status_code in BLOCKING_STATUS_CODES:
        return ChallengeDetection(
            blocked=True,
            reason="status_code",
            status_code=status_code,
            body_text=_read_text(response),
        )

    content_type = response.headers.get("content-type", "")
    if "html" not in content_type.lower():
        return ChallengeDetection(blocked=False)

    body = _read_text(response)
    if not body:
        return ChallengeDetection(blocked=False)

    if any(pattern.search(body) for pattern in CHALLENGE_PATTERNS):
        return ChallengeDetection(
            blocked=True,
            reason="html_marker",
            status_code=status_code,
            body_text=body,
        )

    return ChallengeDetection(blocked=False)


def extract_html_from_payload(payload: Any, keys: Iterable[str] = SOLVER_HTML_KEYS) -> Optional[str]:
    """Find the first non-empty string under one of ``keys``, searching nested objects.

    Each level checks its own keys before descending into children.
    """
    if isinstance(payload, str):
        return payload if payload.strip() else None

    keys = tuple(keys)
    visited = set()

    def search(value: Any) -> Optional[str]:
        if not isinstance(value, (dict, list)):
            return None
        if id(value) in visited:
            return None
        visited.add(id(value))

        if isinstance(value, dict):
            for key in keys:
                candidate = value.get(key)
                if isinstance(candidate, str) and candidate.strip():
                    return candidate
            children = value.values()
        else:
            children = value

        for child in children:
            found = search(child)
            if found:
                return found
        return None

    return search(payload)


def html_from_solver_response(response: httpx.Response, strict_json: bool = False) -> Optional[str]:
    """Extract HTML from a solver reply, JSON or raw.

    JSON replies are searched for known keys; when none match the raw body
    is used verbatim. Malformed JSON also falls back to the raw body unless
    ``strict_json`` is set, in which case the reply is rejected.
    """
    raw = response.text
    html = None

    if "json" in response.headers.get("content-type", "").lower():
        try:
            html = extract_html_from_payload(json.loads(raw))
        except json.JSONDecodeError:
            if strict_json:
                logger.warning("solver_payload_malformed", url=str(response.request.url))
                return None
            html = None

    if not html:
        html = raw

    if not html or not html.strip():
        return None
    return html


@dataclass(frozen=True)
class CloudflareFallbackConfig:
    solver_url: str
    api_key: Optional[str] = None
    timeout_ms: Optional[int] = None


class CloudflareFallback:
    """Direct solver path: forward the blocked request to one solver URL.

    Posts ``{url, headers, reason, statusCode, originalBody}`` (body capped at
    64KB) and wraps the returned HTML in a synthetic 200 response tagged with
    ``x-atlas-cloudflare-fallback: 1``. Any failure yields None.
    """

    def __init__(
        self,
        config: CloudflareFallbackConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport
        self.logger = logger.bind(resolver="cloudflare_fallback")

    async def trigger(
        self,
        url: str,
        headers: Dict[str, str],
        detection: ChallengeDetection,
    ) -> Optional[httpx.Response]:
        request_headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            request_headers["x-api-key"] = self.config.api_key

        body = detection.body_text
        payload = {
            "url": url,
            "headers": headers,
            "reason": detection.reason,
            "statusCode": detection.status_code,
            "originalBody": body[:MAX_FORWARDED_BODY] if isinstance(body, str) else None,
        }

        timeout = self.config.timeout_ms / 1000.0 if self.config.timeout_ms else None

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(
                    self.config.solver_url,
                    headers=request_headers,
                    json=payload,
                )
        except httpx.HTTPError as e:
            self.logger.warning("solver_request_failed", url=url, error=str(e))
            return None

        if not response.is_success:
            self.logger.warning(
                "solver_rejected_request",
                url=url,
                status_code=response.status_code,
            )
            return None

        html = html_from_solver_response(response)
        if not html:
            self.logger.warning("solver_returned_empty_body", url=url)
            return None

        self.logger.info("solver_fallback_succeeded", url=url, length=len(html))
        return httpx.Response(
            200,
            headers={
                "content-type": "text/html; charset=utf-8",
                FALLBACK_MARKER_HEADER: "1",
            },
            html=html,
        )


def build_cloudflare_fallback(
    settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[CloudflareFallback]:
    """Build the direct solver path when CLOUDFLARE_FALLBACK_URL is set."""
    if not settings.CLOUDFLARE_FALLBACK_URL:
        return None
    return CloudflareFallback(
        CloudflareFallbackConfig(
            solver_url=settings.CLOUDFLARE_FALLBACK_URL,
            api_key=settings.CLOUDFLARE_FALLBACK_API_KEY or None,
            timeout_ms=settings.CLOUDFLARE_FALLBACK_TIMEOUT_MS,
        ),
        transport=transport,
    )
