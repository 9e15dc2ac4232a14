"""Tests for anti-bot resolver selection and behavior."""

import base64
import json
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from atlas.scrapers.utils.resolvers import (
    BrightDataResolver,
    ChallengeRequest,
    HttpEndpointResolver,
    ScrapingBeeResolver,
    build_challenge_resolver,
)

BLOCKED = ChallengeRequest(
    url="https://www.jumia.ma/catalog/?q=iphone",
    headers={"User-Agent": "ua"},
    status=503,
    challenge_body="<html>Just a moment...</html>",
)


class TestBuildChallengeResolver:
    """Tests for provider selection from settings."""

    def test_no_provider(self, make_settings):
        assert build_challenge_resolver(make_settings()) is None

    def test_unknown_provider(self, make_settings):
        assert build_challenge_resolver(make_settings(MERCHANT_SOLVER_PROVIDER="captcha-farm")) is None

    def test_scrapingbee_requires_key(self, make_settings):
        assert build_challenge_resolver(make_settings(MERCHANT_SOLVER_PROVIDER="scrapingbee")) is None

    def test_scrapingbee(self, make_settings):
        resolver = build_challenge_resolver(
            make_settings(
                MERCHANT_SOLVER_PROVIDER=" ScrapingBee ",
                SCRAPINGBEE_API_KEY="bee-key",
                SCRAPINGBEE_RENDER_JS="true",
            )
        )

        assert isinstance(resolver, ScrapingBeeResolver)
        assert resolver.api_key == "bee-key"
        assert resolver.render_js == "true"

    def test_brightdata_bearer_token(self, make_settings):
        resolver = build_challenge_resolver(
            make_settings(
                MERCHANT_SOLVER_PROVIDER="brightdata",
                BRIGHTDATA_COLLECTOR_URL="https://collector.example.com/run",
                BRIGHTDATA_API_TOKEN="tok",
            )
        )

        assert isinstance(resolver, BrightDataResolver)
        assert resolver.endpoint == "https://collector.example.com/run"
        assert resolver.auth_headers == {"Authorization": "Bearer tok"}

    def test_brightdata_basic_auth_wins(self, make_settings):
        resolver = build_challenge_resolver(
            make_settings(
                MERCHANT_SOLVER_PROVIDER="brightdata",
                MERCHANT_SOLVER_ENDPOINT="https://solver.example.com/",
                BRIGHTDATA_API_TOKEN="tok",
                BRIGHTDATA_USERNAME="user",
                BRIGHTDATA_PASSWORD="pass",
            )
        )

        expected = base64.b64encode(b"user:pass").decode("ascii")
        assert resolver.endpoint == "https://solver.example.com/"
        assert resolver.auth_headers == {"Authorization": f"Basic {expected}"}

    def test_brightdata_requires_endpoint(self, make_settings):
        assert build_challenge_resolver(make_settings(MERCHANT_SOLVER_PROVIDER="brightdata")) is None

    @pytest.mark.parametrize("provider", ["custom", "http", "browser"])
    def test_custom_endpoint(self, make_settings, provider):
        resolver = build_challenge_resolver(
            make_settings(
                MERCHANT_SOLVER_PROVIDER=provider,
                MERCHANT_SOLVER_ENDPOINT="https://solver.example.com/solve",
                MERCHANT_SOLVER_API_KEY="secret",
            )
        )

        assert type(resolver) is HttpEndpointResolver
        assert resolver.auth_headers == {"Authorization": "Bearer secret"}

    def test_custom_without_key_has_no_auth(self, make_settings):
        resolver = build_challenge_resolver(
            make_settings(
                MERCHANT_SOLVER_PROVIDER="custom",
                MERCHANT_SOLVER_ENDPOINT="https://solver.example.com/solve",
            )
        )

        assert resolver.auth_headers == {}


class TestScrapingBeeResolver:
    def test_request_url_carries_target_and_options(self):
        resolver = ScrapingBeeResolver(
            api_key="bee-key",
            render_js="true",
            country_code="ma",
            premium_proxy="true",
            block_resources="false",
        )

        url = resolver.build_request_url(BLOCKED.url)
        parts = urlsplit(url)
        params = parse_qs(parts.query)

        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://app.scrapingbee.com/api/v1/"
        assert params["api_key"] == ["bee-key"]
        assert params["url"] == [BLOCKED.url]
        assert params["render_js"] == ["true"]
        assert params["country_code"] == ["ma"]
        assert params["premium_proxy"] == ["true"]
        assert params["block_resources"] == ["false"]

    def test_invalid_base_url_uses_default(self):
        resolver = ScrapingBeeResolver(api_key="k", base_url="not a url")

        assert resolver.base_url == "https://app.scrapingbee.com/api/v1/"

    async def test_returns_body_on_success(self):
        resolver = ScrapingBeeResolver(
            api_key="k",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>rendered</html>")),
        )

        assert await resolver.resolve(BLOCKED) == "<html>rendered</html>"

    async def test_non_success_returns_none(self):
        resolver = ScrapingBeeResolver(
            api_key="k",
            transport=httpx.MockTransport(lambda request: httpx.Response(401, text="invalid key")),
        )

        assert await resolver.resolve(BLOCKED) is None

    async def test_network_error_returns_none(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        resolver = ScrapingBeeResolver(api_key="k", transport=httpx.MockTransport(handler))

        assert await resolver.resolve(BLOCKED) is None


class TestHttpEndpointResolver:
    async def test_posts_blocked_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["headers"] = request.headers
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json={"html": "<html>solved</html>"})

        resolver = HttpEndpointResolver(
            endpoint="https://solver.example.com/solve",
            auth_headers={"Authorization": "Bearer secret"},
            transport=httpx.MockTransport(handler),
        )

        html = await resolver.resolve(BLOCKED)

        assert html == "<html>solved</html>"
        assert seen["method"] == "POST"
        assert seen["headers"]["authorization"] == "Bearer secret"
        assert seen["payload"] == {
            "url": BLOCKED.url,
            "headers": {"User-Agent": "ua"},
            "status": 503,
            "html": "<html>Just a moment...</html>",
        }

    async def test_nested_json_payload(self):
        resolver = HttpEndpointResolver(
            endpoint="https://solver.example.com/solve",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"solution": {"response": {"content": "<p>ok</p>"}}})
            ),
        )

        assert await resolver.resolve(BLOCKED) == "<p>ok</p>"

    async def test_raw_body_fallback(self):
        resolver = HttpEndpointResolver(
            endpoint="https://solver.example.com/solve",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, headers={"content-type": "text/html"}, text="<p>raw</p>")
            ),
        )

        assert await resolver.resolve(BLOCKED) == "<p>raw</p>"

    async def test_json_without_known_key_returns_raw_json(self):
        resolver = HttpEndpointResolver(
            endpoint="https://solver.example.com/solve",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"status": "ok"})),
        )

        html = await resolver.resolve(BLOCKED)

        assert json.loads(html) == {"status": "ok"}

    async def test_malformed_json_returns_none(self):
        resolver = HttpEndpointResolver(
            endpoint="https://solver.example.com/solve",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(
                    200,
                    headers={"content-type": "application/json"},
                    text='{"html": "<div>trunc',
                )
            ),
        )

        assert await resolver.resolve(BLOCKED) is None

    async def test_error_status_returns_none(self):
        resolver = HttpEndpointResolver(
            endpoint="https://solver.example.com/solve",
            transport=httpx.MockTransport(lambda request: httpx.Response(500, json={"html": "<p>x</p>"})),
        )

        assert await resolver.resolve(BLOCKED) is None

    async def test_empty_body_returns_none(self):
        resolver = HttpEndpointResolver(
            endpoint="https://solver.example.com/solve",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="")),
        )

        assert await resolver.resolve(BLOCKED) is None
