"""Tests for PlatformAdapter URL building, auth injection and error mapping."""

import json

import httpx
import pytest

from src.errors import PlatformAPIError, UnsupportedPlatformError
from src.services.platform_adapter import PlatformAdapter
from src.services.platform_service import PlatformConnection
from tests.helpers import make_connection


def _adapter(handler) -> PlatformAdapter:
    return PlatformAdapter(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestBuildUrl:
    """Tests for per-platform API roots."""

    def test_shopify(self):
        url = PlatformAdapter().build_url(make_connection("p1"), "/products.json")
        assert url == "https://p1.myshopify.com/admin/api/2024-01/products.json"

    def test_woocommerce_strips_trailing_slash(self):
        connection = PlatformConnection(
            id="w1", user_id="u", platform_type="woocommerce", shop_name="Woo",
            store_url="https://shop.example.com/",
        )
        url = PlatformAdapter().build_url(connection, "products")
        assert url == "https://shop.example.com/wp-json/wc/v3/products"

    def test_unknown_platform(self):
        connection = PlatformConnection(id="x", user_id="u", platform_type="ebay", shop_name="X")
        with pytest.raises(UnsupportedPlatformError):
            PlatformAdapter().build_url(connection, "items")


class TestBuildAuth:
    """Tests for credential placement."""

    def test_shopify_token_header(self):
        headers, auth = PlatformAdapter().build_auth(make_connection())
        assert headers["X-Shopify-Access-Token"] == "shpat_test"
        assert auth is None

    def test_woocommerce_basic_auth(self):
        headers, auth = PlatformAdapter().build_auth(make_connection("w1", "woocommerce"))
        assert auth == ("ck_test", "cs_test")
        assert "X-Shopify-Access-Token" not in headers

    def test_etsy_headers(self):
        connection = PlatformConnection(
            id="e1", user_id="u", platform_type="etsy", shop_name="Etsy",
            credentials={"api_key": "k", "access_token": "t"},
        )
        headers, _ = PlatformAdapter().build_auth(connection)
        assert headers["x-api-key"] == "k"
        assert headers["Authorization"] == "Bearer t"


class TestRequest:
    """Tests for request() over a mock transport."""

    @pytest.mark.asyncio
    async def test_sends_json_and_decodes_reply(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["token"] = request.headers.get("X-Shopify-Access-Token")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"variant": {"id": 5}})

        adapter = _adapter(handler)
        data = await adapter.request(
            make_connection(), "variants/5.json", method="PUT", body={"variant": {"price": "9.99"}}
        )

        assert data == {"variant": {"id": 5}}
        assert seen["method"] == "PUT"
        assert seen["url"].endswith("/admin/api/2024-01/variants/5.json")
        assert seen["token"] == "shpat_test"
        assert seen["body"] == {"variant": {"price": "9.99"}}
        await adapter.aclose()

    @pytest.mark.asyncio
    async def test_non_2xx_keeps_raw_body(self):
        body = '{"errors":"[API] Invalid API key or access token"}'
        adapter = _adapter(lambda request: httpx.Response(401, text=body))

        with pytest.raises(PlatformAPIError) as exc_info:
            await adapter.request(make_connection(), "products.json")

        error = exc_info.value
        assert error.status_code == 401
        assert error.body == body
        assert error.error_code == "E-3002"
        assert error.is_auth_error
        assert error.message == f"Shopify API error (401): {body}"

    @pytest.mark.asyncio
    async def test_rate_limit_status_code(self):
        adapter = _adapter(lambda request: httpx.Response(429, text="Too Many Requests"))
        with pytest.raises(PlatformAPIError) as exc_info:
            await adapter.request(make_connection(), "products.json")
        assert exc_info.value.error_code == "E-3003"

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PlatformAPIError) as exc_info:
            await _adapter(handler).request(make_connection(), "products.json")
        assert exc_info.value.status_code is None
        assert exc_info.value.error_code == "E-3004"

    @pytest.mark.asyncio
    async def test_empty_body_is_empty_dict(self):
        adapter = _adapter(lambda request: httpx.Response(200))
        assert await adapter.request(make_connection(), "price_rules/1.json", method="DELETE") == {}

    @pytest.mark.asyncio
    async def test_invalid_json_is_a_platform_error(self):
        adapter = _adapter(lambda request: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(PlatformAPIError, match="Invalid JSON"):
            await adapter.request(make_connection(), "products.json")
