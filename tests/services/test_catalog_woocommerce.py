"""Tests for WooCommerceCatalog request shapes and normalization."""

import json

import httpx
import pytest

from src.orchestrator.execution.handlers import HANDLERS, HandlerContext
from src.orchestrator.execution.rate_limit import RateLimitedBatcher
from src.orchestrator.models.action import ApplyDiscountParams, parse_action
from src.services.catalog import WooCommerceCatalog, get_catalog
from src.services.platform_adapter import PlatformAdapter
from tests.helpers import make_connection

SIMPLE = {
    "id": 7,
    "name": "Garden Hose",
    "type": "simple",
    "status": "publish",
    "description": "25m",
    "regular_price": "35.00",
    "stock_quantity": 12,
    "manage_stock": True,
    "categories": [{"name": "Garden"}],
    "tags": [{"name": "outdoor"}],
    "meta_data": [{"key": "_yoast_wpseo_title", "value": "Hoses"}],
}

VARIABLE = {"id": 8, "name": "T-Shirt", "type": "variable", "status": "draft"}
VARIATIONS = [
    {"id": 81, "regular_price": "20.00", "stock_quantity": 3, "manage_stock": True,
     "attributes": [{"option": "Red"}, {"option": "M"}]},
]


def _catalog(routes):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path.split("/wp-json/wc/v3/")[-1]
        reply = routes.get((request.method, path))
        if reply is None:
            return httpx.Response(404, json={"code": "woocommerce_rest_product_invalid_id"})
        return httpx.Response(200, json=reply)

    adapter = PlatformAdapter(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    return WooCommerceCatalog(make_connection("w1", "woocommerce", "Woo"), adapter), requests


class TestNormalization:
    """Tests for product normalization."""

    @pytest.mark.asyncio
    async def test_simple_product_is_its_own_variant(self):
        catalog, requests = _catalog({("GET", "products"): [SIMPLE, VARIABLE]})

        products = await catalog.list_products(limit=250)

        hose, shirt = products
        assert hose["status"] == "active"
        assert hose["product_type"] == "Garden"
        assert hose["tags"] == ["outdoor"]
        assert hose["seo"] == {"title": "Hoses", "description": None}
        assert hose["variants"][0]["id"] == "7"
        assert hose["variants"][0]["price"] == 35.0
        assert shirt["variants"] == []
        assert shirt["variants_loaded"] is False
        assert requests[0].url.params["per_page"] == "100"

    @pytest.mark.asyncio
    async def test_variable_product_fetches_variations(self):
        catalog, _ = _catalog({
            ("GET", "products/8"): VARIABLE,
            ("GET", "products/8/variations"): VARIATIONS,
        })
        product = await catalog.get_product("8")
        assert product["status"] == "draft"
        assert product["variants"][0]["title"] == "Red / M"
        assert product["variants"][0]["inventory_quantity"] == 3


class TestWrites:
    """Tests for write request payloads."""

    @pytest.mark.asyncio
    async def test_simple_price_writes_product(self):
        catalog, requests = _catalog({("PUT", "products/7"): SIMPLE})
        await catalog.update_variant_price("7", "7", 30)
        assert json.loads(requests[0].content) == {"regular_price": "30.00"}

    @pytest.mark.asyncio
    async def test_variation_price_writes_variation(self):
        catalog, requests = _catalog({("PUT", "products/8/variations/81"): VARIATIONS[0]})
        await catalog.update_variant_price("8", "81", 22)
        assert requests[0].url.path.endswith("/products/8/variations/81")

    @pytest.mark.asyncio
    async def test_set_inventory_enables_stock_management(self):
        catalog, requests = _catalog({("PUT", "products/7"): {**SIMPLE, "stock_quantity": 50}})
        assert await catalog.resolve_location("anything") is None
        result = await catalog.set_inventory("7", {"id": "7"}, None, 50)
        assert result == 50
        assert json.loads(requests[0].content) == {"manage_stock": True, "stock_quantity": 50}

    @pytest.mark.asyncio
    async def test_listing_fields_are_translated(self):
        catalog, requests = _catalog({("PUT", "products/7"): SIMPLE})
        await catalog.update_product("7", {"title": "Hose", "status": "archived", "tags": ["a"]})
        assert json.loads(requests[0].content) == {
            "name": "Hose", "status": "private", "tags": [{"name": "a"}],
        }

    @pytest.mark.asyncio
    async def test_coupon_code_derived_from_title(self):
        catalog, requests = _catalog({("POST", "coupons"): {"id": 99, "code": "summersale"}})
        params = ApplyDiscountParams(title="Summer Sale!", value=10)

        discount = await catalog.create_discount(params, ["7"])

        body = json.loads(requests[0].content)
        assert body["code"] == "SUMMERSALE"
        assert body["discount_type"] == "percent"
        assert body["product_ids"] == [7]
        assert discount == {"id": "99", "title": "Summer Sale!", "code": "summersale"}

    @pytest.mark.asyncio
    async def test_delete_coupon_forces(self):
        catalog, requests = _catalog({("DELETE", "coupons/99"): {"id": 99}})
        await catalog.delete_discount("99")
        assert requests[0].url.params["force"] == "true"

    @pytest.mark.asyncio
    async def test_seo_written_as_yoast_meta(self):
        catalog, requests = _catalog({("PUT", "products/7"): SIMPLE})
        written = await catalog.set_seo("7", "Hoses | Shop", None)
        assert written == {"title": "Hoses | Shop"}
        assert json.loads(requests[0].content) == {
            "meta_data": [{"key": "_yoast_wpseo_title", "value": "Hoses | Shop"}],
        }


def test_get_catalog_returns_woocommerce_client():
    assert isinstance(
        get_catalog(make_connection("w1", "woocommerce"), PlatformAdapter()), WooCommerceCatalog
    )


class TestVariableProductsInListings:
    """Tests for bulk changes over listings that include variable products."""

    LISTING = {
        ("GET", "products"): [SIMPLE, VARIABLE],
        ("GET", "products/8"): VARIABLE,
        ("PUT", "products/7"): SIMPLE,
        ("PUT", "products/8/variations/81"): VARIATIONS[0],
    }

    async def _increase_all(self, catalog: WooCommerceCatalog):
        action = parse_action({
            "type": "update_price",
            "parameters": {"direction": "increase", "value": 10, "scope": "all"},
        })
        ctx = HandlerContext(
            catalog=catalog, batcher=RateLimitedBatcher(batch_size=5, delay_seconds=0)
        )
        return await HANDLERS[action.type](action, ctx)

    @pytest.mark.asyncio
    async def test_variations_are_fetched_and_written(self):
        catalog, requests = _catalog(
            {**self.LISTING, ("GET", "products/8/variations"): VARIATIONS}
        )

        output = await self._increase_all(catalog)

        puts = {r.url.path.split("/wc/v3/")[-1]: json.loads(r.content)
                for r in requests if r.method == "PUT"}
        assert puts == {
            "products/7": {"regular_price": "38.50"},
            "products/8/variations/81": {"regular_price": "22.00"},
        }
        assert output.succeeded
        assert output.result["items_total"] == 2

    @pytest.mark.asyncio
    async def test_unreadable_variations_are_reported(self):
        catalog, requests = _catalog(dict(self.LISTING))

        output = await self._increase_all(catalog)

        assert not output.succeeded
        [failed] = output.failed_items
        assert failed.resource_id == "8"
        assert failed.label == "T-Shirt"
        assert [r.url.path for r in requests if r.method == "PUT"] == [
            "/wp-json/wc/v3/products/7"
        ]
