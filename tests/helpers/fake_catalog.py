"""In-memory CatalogClient for handler, engine and undo tests."""

import copy
from typing import Any

from src.errors import PlatformAPIError, ValidationError
from src.orchestrator.models.action import ApplyDiscountParams
from src.services.catalog.base import CatalogClient


def make_product(
    product_id: str,
    title: str,
    price: float | None = 10.0,
    quantity: int | None = 5,
    **extra: Any,
) -> dict[str, Any]:
    """A normalized single-variant product."""
    product = {
        "id": product_id,
        "title": title,
        "description": "",
        "product_type": "",
        "vendor": "",
        "status": "active",
        "tags": [],
        "variants": [
            {
                "id": f"v{product_id}",
                "title": "Default Title",
                "sku": f"SKU-{product_id}",
                "price": price,
                "compare_at_price": None,
                "inventory_item_id": f"i{product_id}",
                "inventory_quantity": quantity,
                "inventory_managed": quantity is not None,
            }
        ],
        "seo": {"title": None, "description": None},
    }
    product.update(extra)
    return product


class FakeCatalog(CatalogClient):
    """Catalog backed by a dict of normalized products.

    ``fail_writes`` makes every write raise the given error; ``fail_products``
    makes writes for specific product ids raise, and ``fail_reads`` does the
    same for SEO reads. Every write is recorded in ``writes``.
    """

    def __init__(
        self,
        products: list[dict[str, Any]],
        fail_writes: Exception | None = None,
        fail_products: dict[str, Exception] | None = None,
        fail_reads: dict[str, Exception] | None = None,
        location_id: str | None = "loc-1",
    ) -> None:
        self.products = {p["id"]: copy.deepcopy(p) for p in products}
        self.fail_writes = fail_writes
        self.fail_products = fail_products or {}
        self.fail_reads = fail_reads or {}
        self.location_id = location_id
        self.writes: list[tuple[str, Any]] = []
        self.discounts: dict[str, dict[str, Any]] = {}
        self.seo: dict[str, dict[str, str | None]] = {}

    @property
    def platform_name(self) -> str:
        return "fake"

    def _check_write(self, product_id: str) -> None:
        if self.fail_writes is not None:
            raise self.fail_writes
        if product_id in self.fail_products:
            raise self.fail_products[product_id]

    async def list_products(self, limit: int) -> list[dict[str, Any]]:
        return [copy.deepcopy(p) for p in list(self.products.values())[:limit]]

    async def get_product(self, product_id: str) -> dict[str, Any]:
        if product_id not in self.products:
            raise PlatformAPIError("Fake", 404, '{"errors":"Not Found"}')
        return copy.deepcopy(self.products[product_id])

    async def update_product(self, product_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        self._check_write(product_id)
        self.writes.append(("update_product", (product_id, dict(fields))))
        self.products[product_id].update(fields)
        return copy.deepcopy(self.products[product_id])

    async def update_variant_price(
        self, product_id: str, variant_id: str, price: float
    ) -> dict[str, Any]:
        self._check_write(product_id)
        self.writes.append(("update_variant_price", (product_id, variant_id, price)))
        for variant in self.products[product_id]["variants"]:
            if variant["id"] == variant_id:
                variant["price"] = price
                return dict(variant)
        raise PlatformAPIError("Fake", 404, '{"errors":"Variant not found"}')

    async def resolve_location(self, location_id: str | None) -> str | None:
        return location_id or self.location_id

    async def set_inventory(
        self,
        product_id: str,
        variant: dict[str, Any],
        location_id: str | None,
        available: int,
    ) -> int:
        self._check_write(product_id)
        self.writes.append(("set_inventory", (product_id, variant["id"], location_id, available)))
        for stored in self.products[product_id]["variants"]:
            if stored["id"] == variant["id"]:
                stored["inventory_quantity"] = available
        return available

    async def set_inventory_item(
        self, inventory_item_id: str, location_id: str, available: int
    ) -> int:
        if self.fail_writes is not None:
            raise self.fail_writes
        self.writes.append(("set_inventory_item", (inventory_item_id, location_id, available)))
        return available

    async def create_discount(
        self, params: ApplyDiscountParams, product_ids: list[str]
    ) -> dict[str, Any]:
        if self.fail_writes is not None:
            raise self.fail_writes
        discount_id = f"d{len(self.discounts) + 1}"
        self.discounts[discount_id] = {
            "title": params.display_title(),
            "product_ids": list(product_ids),
        }
        self.writes.append(("create_discount", (discount_id, list(product_ids))))
        return {"id": discount_id, "title": params.display_title(), "code": params.code}

    async def delete_discount(self, discount_id: str) -> None:
        if discount_id not in self.discounts:
            raise ValidationError(f"Unknown discount {discount_id}")
        self.writes.append(("delete_discount", discount_id))
        del self.discounts[discount_id]

    async def get_seo(self, product_id: str) -> dict[str, str | None]:
        if product_id in self.fail_reads:
            raise self.fail_reads[product_id]
        return dict(self.seo.get(product_id, {"title": None, "description": None}))

    async def set_seo(
        self, product_id: str, title: str | None, description: str | None
    ) -> dict[str, str | None]:
        self._check_write(product_id)
        current = self.seo.setdefault(product_id, {"title": None, "description": None})
        written: dict[str, str | None] = {}
        if title is not None:
            current["title"] = title
            written["title"] = title
        if description is not None:
            current["description"] = description
            written["description"] = description
        self.writes.append(("set_seo", (product_id, title, description)))
        return written
