"""WooCommerce catalog client.

Implements CatalogClient over the WooCommerce REST API (wc/v3). Simple
products are normalized as a single variant whose id equals the product
id; variable products expose their variations. Stock lives on the
product (or variation) itself, so there is no location concept. SEO
fields are read and written as Yoast SEO meta entries.
"""

import logging
import re
from typing import Any

from src.orchestrator.models.action import ApplyDiscountParams
from src.services.catalog.base import CatalogClient, format_price, to_float

logger = logging.getLogger(__name__)

# WooCommerce caps per_page at 100
MAX_PAGE_SIZE = 100

YOAST_TITLE_KEY = "_yoast_wpseo_title"
YOAST_DESCRIPTION_KEY = "_yoast_wpseo_metadesc"

# Normalized status -> WooCommerce post status
_STATUS_TO_WOO = {"active": "publish", "draft": "draft", "archived": "private"}
_STATUS_FROM_WOO = {"publish": "active", "draft": "draft", "pending": "draft", "private": "archived"}


class WooCommerceCatalog(CatalogClient):
    """WooCommerce REST API catalog operations.

    Example:
        catalog = WooCommerceCatalog(connection, adapter)
        products = await catalog.list_products(limit=50)
    """

    @property
    def platform_name(self) -> str:
        return "woocommerce"

    async def list_products(self, limit: int) -> list[dict[str, Any]]:
        data = await self._request(
            "products", params={"per_page": min(limit, MAX_PAGE_SIZE)}
        )
        return [self._normalize_product(p) for p in data or []]

    async def get_product(self, product_id: str) -> dict[str, Any]:
        product = await self._request(f"products/{product_id}")
        normalized = self._normalize_product(product)
        if product.get("type") == "variable":
            variations = await self._request(f"products/{product_id}/variations")
            normalized["variants"] = [
                self._normalize_variation(v) for v in variations or []
            ]
            normalized["variants_loaded"] = True
        return normalized

    async def update_product(
        self, product_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for name, value in fields.items():
            if name == "title":
                payload["name"] = value
            elif name == "tags" and isinstance(value, list):
                payload["tags"] = [{"name": tag} for tag in value]
            elif name == "status":
                payload["status"] = _STATUS_TO_WOO.get(value, value)
            else:
                payload[name] = value
        product = await self._request(
            f"products/{product_id}", method="PUT", body=payload
        )
        return self._normalize_product(product)

    async def update_variant_price(
        self, product_id: str, variant_id: str, price: float
    ) -> dict[str, Any]:
        body = {"regular_price": format_price(price)}
        if variant_id == product_id:
            product = await self._request(
                f"products/{product_id}", method="PUT", body=body
            )
            return self._product_as_variant(product)
        variation = await self._request(
            f"products/{product_id}/variations/{variant_id}", method="PUT", body=body
        )
        return self._normalize_variation(variation)

    async def resolve_location(self, location_id: str | None) -> str | None:
        return None

    async def set_inventory(
        self,
        product_id: str,
        variant: dict[str, Any],
        location_id: str | None,
        available: int,
    ) -> int:
        body = {"manage_stock": True, "stock_quantity": available}
        variant_id = variant.get("id") or product_id
        if variant_id == product_id:
            data = await self._request(f"products/{product_id}", method="PUT", body=body)
        else:
            data = await self._request(
                f"products/{product_id}/variations/{variant_id}", method="PUT", body=body
            )
        quantity = data.get("stock_quantity")
        return available if quantity is None else int(quantity)

    async def create_discount(
        self, params: ApplyDiscountParams, product_ids: list[str]
    ) -> dict[str, Any]:
        title = params.display_title()
        code = params.code or _code_from_title(title)
        coupon: dict[str, Any] = {
            "code": code,
            "description": title,
            "discount_type": "percent" if params.value_type == "percentage" else "fixed_product",
            "amount": f"{params.value:g}",
        }
        if product_ids:
            coupon["product_ids"] = [int(p) if p.isdigit() else p for p in product_ids]
        if params.ends_at:
            coupon["date_expires"] = params.ends_at

        data = await self._request("coupons", method="POST", body=coupon)
        coupon_id = str(data.get("id", ""))
        logger.info("Created WooCommerce coupon %s (%s)", coupon_id, code)
        return {"id": coupon_id, "title": title, "code": data.get("code", code)}

    async def delete_discount(self, discount_id: str) -> None:
        await self._request(
            f"coupons/{discount_id}", method="DELETE", params={"force": "true"}
        )

    async def get_seo(self, product_id: str) -> dict[str, str | None]:
        product = await self._request(f"products/{product_id}")
        return _seo_from_meta(product.get("meta_data") or [])

    async def set_seo(
        self, product_id: str, title: str | None, description: str | None
    ) -> dict[str, str | None]:
        meta = []
        written: dict[str, str | None] = {}
        if title is not None:
            meta.append({"key": YOAST_TITLE_KEY, "value": title})
            written["title"] = title
        if description is not None:
            meta.append({"key": YOAST_DESCRIPTION_KEY, "value": description})
            written["description"] = description
        if meta:
            await self._request(
                f"products/{product_id}", method="PUT", body={"meta_data": meta}
            )
        return written

    def _product_as_variant(self, product: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": str(product.get("id", "")),
            "title": product.get("name", ""),
            "sku": product.get("sku") or "",
            "price": to_float(product.get("regular_price") or product.get("price")),
            "compare_at_price": None,
            "inventory_item_id": None,
            "inventory_quantity": product.get("stock_quantity"),
            "inventory_managed": bool(product.get("manage_stock")),
        }

    def _normalize_variation(self, variation: dict[str, Any]) -> dict[str, Any]:
        attributes = variation.get("attributes") or []
        return {
            "id": str(variation.get("id", "")),
            "title": " / ".join(a.get("option", "") for a in attributes),
            "sku": variation.get("sku") or "",
            "price": to_float(variation.get("regular_price") or variation.get("price")),
            "compare_at_price": None,
            "inventory_item_id": None,
            "inventory_quantity": variation.get("stock_quantity"),
            "inventory_managed": bool(variation.get("manage_stock")),
        }

    def _normalize_product(self, product: dict[str, Any]) -> dict[str, Any]:
        """Convert a WooCommerce product to the normalized product dict.

        Args:
            product: Raw product from the REST API.

        Returns:
            Normalized product dict. Variable products carry no variants
            and ``variants_loaded=False`` until fetched with get_product.
        """
        categories = product.get("categories") or []
        variants = (
            [] if product.get("type") == "variable" else [self._product_as_variant(product)]
        )
        return {
            "id": str(product.get("id", "")),
            "title": product.get("name", ""),
            "description": product.get("description") or "",
            "product_type": categories[0].get("name", "") if categories else "",
            "vendor": "",
            "status": _STATUS_FROM_WOO.get(product.get("status", ""), "active"),
            "tags": [t.get("name", "") for t in product.get("tags") or []],
            "variants": variants,
            "variants_loaded": product.get("type") != "variable",
            "seo": _seo_from_meta(product.get("meta_data") or []),
        }


def _seo_from_meta(meta_data: list[dict[str, Any]]) -> dict[str, str | None]:
    seo: dict[str, str | None] = {"title": None, "description": None}
    for entry in meta_data:
        if entry.get("key") == YOAST_TITLE_KEY:
            seo["title"] = entry.get("value")
        elif entry.get("key") == YOAST_DESCRIPTION_KEY:
            seo["description"] = entry.get("value")
    return seo


def _code_from_title(title: str) -> str:
    """Coupon codes are required by WooCommerce; derive one from the title."""
    code = re.sub(r"[^A-Za-z0-9]+", "", title.upper())
    return code or "STORECOMMAND"
