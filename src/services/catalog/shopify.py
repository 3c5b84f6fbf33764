"""Shopify catalog client.

Implements CatalogClient over the Shopify Admin REST API (2024-01):
products and variants, inventory levels at a location, price rules with
discount codes, and the global title_tag/description_tag metafields
that drive a product's search-engine listing.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from src.errors import DomainError, ValidationError
from src.orchestrator.models.action import ApplyDiscountParams
from src.services.catalog.base import CatalogClient, format_price, to_float

logger = logging.getLogger(__name__)

# Shopify caps page size at 250
MAX_PAGE_SIZE = 250

SEO_NAMESPACE = "global"
SEO_TITLE_KEY = "title_tag"
SEO_DESCRIPTION_KEY = "description_tag"


class ShopifyCatalog(CatalogClient):
    """Shopify Admin API catalog operations.

    Example:
        catalog = ShopifyCatalog(connection, adapter)
        products = await catalog.list_products(limit=50)
        await catalog.update_variant_price(products[0]["id"], variant_id, 19.99)
    """

    @property
    def platform_name(self) -> str:
        return "shopify"

    async def list_products(self, limit: int) -> list[dict[str, Any]]:
        data = await self._request(
            "products.json", params={"limit": min(limit, MAX_PAGE_SIZE)}
        )
        return [self._normalize_product(p) for p in data.get("products", [])]

    async def get_product(self, product_id: str) -> dict[str, Any]:
        data = await self._request(f"products/{product_id}.json")
        return self._normalize_product(data.get("product") or {})

    async def update_product(
        self, product_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": int(product_id) if product_id.isdigit() else product_id}
        for name, value in fields.items():
            if name == "description":
                payload["body_html"] = value
            elif name == "tags" and isinstance(value, list):
                payload["tags"] = ", ".join(value)
            else:
                payload[name] = value
        data = await self._request(
            f"products/{product_id}.json", method="PUT", body={"product": payload}
        )
        return self._normalize_product(data.get("product") or {})

    async def update_variant_price(
        self, product_id: str, variant_id: str, price: float
    ) -> dict[str, Any]:
        data = await self._request(
            f"variants/{variant_id}.json",
            method="PUT",
            body={"variant": {"id": variant_id, "price": format_price(price)}},
        )
        return self._normalize_variant(data.get("variant") or {})

    async def resolve_location(self, location_id: str | None) -> str | None:
        if location_id:
            return location_id
        data = await self._request("locations.json")
        for location in data.get("locations", []):
            if location.get("active", True):
                return str(location["id"])
        raise ValidationError("No active Shopify location found for inventory updates")

    async def set_inventory(
        self,
        product_id: str,
        variant: dict[str, Any],
        location_id: str | None,
        available: int,
    ) -> int:
        inventory_item_id = variant.get("inventory_item_id")
        if not inventory_item_id:
            raise ValidationError(
                f"Variant {variant.get('id')} of product {product_id} has no inventory item"
            )
        if location_id is None:
            raise ValidationError("Shopify inventory updates need a location")
        return await self.set_inventory_item(inventory_item_id, location_id, available)

    async def set_inventory_item(
        self, inventory_item_id: str, location_id: str, available: int
    ) -> int:
        data = await self._request(
            "inventory_levels/set.json",
            method="POST",
            body={
                "location_id": int(location_id) if str(location_id).isdigit() else location_id,
                "inventory_item_id": (
                    int(inventory_item_id)
                    if str(inventory_item_id).isdigit()
                    else inventory_item_id
                ),
                "available": available,
            },
        )
        level = data.get("inventory_level") or {}
        return int(level.get("available", available))

    async def create_discount(
        self, params: ApplyDiscountParams, product_ids: list[str]
    ) -> dict[str, Any]:
        title = params.display_title()
        price_rule: dict[str, Any] = {
            "title": title,
            "target_type": "line_item",
            "target_selection": "entitled" if product_ids else "all",
            "allocation_method": "across" if params.value_type == "fixed_amount" else "each",
            "value_type": params.value_type,
            "value": f"-{params.value:g}",
            "customer_selection": "all",
            "starts_at": params.starts_at or _now_iso(),
        }
        if params.ends_at:
            price_rule["ends_at"] = params.ends_at
        if product_ids:
            price_rule["entitled_product_ids"] = [
                int(p) if p.isdigit() else p for p in product_ids
            ]

        data = await self._request(
            "price_rules.json", method="POST", body={"price_rule": price_rule}
        )
        rule = data.get("price_rule") or {}
        rule_id = str(rule.get("id", ""))

        code = params.code
        if code:
            try:
                await self._request(
                    f"price_rules/{rule_id}/discount_codes.json",
                    method="POST",
                    body={"discount_code": {"code": code}},
                )
            except DomainError:
                logger.warning("Discount code %s rejected; removing price rule %s", code, rule_id)
                await self._remove_orphan_rule(rule_id)
                raise
        logger.info("Created Shopify price rule %s (%s)", rule_id, title)
        return {"id": rule_id, "title": rule.get("title", title), "code": code}

    async def _remove_orphan_rule(self, rule_id: str) -> None:
        try:
            await self.delete_discount(rule_id)
        except DomainError as e:
            logger.error("Could not remove price rule %s: %s", rule_id, e)

    async def delete_discount(self, discount_id: str) -> None:
        await self._request(f"price_rules/{discount_id}.json", method="DELETE")

    async def get_seo(self, product_id: str) -> dict[str, str | None]:
        data = await self._request(
            f"products/{product_id}/metafields.json",
            params={"namespace": SEO_NAMESPACE},
        )
        seo: dict[str, str | None] = {"title": None, "description": None}
        for metafield in data.get("metafields", []):
            if metafield.get("key") == SEO_TITLE_KEY:
                seo["title"] = metafield.get("value")
            elif metafield.get("key") == SEO_DESCRIPTION_KEY:
                seo["description"] = metafield.get("value")
        return seo

    async def set_seo(
        self, product_id: str, title: str | None, description: str | None
    ) -> dict[str, str | None]:
        written: dict[str, str | None] = {}
        for key, value, name in (
            (SEO_TITLE_KEY, title, "title"),
            (SEO_DESCRIPTION_KEY, description, "description"),
        ):
            if value is None:
                continue
            await self._request(
                f"products/{product_id}/metafields.json",
                method="POST",
                body={
                    "metafield": {
                        "namespace": SEO_NAMESPACE,
                        "key": key,
                        "value": value,
                        "type": "single_line_text_field",
                    }
                },
            )
            written[name] = value
        return written

    def _normalize_variant(self, variant: dict[str, Any]) -> dict[str, Any]:
        inventory_item_id = variant.get("inventory_item_id")
        return {
            "id": str(variant.get("id", "")),
            "title": variant.get("title", ""),
            "sku": variant.get("sku") or "",
            "price": to_float(variant.get("price")),
            "compare_at_price": to_float(variant.get("compare_at_price")),
            "inventory_item_id": str(inventory_item_id) if inventory_item_id else None,
            "inventory_quantity": variant.get("inventory_quantity"),
            "inventory_managed": variant.get("inventory_management") == "shopify",
        }

    def _normalize_product(self, product: dict[str, Any]) -> dict[str, Any]:
        """Convert a Shopify product to the normalized product dict.

        Args:
            product: Raw product from the Admin API.

        Returns:
            Normalized product dict.
        """
        # Shopify returns tags as a comma-separated string
        raw_tags = product.get("tags") or ""
        tags = [t.strip() for t in raw_tags.split(",") if t.strip()]

        return {
            "id": str(product.get("id", "")),
            "title": product.get("title", ""),
            "description": product.get("body_html") or "",
            "product_type": product.get("product_type") or "",
            "vendor": product.get("vendor") or "",
            "status": product.get("status") or "active",
            "tags": tags,
            "variants": [self._normalize_variant(v) for v in product.get("variants", [])],
            "seo": {"title": None, "description": None},
        }


def _now_iso() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
