"""Abstract base class for platform catalog clients.

A CatalogClient translates between one platform's product API and the
normalized product dict the execution handlers and filters work on:

    {
        "id": "123",
        "title": "Blue Mug",
        "description": "...",
        "product_type": "Mugs",
        "vendor": "Acme",
        "status": "active",
        "tags": ["kitchen", "sale"],
        "variants": [{"id", "title", "sku", "price", "compare_at_price",
                      "inventory_item_id", "inventory_quantity",
                      "inventory_managed"}],
        "seo": {"title": None, "description": None},
    }

A listing may return products whose variants are fetched separately;
those carry ``"variants_loaded": False`` and must be re-read with
get_product before their variants are used.

All HTTP goes through PlatformAdapter, so platform errors surface as
PlatformAPIError.
"""

from abc import ABC, abstractmethod
from typing import Any

from src.orchestrator.models.action import ApplyDiscountParams
from src.services.platform_adapter import PlatformAdapter
from src.services.platform_service import PlatformConnection


def to_float(value: Any) -> float | None:
    """Parse a platform price string; None for blanks."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def format_price(value: float) -> str:
    """Format a price the way commerce APIs expect (two decimals, string)."""
    return f"{value:.2f}"


class CatalogClient(ABC):
    """Uniform product surface over one connected platform.

    Subclasses must implement every abstract method. Example:

        class ShopifyCatalog(CatalogClient):
            @property
            def platform_name(self) -> str:
                return "shopify"
    """

    def __init__(self, platform: PlatformConnection, adapter: PlatformAdapter) -> None:
        self.platform = platform
        self.adapter = adapter

    async def _request(
        self,
        endpoint: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        return await self.adapter.request(
            self.platform, endpoint, method=method, body=body, params=params
        )

    @property
    @abstractmethod
    def platform_name(self) -> str:
        """Platform identifier (e.g. 'shopify')."""
        pass

    @abstractmethod
    async def list_products(self, limit: int) -> list[dict[str, Any]]:
        """Fetch up to ``limit`` products, normalized."""
        pass

    @abstractmethod
    async def get_product(self, product_id: str) -> dict[str, Any]:
        """Fetch one product, normalized.

        Raises:
            PlatformAPIError: 404 when the product does not exist.
        """
        pass

    @abstractmethod
    async def update_product(
        self, product_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        """Overwrite product fields given in normalized names.

        Unknown field names are passed through to the platform unchanged.
        Returns the updated product, normalized.
        """
        pass

    @abstractmethod
    async def update_variant_price(
        self, product_id: str, variant_id: str, price: float
    ) -> dict[str, Any]:
        """Set one variant's price. Returns the normalized variant."""
        pass

    @abstractmethod
    async def resolve_location(self, location_id: str | None) -> str | None:
        """Location to write inventory at; None when the platform has none.

        Raises:
            ValidationError: When the platform has locations but none is active.
        """
        pass

    @abstractmethod
    async def set_inventory(
        self,
        product_id: str,
        variant: dict[str, Any],
        location_id: str | None,
        available: int,
    ) -> int:
        """Set a variant's available quantity. Returns the new quantity."""
        pass

    @abstractmethod
    async def create_discount(
        self, params: ApplyDiscountParams, product_ids: list[str]
    ) -> dict[str, Any]:
        """Create a store discount.

        Args:
            params: Discount definition.
            product_ids: Products the discount is restricted to; empty means
                every product.

        Returns:
            {"id", "title", "code"} of the created discount.
        """
        pass

    @abstractmethod
    async def delete_discount(self, discount_id: str) -> None:
        """Delete a discount created by create_discount."""
        pass

    @abstractmethod
    async def get_seo(self, product_id: str) -> dict[str, str | None]:
        """Current {"title", "description"} search-engine fields."""
        pass

    @abstractmethod
    async def set_seo(
        self, product_id: str, title: str | None, description: str | None
    ) -> dict[str, str | None]:
        """Write the given SEO fields; None leaves a field untouched."""
        pass

    async def set_inventory_item(
        self, inventory_item_id: str, location_id: str, available: int
    ) -> int:
        """Set inventory by item id directly, skipping product lookup.

        Only platforms that model inventory items separately support this.
        """
        raise NotImplementedError(
            f"{self.platform_name} does not address inventory items directly"
        )
