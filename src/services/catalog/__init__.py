"""Catalog clients: a uniform product surface per platform type."""

from src.errors import UnsupportedPlatformError
from src.services.catalog.base import CatalogClient
from src.services.catalog.shopify import ShopifyCatalog
from src.services.catalog.woocommerce import WooCommerceCatalog
from src.services.platform_adapter import PlatformAdapter
from src.services.platform_service import PlatformConnection

CATALOG_CLIENTS: dict[str, type[CatalogClient]] = {
    "shopify": ShopifyCatalog,
    "woocommerce": WooCommerceCatalog,
}


def get_catalog(platform: PlatformConnection, adapter: PlatformAdapter) -> CatalogClient:
    """Catalog client for a platform.

    Raises:
        UnsupportedPlatformError: For platforms without product write support.
    """
    client_cls = CATALOG_CLIENTS.get(platform.platform_type)
    if client_cls is None:
        raise UnsupportedPlatformError(platform.platform_type)
    return client_cls(platform, adapter)


__all__ = [
    "CATALOG_CLIENTS",
    "CatalogClient",
    "ShopifyCatalog",
    "WooCommerceCatalog",
    "get_catalog",
]
