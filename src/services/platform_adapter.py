"""Authenticated REST access to commerce platforms.

PlatformAdapter is the only component that talks HTTP to a store. It
builds the platform's base URL, injects the stored credentials in the
form each platform expects, and turns non-2xx responses into
PlatformAPIError with the status code and the raw response body. It
performs no retries and no rate-limit backoff; callers throttle with
RateLimitedBatcher.

Example:
    adapter = PlatformAdapter(timeout=30.0)
    data = await adapter.request(connection, "products.json", params={"limit": 50})
"""

import logging
from typing import Any

import httpx

from src.errors import PlatformAPIError, UnsupportedPlatformError
from src.services.platform_service import PlatformConnection
from src.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)

SHOPIFY_API_VERSION = "2024-01"
WOOCOMMERCE_API_VERSION = "wc/v3"
ETSY_BASE_URL = "https://openapi.etsy.com/v3/application"
FAIRE_BASE_URL = "https://www.faire.com/api/v2"

PLATFORM_LABELS = {
    "shopify": "Shopify",
    "woocommerce": "WooCommerce",
    "etsy": "Etsy",
    "faire": "Faire",
}


def platform_label(platform_type: str) -> str:
    return PLATFORM_LABELS.get(platform_type, platform_type)


class PlatformAdapter:
    """Sends authenticated requests to connected platforms.

    Args:
        client: Shared httpx client. When None, a short-lived client is
            opened per request.
        timeout: Timeout for per-request clients, in seconds.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._client = client
        self._timeout = timeout

    def build_url(self, platform: PlatformConnection, endpoint: str) -> str:
        """Absolute URL for an endpoint relative to the platform's API root.

        Raises:
            UnsupportedPlatformError: For unknown platform types.
        """
        endpoint = endpoint.lstrip("/")
        platform_type = platform.platform_type
        if platform_type == "shopify":
            return (
                f"https://{platform.shop_domain}/admin/api/"
                f"{SHOPIFY_API_VERSION}/{endpoint}"
            )
        if platform_type == "woocommerce":
            site_url = (platform.store_url or "").rstrip("/")
            return f"{site_url}/wp-json/{WOOCOMMERCE_API_VERSION}/{endpoint}"
        if platform_type == "etsy":
            return f"{ETSY_BASE_URL}/{endpoint}"
        if platform_type == "faire":
            return f"{FAIRE_BASE_URL}/{endpoint}"
        raise UnsupportedPlatformError(platform_type)

    def build_auth(
        self, platform: PlatformConnection
    ) -> tuple[dict[str, str], tuple[str, str] | None]:
        """Headers and optional HTTP Basic credentials for a platform."""
        creds = platform.credentials
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        auth: tuple[str, str] | None = None

        if platform.platform_type == "shopify":
            headers["X-Shopify-Access-Token"] = creds.get("access_token", "")
        elif platform.platform_type == "woocommerce":
            auth = (creds.get("consumer_key", ""), creds.get("consumer_secret", ""))
        elif platform.platform_type == "etsy":
            headers["x-api-key"] = creds.get("api_key", "")
            headers["Authorization"] = f"Bearer {creds.get('access_token', '')}"
        elif platform.platform_type == "faire":
            headers["X-FAIRE-ACCESS-TOKEN"] = creds.get("access_token", "")
        else:
            raise UnsupportedPlatformError(platform.platform_type)
        return headers, auth

    async def request(
        self,
        platform: PlatformConnection,
        endpoint: str,
        method: str = "GET",
        body: dict[str, Any] | list[Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make one authenticated request.

        Args:
            platform: Resolved platform connection with decrypted credentials.
            endpoint: Path relative to the platform API root.
            method: HTTP method.
            body: JSON body, serialized when present.
            params: Query parameters.

        Returns:
            Decoded JSON response, or an empty dict for empty bodies.

        Raises:
            PlatformAPIError: On non-2xx status (with raw body) or transport failure.
        """
        url = self.build_url(platform, endpoint)
        headers, auth = self.build_auth(platform)
        label = platform_label(platform.platform_type)
        logger.debug("%s %s %s", label, method, endpoint)

        kwargs: dict[str, Any] = {"headers": headers, "params": params}
        if body is not None:
            kwargs["json"] = body
        if auth is not None:
            kwargs["auth"] = auth

        try:
            if self._client is not None:
                response = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "%s API error %d on %s %s: %s",
                label, e.response.status_code, method, endpoint,
                sanitize_error_message(e.response.text, max_length=300),
            )
            raise PlatformAPIError(
                label, e.response.status_code, e.response.text
            ) from e
        except httpx.RequestError as e:
            logger.warning("%s request failed on %s %s: %s", label, method, endpoint, e)
            raise PlatformAPIError(label, None, str(e)) from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise PlatformAPIError(
                label, response.status_code, f"Invalid JSON response: {response.text}"
            ) from e

    async def aclose(self) -> None:
        """Close the shared client, if any."""
        if self._client is not None:
            await self._client.aclose()
