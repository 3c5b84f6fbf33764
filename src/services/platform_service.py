"""PlatformService: user-scoped lookup of connected commerce platforms.

Resolves the platform identifiers a command targets (platform id, shop
name, shop domain or platform type) to the user's connected, active
Platform rows and decrypts their stored credentials into an immutable
PlatformConnection for the adapter. Only platforms owned by the
requesting user are ever returned.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.db.models import Platform, PlatformStatus, PlatformType
from src.errors import ConfigurationError, UnsupportedPlatformError, ValidationError
from src.services.credential_encryption import (
    CredentialDecryptionError,
    decrypt_credentials,
    encrypt_credentials,
    get_or_create_key,
    platform_aad,
)
from src.utils.redaction import redact_for_logging

logger = logging.getLogger(__name__)

_VALID_PLATFORM_TYPES = {p.value for p in PlatformType}

_REQUIRED_CREDENTIALS = {
    "shopify": ("access_token",),
    "woocommerce": ("consumer_key", "consumer_secret"),
    "etsy": ("api_key", "access_token"),
    "faire": ("access_token",),
}


@dataclass(frozen=True)
class PlatformConnection:
    """A resolved platform with decrypted credentials.

    Never persisted or logged; built per execution.
    """

    id: str
    user_id: str
    platform_type: str
    shop_name: str
    shop_domain: str | None = None
    store_url: str | None = None
    credentials: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def display_name(self) -> str:
        return self.shop_name or self.shop_domain or self.platform_type


@dataclass
class UnusablePlatform:
    """A targeted platform whose stored credentials could not be loaded."""

    id: str
    platform_type: str
    display_name: str
    error: ConfigurationError


@dataclass
class ResolvedConnections:
    """Connections ready for execution, plus targeted platforms that are not."""

    connections: list[PlatformConnection] = field(default_factory=list)
    unusable: list[UnusablePlatform] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        """True when no target matched a connected platform at all."""
        return not self.connections and not self.unusable


class PlatformService:
    """Platform lookup and credential handling for one database session.

    Args:
        db: SQLAlchemy session.
        key_dir: Directory holding the auto-generated encryption key.
    """

    def __init__(self, db: Session, key_dir: str | None = None) -> None:
        self._db = db
        self._key_dir = key_dir

    def _key(self) -> bytes:
        return get_or_create_key(key_dir=self._key_dir)

    def register_platform(
        self,
        user_id: str,
        platform_type: str,
        shop_name: str,
        credentials: dict[str, Any],
        shop_domain: str | None = None,
        store_url: str | None = None,
    ) -> Platform:
        """Store a platform row with encrypted credentials.

        Used by seeding and tests; OAuth connection flows live elsewhere.

        Raises:
            UnsupportedPlatformError: Unknown platform type.
            ValidationError: Missing credential or address fields.
        """
        if platform_type not in _VALID_PLATFORM_TYPES:
            raise UnsupportedPlatformError(platform_type)
        missing = [
            key for key in _REQUIRED_CREDENTIALS[platform_type] if not credentials.get(key)
        ]
        if missing:
            raise ValidationError(
                f"Missing {platform_type} credentials: {', '.join(missing)}"
            )
        if platform_type == "shopify" and not shop_domain:
            raise ValidationError("Shopify platforms need a shop_domain")
        if platform_type == "woocommerce" and not store_url:
            raise ValidationError("WooCommerce platforms need a store_url")
        logger.debug(
            "Registering %s platform %r with credentials %s",
            platform_type, shop_name, redact_for_logging(credentials),
        )

        row = Platform(
            user_id=user_id,
            platform_type=platform_type,
            shop_name=shop_name,
            shop_domain=shop_domain,
            store_url=store_url,
            status=PlatformStatus.connected.value,
            is_active=True,
        )
        self._db.add(row)
        self._db.flush()
        row.encrypted_credentials = encrypt_credentials(
            credentials, self._key(), aad=platform_aad(platform_type, row.id)
        )
        self._db.commit()
        logger.info("Registered %s platform %s for user %s", platform_type, row.id, user_id)
        return row

    def list_connected(self, user_id: str) -> list[Platform]:
        """All connected, active platforms owned by a user."""
        stmt = (
            select(Platform)
            .where(
                Platform.user_id == user_id,
                Platform.is_active.is_(True),
                Platform.status == PlatformStatus.connected.value,
            )
            .order_by(Platform.created_at)
        )
        return list(self._db.scalars(stmt))

    def resolve_targets(
        self, user_id: str, platform_targets: list[str] | None
    ) -> list[Platform]:
        """Match target identifiers against the user's connected platforms.

        An empty target list means every connected platform. A target
        matches on id, shop name, shop domain (case-insensitive) or
        platform type. Order follows the connected platform list and each
        platform appears once.
        """
        connected = self.list_connected(user_id)
        if not platform_targets:
            return connected

        wanted = {t.strip().lower() for t in platform_targets if t and t.strip()}
        matched = []
        for row in connected:
            keys = {
                row.id.lower(),
                row.platform_type.lower(),
                (row.shop_name or "").lower(),
                (row.shop_domain or "").lower(),
            }
            if keys & wanted:
                matched.append(row)
        if not matched:
            logger.info(
                "No connected platform for user %s matched %s", user_id, platform_targets
            )
        return matched

    def to_connection(self, row: Platform) -> PlatformConnection:
        """Decrypt a platform row into a PlatformConnection.

        Raises:
            ConfigurationError: If credentials are missing or cannot be decrypted.
        """
        if not row.encrypted_credentials:
            raise ConfigurationError(
                f"Platform {row.shop_name} has no stored credentials; reconnect it"
            )
        try:
            credentials = decrypt_credentials(
                row.encrypted_credentials,
                self._key(),
                aad=platform_aad(row.platform_type, row.id),
            )
        except CredentialDecryptionError as e:
            raise ConfigurationError(
                f"Stored credentials for {row.shop_name} could not be decrypted; "
                "check STORECOMMAND_CREDENTIAL_KEY"
            ) from e
        return PlatformConnection(
            id=row.id,
            user_id=row.user_id,
            platform_type=row.platform_type,
            shop_name=row.shop_name,
            shop_domain=row.shop_domain,
            store_url=row.store_url,
            credentials=credentials,
        )

    def resolve_connections(
        self, user_id: str, platform_targets: list[str] | None
    ) -> ResolvedConnections:
        """resolve_targets followed by credential decryption.

        A platform whose credentials are missing or undecryptable is
        returned as unusable; the others stay usable.
        """
        resolved = ResolvedConnections()
        for row in self.resolve_targets(user_id, platform_targets):
            try:
                resolved.connections.append(self.to_connection(row))
            except ConfigurationError as e:
                logger.warning("Platform %s is unusable: %s", row.id, e.message)
                resolved.unusable.append(
                    UnusablePlatform(
                        id=row.id,
                        platform_type=row.platform_type,
                        display_name=row.shop_name or row.platform_type,
                        error=e,
                    )
                )
        return resolved
