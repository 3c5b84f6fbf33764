"""AES-256-GCM encryption for stored platform credentials.

Platform access tokens, WooCommerce consumer key/secret pairs and Etsy
API keys are stored as a single encrypted JSON blob per platform row.
The blob is bound to its row through associated data (see platform_aad),
so copying ciphertext between rows fails to decrypt.

Key source precedence:
    1. STORECOMMAND_CREDENTIAL_KEY env var (base64-encoded 32-byte key)
    2. STORECOMMAND_CREDENTIAL_KEY_FILE env var (path to raw key file)
    3. A key file in the per-user data directory, generated on first use

Envelope:
    {"v": 1, "alg": "AES-256-GCM", "nonce": "<b64>", "ct": "<b64>"}
"""

import base64
import binascii
import json
import logging
import os
import stat
import sys
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from platformdirs import user_data_dir

logger = logging.getLogger(__name__)

KEY_FILENAME = ".storecommand_key"
KEY_ENV = "STORECOMMAND_CREDENTIAL_KEY"
KEY_FILE_ENV = "STORECOMMAND_CREDENTIAL_KEY_FILE"

ENVELOPE_VERSION = 1
ALGORITHM = "AES-256-GCM"
KEY_LENGTH = 32
NONCE_LENGTH = 12

_LOOSE_PERMISSIONS = stat.S_IRGRP | stat.S_IWGRP | stat.S_IROTH | stat.S_IWOTH


class CredentialDecryptionError(Exception):
    """Raised when a stored credential blob cannot be turned back into a dict."""


def get_default_key_dir() -> str:
    """Return the per-user app-data directory for key storage."""
    return user_data_dir("storecommand", ensure_exists=True)


def _validated(key: bytes, source: str) -> bytes:
    if len(key) != KEY_LENGTH:
        raise ValueError(f"{source} has invalid length {len(key)} (expected {KEY_LENGTH})")
    return key


def _key_from_env() -> bytes | None:
    raw = os.environ.get(KEY_ENV, "").strip()
    if not raw:
        return None
    try:
        decoded = base64.b64decode(raw, validate=True)
    except binascii.Error as e:
        raise ValueError(f"{KEY_ENV} contains invalid base64: {e}") from e
    return _validated(decoded, KEY_ENV)


def _key_from_mounted_file() -> bytes | None:
    raw = os.environ.get(KEY_FILE_ENV, "").strip()
    if not raw:
        return None
    path = Path(raw)
    if path.is_symlink() or not path.is_file():
        raise ValueError(f"{KEY_FILE_ENV} must be a regular file: {raw}")
    return _validated(path.read_bytes(), f"Key file {raw}")


def _warn_if_readable_by_others(path: Path) -> None:
    if sys.platform == "win32":
        return
    mode = stat.S_IMODE(path.stat().st_mode)
    if mode & _LOOSE_PERMISSIONS:
        logger.warning("Key file %s has permissions %o, recommend chmod 600", path, mode)


def _key_from_local_file(key_dir: str | None) -> bytes:
    directory = Path(key_dir or get_default_key_dir())
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / KEY_FILENAME

    if path.exists():
        key = _validated(path.read_bytes(), f"Key file {path}")
        _warn_if_readable_by_others(path)
        return key

    key = os.urandom(KEY_LENGTH)
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError:
        # Lost the creation race to another process
        return _validated(path.read_bytes(), f"Key file {path}")
    with os.fdopen(fd, "wb") as f:
        f.write(key)
    logger.info("Generated new credential key at %s", path)
    return key


def get_or_create_key(key_dir: str | None = None) -> bytes:
    """Load the 32-byte credential key, generating a key file if none exists.

    Args:
        key_dir: Directory for the generated key file. Defaults to the
            platformdirs app-data directory.

    Raises:
        ValueError: A configured key has the wrong length or bad base64,
            or the mounted key file path is not a regular file.
    """
    return _key_from_env() or _key_from_mounted_file() or _key_from_local_file(key_dir)


def platform_aad(platform_type: str, platform_id: str) -> str:
    """Additional authenticated data binding a blob to its platform row."""
    return f"platform:{platform_type}:{platform_id}"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def encrypt_credentials(credentials: dict, key: bytes, aad: str = "") -> str:
    """Encrypt a credentials dict into a JSON envelope string.

    Args:
        credentials: Dict such as {"access_token": "..."}.
        key: 32-byte AES-256 key.
        aad: Additional authenticated data, see platform_aad().

    Raises:
        ValueError: If key is not exactly 32 bytes.
    """
    _validated(key, "Encryption key")
    nonce = os.urandom(NONCE_LENGTH)
    plaintext = json.dumps(credentials, sort_keys=True).encode("utf-8")
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, aad.encode("utf-8") or None)
    return json.dumps({
        "v": ENVELOPE_VERSION,
        "alg": ALGORITHM,
        "nonce": _b64(nonce),
        "ct": _b64(ciphertext),
    })


def _unpack(encrypted: str) -> tuple[bytes, bytes]:
    try:
        envelope = json.loads(encrypted)
    except (json.JSONDecodeError, TypeError) as e:
        raise CredentialDecryptionError(f"Invalid envelope format: {e}") from e
    if not isinstance(envelope, dict):
        raise CredentialDecryptionError("Invalid envelope format: not a JSON object")

    version, alg = envelope.get("v"), envelope.get("alg")
    if version != ENVELOPE_VERSION or alg != ALGORITHM:
        raise CredentialDecryptionError(f"Unsupported envelope v={version} alg={alg}")

    try:
        return (
            base64.b64decode(envelope["nonce"], validate=True),
            base64.b64decode(envelope["ct"], validate=True),
        )
    except (KeyError, binascii.Error) as e:
        raise CredentialDecryptionError(f"Malformed envelope fields: {e}") from e


def decrypt_credentials(encrypted: str, key: bytes, aad: str = "") -> dict:
    """Decrypt an envelope produced by encrypt_credentials.

    Raises:
        CredentialDecryptionError: Wrong key, wrong AAD, tampered or
            malformed envelope, or a payload that is not a dict.
    """
    if len(key) != KEY_LENGTH:
        raise CredentialDecryptionError(
            f"Decryption key must be exactly {KEY_LENGTH} bytes (got {len(key)})"
        )
    nonce, ciphertext = _unpack(encrypted)

    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, aad.encode("utf-8") or None)
        payload = json.loads(plaintext.decode("utf-8"))
    except (InvalidTag, ValueError) as e:
        raise CredentialDecryptionError(f"Decryption failed: {e!r}") from e

    if not isinstance(payload, dict):
        raise CredentialDecryptionError(
            f"Decrypted payload is not a dict (got {type(payload).__name__})"
        )
    return payload
