"""Optional API-key auth middleware and request identity.

When STORECOMMAND_API_KEY is set, every /api/* request must carry the
same value in X-API-Key. Independently, every API route resolves the
acting user from X-User-Id; the key authenticates the caller, the user
id scopes data. Session management stays with the deployment in front.
"""

from __future__ import annotations

import hmac
import logging
import os
import re
import threading
import time
from collections import defaultdict, deque
from collections.abc import Callable

from fastapi import Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

API_KEY_ENV = "STORECOMMAND_API_KEY"
MIN_API_KEY_LENGTH = 32
AUTH_FAIL_MAX = 10
AUTH_FAIL_WINDOW_SECONDS = 300

_PUBLIC_PREFIXES = ("/health", "/docs", "/redoc", "/openapi.json")
_USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:@-]{1,64}$")


class FailureWindow:
    """Sliding window of failed attempts per client.

    Args:
        limit: Failures inside the window that block the client.
        window_seconds: Window length.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        limit: int = AUTH_FAIL_MAX,
        window_seconds: float = AUTH_FAIL_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._failures: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def _expire(self, client: str, now: float) -> deque[float]:
        stamps = self._failures[client]
        while stamps and now - stamps[0] >= self.window_seconds:
            stamps.popleft()
        return stamps

    def is_blocked(self, client: str) -> bool:
        with self._lock:
            return len(self._expire(client, self._clock())) >= self.limit

    def record(self, client: str) -> None:
        with self._lock:
            now = self._clock()
            self._expire(client, now).append(now)

    def clear(self) -> None:
        with self._lock:
            self._failures.clear()


_failures = FailureWindow()


def reset_rate_limiter() -> None:
    """Forget all recorded auth failures. Used by tests."""
    _failures.clear()


def get_expected_api_key() -> str:
    """Return configured API key; empty string means auth disabled."""
    return os.environ.get(API_KEY_ENV, "").strip()


def validate_api_key_strength() -> None:
    """Refuse to start with a configured key shorter than 32 characters.

    Raises:
        ValueError: If STORECOMMAND_API_KEY is set but too short.
    """
    key = get_expected_api_key()
    if key and len(key) < MIN_API_KEY_LENGTH:
        raise ValueError(
            f"{API_KEY_ENV} is too short ({len(key)} chars). "
            f"Minimum length is {MIN_API_KEY_LENGTH} characters."
        )


def should_authenticate(path: str) -> bool:
    """True for /api/* paths; docs and health stay public."""
    return path.startswith("/api/") and not path.startswith(_PUBLIC_PREFIXES)


def _reject(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


async def maybe_require_api_key(request: Request, call_next) -> Response:
    """HTTP middleware enforcing X-API-Key when a key is configured.

    Clients with too many failures inside the window get 429 until
    older failures age out.
    """
    expected = get_expected_api_key()
    if (
        not expected
        or request.method.upper() == "OPTIONS"
        or not should_authenticate(request.url.path)
    ):
        return await call_next(request)

    client = request.client.host if request.client else "unknown"
    if _failures.is_blocked(client):
        logger.warning("Auth rate limit exceeded for %s", client)
        return _reject(429, "Too many authentication failures. Try again later.")

    provided = request.headers.get("X-API-Key", "")
    if not provided or not hmac.compare_digest(provided, expected):
        _failures.record(client)
        return _reject(401, "Invalid or missing API key")
    return await call_next(request)


def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> str:
    """Resolve the acting user from the X-User-Id header.

    Raises:
        HTTPException: 401 when the header is missing or malformed.
    """
    user_id = (x_user_id or "").strip()
    if not _USER_ID_PATTERN.match(user_id):
        raise HTTPException(status_code=401, detail="Missing or invalid X-User-Id header")
    return user_id
