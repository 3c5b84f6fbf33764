"""FastAPI application for the StoreCommand API.

Provides the main application instance with routers, middleware,
and exception handlers configured.
"""

import logging
import os
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

from fastapi import FastAPI, HTTPException, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("src").setLevel(logging.INFO)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.dependencies import get_platform_adapter
from src.api.middleware.auth import maybe_require_api_key, validate_api_key_strength
from src.api.routes import commands, platforms, scheduler
from src.db.connection import init_db
from src.errors import (
    ClarificationPendingError,
    CommandStateError,
    ConfigurationError,
    DomainError,
    InterpretationError,
    NotFoundError,
    PlatformAPIError,
    StoreCommandError,
    UndoNotAvailableError,
)

logger = logging.getLogger(__name__)

_startup_time: float = 0.0

# Most specific first; anything else derived from DomainError is a 400
_STATUS_BY_ERROR: list[tuple[type[DomainError], int]] = [
    (NotFoundError, 404),
    (InterpretationError, 422),
    (ClarificationPendingError, 409),
    (CommandStateError, 409),
    (UndoNotAvailableError, 409),
    (PlatformAPIError, 502),
    (ConfigurationError, 503),
]


def status_code_for(exc: DomainError) -> int:
    """HTTP status for a domain error."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def _parse_allowed_origins() -> list[str]:
    """Parse comma-separated CORS allowlist from ALLOWED_ORIGINS env var."""
    raw = os.environ.get("ALLOWED_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup and release the shared HTTP client on shutdown."""
    global _startup_time

    _startup_time = _time.time()
    validate_api_key_strength()
    init_db()
    logger.info("StoreCommand API started")

    yield

    await get_platform_adapter().aclose()


def create_app() -> FastAPI:
    """Build the application with middleware, handlers and routers."""
    application = FastAPI(
        title="StoreCommand API",
        description="Natural language commands for e-commerce catalog operations",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Optional API auth for /api/* when STORECOMMAND_API_KEY is configured.
    application.middleware("http")(maybe_require_api_key)

    allowed_origins = _parse_allowed_origins()
    if allowed_origins:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "X-API-Key", "X-User-Id"],
        )

    @application.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        """Render domain errors as the error envelope.

        Args:
            request: The incoming request.
            exc: The raised domain error.

        Returns:
            JSONResponse with error code, message and remediation.
        """
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=status_code,
            content=StoreCommandError.from_exception(exc).to_envelope(),
        )

    @application.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        envelope = StoreCommandError.from_code(
            "E-2001", reason="Invalid request body"
        ).to_envelope()
        envelope["details"] = {"errors": jsonable_errors(exc)}
        return JSONResponse(status_code=422, content=envelope)

    @application.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    application.include_router(commands.router, prefix="/api/v1")
    application.include_router(platforms.router, prefix="/api/v1")
    application.include_router(scheduler.router, prefix="/api/v1")

    @application.get("/health")
    def health_check() -> dict:
        """Liveness with version and uptime."""
        try:
            version = _pkg_version("storecommand")
        except PackageNotFoundError:
            version = "unknown"
        uptime = int(_time.time() - _startup_time) if _startup_time else 0
        return {"status": "healthy", "version": version, "uptime_seconds": uptime}

    return application


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors reduced to location, message and type."""
    return [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]


app = create_app()


def serve() -> None:
    """Run the API with uvicorn (``storecommand-api`` console script).

    Binds to STORECOMMAND_HOST / STORECOMMAND_PORT, default 127.0.0.1:8000.
    """
    import uvicorn

    host = os.environ.get("STORECOMMAND_HOST", "127.0.0.1")
    port = int(os.environ.get("STORECOMMAND_PORT", "8000"))
    logger.info("Starting StoreCommand API on %s:%d", host, port)
    uvicorn.run("src.api.main:app", host=host, port=port, log_level="info")
