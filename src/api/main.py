"""FastAPI application for TrackPool API.

Provides the main application instance with routers, middleware,
and exception handlers configured.
"""

import logging
import os
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version as _pkg_version

from fastapi import FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("src").setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.middleware.auth import maybe_require_api_key, validate_api_key_strength
from src.api.routes import orders, reports, trackings, upload_logs
from src.db.connection import init_db
from src.errors import (
    ClaimContentionError,
    ConflictError,
    DomainError,
    IngestionAbortedError,
    NoAvailableTrackingNumberError,
    NotFoundError,
    TrackPoolError,
    ValidationError,
    get_error,
)

logger = logging.getLogger(__name__)

_startup_time: float = 0.0


def _parse_allowed_origins() -> list[str]:
    """Parse comma-separated CORS allowlist from ALLOWED_ORIGINS env var."""
    raw = os.environ.get("ALLOWED_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _package_version() -> str:
    try:
        return _pkg_version("trackpool")
    except PackageNotFoundError:
        return "unknown"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: key check and schema creation."""
    global _startup_time

    _startup_time = _time.time()
    validate_api_key_strength()
    init_db()
    logger.info("TrackPool API started (version %s)", _package_version())

    yield

    logger.info("TrackPool API shutting down")


app = FastAPI(
    title="TrackPool API",
    description="India Post tracking number pools and order assignment",
    version="0.1.0",
    lifespan=lifespan,
)

# Optional API auth for /api/* when TRACKPOOL_API_KEY is configured.
app.middleware("http")(maybe_require_api_key)

# CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
allowed_origins = _parse_allowed_origins()
if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key"],
    )


def _error_content(exc: DomainError) -> dict:
    """Consistent JSON body for domain errors."""
    remediation = None
    if exc.code:
        entry = get_error(exc.code)
        if entry:
            remediation = entry.remediation.format_map(_Blank(vars(exc)))
    return {
        "error_code": exc.code,
        "message": str(exc),
        "remediation": remediation,
    }


class _Blank(dict):
    def __missing__(self, key: str) -> str:
        return "-"


def _domain_error_response(status_code: int, exc: DomainError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=_error_content(exc))


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _domain_error_response(404, exc)


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return _domain_error_response(409, exc)


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _domain_error_response(400, exc)


@app.exception_handler(NoAvailableTrackingNumberError)
async def pool_exhausted_handler(
    request: Request, exc: NoAvailableTrackingNumberError
) -> JSONResponse:
    """Pool exhaustion: the order has no tracking number until the pool is restocked."""
    response = _domain_error_response(409, exc)
    logger.warning("Pool exhausted on %s: %s", request.url.path, exc)
    return response


@app.exception_handler(ClaimContentionError)
async def contention_handler(request: Request, exc: ClaimContentionError) -> JSONResponse:
    return _domain_error_response(503, exc)


@app.exception_handler(IngestionAbortedError)
async def ingestion_aborted_handler(
    request: Request, exc: IngestionAbortedError
) -> JSONResponse:
    """Upload rolled back. The body names the batch and log for follow-up."""
    logger.error("Upload rolled back (batch %s): %s", exc.batch_id, exc.reason)
    return JSONResponse(
        status_code=500,
        content={**_error_content(exc), "batch_id": exc.batch_id, "log_file": exc.log_file},
    )


@app.exception_handler(TrackPoolError)
async def trackpool_error_handler(request: Request, exc: TrackPoolError) -> JSONResponse:
    """Handle TrackPoolError exceptions with consistent format.

    Args:
        request: The incoming request.
        exc: The TrackPoolError exception.

    Returns:
        JSONResponse with error details.
    """
    return JSONResponse(
        status_code=400,
        content={
            "error_code": exc.code,
            "message": exc.message,
            "remediation": exc.remediation,
            "details": exc.details if exc.details else None,
        },
    )


# Include routers
app.include_router(trackings.router, prefix="/api/v1")
app.include_router(upload_logs.router, prefix="/api/v1")
app.include_router(orders.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")


@app.get("/health")
def health_check() -> dict:
    """Health check endpoint with pool availability.

    Returns:
        Dictionary with status, version, uptime and available entries per pool.
    """
    from src.db.connection import get_db_context
    from src.services.tracking_pool import TrackingPoolStore

    uptime = int(_time.time() - _startup_time) if _startup_time else 0

    available: dict[str, int] = {}
    status = "healthy"
    try:
        with get_db_context() as db:
            for summary in TrackingPoolStore(db).pool_summary():
                available[summary.tracking_class.value] = summary.available
    except Exception as e:
        logger.error("Health check database query failed: %s", e)
        status = "degraded"

    return {
        "status": status,
        "version": _package_version(),
        "uptime_seconds": uptime,
        "available": available,
    }


@app.get("/api")
def api_root() -> dict:
    """API root with links to docs."""
    return {
        "name": "TrackPool API",
        "version": "0.1.0",
        "docs": "/docs",
        "redoc": "/redoc",
    }
