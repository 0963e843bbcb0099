"""
Tubely API - FastAPI Application Entry Point.

Builds the FastAPI application: logging and MongoDB lifecycle in the
lifespan, CORS, the request body ceiling, request logging, the error
envelope handlers and the API routers under ``/api``.

Usage:
    # Run with uvicorn directly
    uvicorn tubely.main:app --host 0.0.0.0 --port 8091

    # Run as a module
    python -m tubely.main
"""

import logging
import time
import uuid

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import uvicorn

from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tubely import __app_name__, __version__
from tubely.api import api_router
from tubely.config import get_settings
from tubely.core.body_limit import MaxBodySizeMiddleware
from tubely.core.database import close_db, init_db
from tubely.core.errors import Internal, TubelyError, Unauthenticated
from tubely.utils.logger import setup_logging


# Configure module logger
logger = logging.getLogger(__name__)

# HTTP status code constants
HTTP_ERROR_THRESHOLD = 400
HTTP_SERVER_ERROR_THRESHOLD = 500

# Error codes for framework-raised HTTP errors
HTTP_STATUS_ERROR_CODES: dict[int, str] = {
    400: "bad_request",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    413: "bad_request",
    415: "unsupported_media_type",
}


# =============================================================================
# Application Lifespan Management
# =============================================================================


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Configure logging and hold the MongoDB connection for the app's lifetime."""
    settings = get_settings()

    setup_logging(log_level=settings.log_level, json_logs=settings.log_json)

    logger.info("%s API starting (env=%s, debug=%s)", settings.app_name, settings.app_env, settings.debug)

    try:
        await init_db(settings)
    except RuntimeError:
        logger.exception("Failed to initialize MongoDB")
        raise

    logger.info("%s API ready on %s:%s", settings.app_name, settings.host, settings.port)

    yield

    logger.info("%s API shutting down", settings.app_name)
    await close_db()


# =============================================================================
# FastAPI Application Instance
# =============================================================================

_settings = get_settings()

app = FastAPI(
    title=f"{__app_name__} API",
    description="Upload, fast-start processing and delivery of user videos.",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=_settings.debug,
)


# =============================================================================
# Middleware Configuration
# =============================================================================

app.add_middleware(MaxBodySizeMiddleware, max_body_size=_settings.max_upload_size_bytes)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Process-Time"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next) -> Response:
    """Log each request with its status and timing, and tag the response."""
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    start_time = time.perf_counter()

    logger.debug("Request started: %s %s [Request-ID: %s]", request.method, request.url.path, request_id)

    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "Request failed: %s %s [Request-ID: %s]", request.method, request.url.path, request_id
        )
        raise

    process_time_ms = round((time.perf_counter() - start_time) * 1000, 2)

    response.headers["X-Process-Time"] = f"{process_time_ms}ms"
    response.headers["X-Request-ID"] = request_id

    log_level = logging.INFO if response.status_code < HTTP_ERROR_THRESHOLD else logging.WARNING
    logger.log(
        log_level,
        "Request completed: %s %s [Status: %s] [Time: %sms] [Request-ID: %s]",
        request.method,
        request.url.path,
        response.status_code,
        process_time_ms,
        request_id,
    )

    return response


# =============================================================================
# Exception Handlers
# =============================================================================


def error_response(exc: TubelyError) -> JSONResponse:
    """Render a domain error as the JSON error envelope."""
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(TubelyError)
async def tubely_error_handler(request: Request, exc: TubelyError) -> JSONResponse:
    if exc.status_code >= HTTP_SERVER_ERROR_THRESHOLD:
        logger.error(
            "%s on %s %s: %s",
            exc.code,
            request.method,
            request.url.path,
            exc.message,
            extra={"error_details": exc.details},
        )
    else:
        logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "bad_request",
            "message": "Request validation failed",
            "details": {"errors": jsonable_encoder(exc.errors())},
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": HTTP_STATUS_ERROR_CODES.get(exc.status_code, "http_error"),
            "message": str(exc.detail),
            "details": None,
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return error_response(Internal())


# =============================================================================
# Routes
# =============================================================================

app.include_router(api_router, prefix="/api")


@app.get("/", tags=["root"], summary="API Root")
async def root() -> dict[str, Any]:
    return {
        "name": f"{__app_name__} API",
        "version": __version__,
        "docs": "/docs",
        "api_prefix": "/api",
    }


@app.get("/health", tags=["health"], summary="Health Check")
async def health_check() -> dict[str, Any]:
    """Liveness probe; returns immediately without touching dependencies."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "version": __version__,
        "service": f"{__app_name__} API",
    }


# =============================================================================
# Main Execution Block
# =============================================================================

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "tubely.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level,
    )
