"""
FastAPI Middleware for the SDN search API

Provides CORS configuration, request logging, and error handlers that turn
search, validation and download failures into one standardized error body.
"""

import os
import time
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from config_manager import ConfigurationError
from downloader import DownloadError
from screener import InputValidationError
from search_errors import SearchError, FragmentParseError
from xml_utils import sanitize_for_logging

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:8000",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:8000",
]


def setup_cors(app: FastAPI) -> None:
    """Configure CORS middleware for the application.

    Origins default to localhost and can be overridden with the CORS_ORIGINS
    environment variable (comma-separated list).
    """
    cors_origins_env = os.getenv("CORS_ORIGINS", "")
    if cors_origins_env:
        allowed_origins = [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
    else:
        allowed_origins = DEFAULT_CORS_ORIGINS

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Processing-Time-MS"],
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with a sanitized path and tags the response with
    X-Request-ID and X-Processing-Time-MS."""

    async def dispatch(self, request: Request, call_next: Callable):
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID", str(time.time_ns()))

        request.state.request_id = request_id
        request.state.start_time = start_time

        logger.info(
            "Request: method=%s path=%s request_id=%s",
            request.method,
            sanitize_for_logging(str(request.url.path)),
            sanitize_for_logging(request_id),
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            processing_time_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "Request failed: error=%s processing_time_ms=%d request_id=%s",
                sanitize_for_logging(str(exc)),
                processing_time_ms,
                sanitize_for_logging(request_id),
            )
            raise

        processing_time_ms = int((time.time() - start_time) * 1000)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time-MS"] = str(processing_time_ms)

        logger.info(
            "Response: status=%d processing_time_ms=%d request_id=%s",
            response.status_code,
            processing_time_ms,
            sanitize_for_logging(request_id),
        )
        return response


def create_error_response(
    code: str,
    message: str,
    status_code: int = 500,
    field: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response.

    Args:
        code: Error code for programmatic handling
        message: Human-readable message
        status_code: HTTP status code
        field: Field that caused the error (optional)
        suggestion: How to fix the error (optional)

    Returns:
        JSONResponse with standardized error format
    """
    error_detail = {
        "code": code,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if field:
        error_detail["field"] = field
    if suggestion:
        error_detail["suggestion"] = suggestion

    return JSONResponse(status_code=status_code, content={"error": error_detail})


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


async def validation_exception_handler(request: Request, exc: InputValidationError) -> JSONResponse:
    """Query validation failures become 422 with the offending field."""
    logger.warning(
        "Validation failed: field=%s code=%s request_id=%s",
        exc.field, exc.code, _request_id(request),
    )
    return create_error_response(
        code=exc.code,
        message=str(exc),
        status_code=422,
        field=exc.field,
        suggestion=exc.suggestion,
    )


async def search_exception_handler(request: Request, exc: SearchError) -> JSONResponse:
    """A malformed entry aborts the search (500); an unreadable list is 503."""
    logger.error(
        "Search aborted: type=%s message=%s request_id=%s",
        type(exc).__name__,
        sanitize_for_logging(str(exc)),
        _request_id(request),
    )

    if isinstance(exc, FragmentParseError):
        return create_error_response(
            code="MALFORMED_ENTRY",
            message=str(exc),
            status_code=500,
            suggestion="Refresh the SDN document via /api/v1/data/update",
        )

    return create_error_response(
        code="DATA_UNAVAILABLE",
        message="SDN document could not be read",
        status_code=503,
        suggestion="Refresh the SDN document via /api/v1/data/update",
    )


async def download_exception_handler(request: Request, exc: DownloadError) -> JSONResponse:
    logger.error(
        "Download failed: message=%s request_id=%s",
        sanitize_for_logging(str(exc)),
        _request_id(request),
    )
    return create_error_response(
        code="DOWNLOAD_FAILED",
        message="SDN archive could not be downloaded or extracted",
        status_code=502,
    )


async def configuration_exception_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error(
        "Configuration error: message=%s request_id=%s",
        sanitize_for_logging(str(exc)),
        _request_id(request),
    )
    return create_error_response(
        code="CONFIGURATION_ERROR",
        message="Service configuration is invalid. Please contact administrator.",
        status_code=503,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for HTTP exceptions."""
    logger.warning(
        "HTTP exception: status=%d detail=%s request_id=%s",
        exc.status_code,
        sanitize_for_logging(str(exc.detail)),
        _request_id(request),
    )

    return create_error_response(
        code=f"HTTP_{exc.status_code}",
        message=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
        status_code=exc.status_code,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled errors; the message is not echoed to the client."""
    logger.error(
        "Unhandled exception: type=%s message=%s request_id=%s",
        type(exc).__name__,
        sanitize_for_logging(str(exc)),
        _request_id(request),
    )
    return create_error_response(
        code="INTERNAL_ERROR",
        message="An unexpected error occurred. Please try again later.",
        status_code=500,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure exception handlers for the application."""
    app.add_exception_handler(InputValidationError, validation_exception_handler)
    app.add_exception_handler(SearchError, search_exception_handler)
    app.add_exception_handler(DownloadError, download_exception_handler)
    app.add_exception_handler(ConfigurationError, configuration_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
