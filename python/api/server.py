"""
FastAPI SDN Search API Server

REST endpoints around the streaming SDN search. Every request opens the
local document afresh and runs one linear pass in a worker thread.

Usage:
    uvicorn api.server:app --reload --port 8000
"""

import os
import time
import uuid
import logging
import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from fastapi import FastAPI, HTTPException, Depends, Security
from fastapi.responses import RedirectResponse
from fastapi.security import APIKeyHeader

from api.models import (
    SearchRequest,
    SearchResponse,
    MatchDetail,
    SdnRecordDetail,
    HealthResponse,
    DataUpdateResponse,
    ErrorResponse,
)
from api.middleware import (
    setup_cors,
    setup_exception_handlers,
    RequestLoggingMiddleware,
)
from config_manager import get_config, configure_logging, ConfigManager
from downloader import SdnDownloader, DownloadError, read_publish_info
from entry_normalizer import SdnRecord
from matcher import Query, MatchRule
from screener import iter_matches, open_document, validate_query

logger = logging.getLogger(__name__)

CONFIG_PATH = os.getenv("CONFIG_PATH")
API_KEY = os.getenv("API_KEY", "")  # Required for the data update endpoint

# Global state
_config: Optional[ConfigManager] = None
_startup_time: Optional[datetime] = None
_update_lock = asyncio.Lock()
_executor: Optional[ThreadPoolExecutor] = None

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_executor() -> ThreadPoolExecutor:
    """Worker pool for blocking searches and downloads, created on first use."""
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=2)
    return _executor


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> str:
    """Verify API key for protected endpoints.

    If API_KEY environment variable is not set, authentication is disabled.
    """
    if not API_KEY:
        return "dev-mode"

    if not api_key:
        raise HTTPException(
            status_code=401, detail="Missing API key. Provide X-API-Key header."
        )

    if api_key != API_KEY:
        raise HTTPException(status_code=403, detail="Invalid API key")

    return api_key


def get_config_instance() -> ConfigManager:
    """Dependency to get the config instance."""
    global _config
    if _config is None:
        _config = get_config(CONFIG_PATH)
    return _config


app = FastAPI(
    title="SDN Search API",
    description="Search the OFAC SDN list for individuals by identity document or name",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

setup_cors(app)
app.add_middleware(RequestLoggingMiddleware)
setup_exception_handlers(app)


@app.on_event("startup")
async def startup():
    """Load configuration and report the document in use."""
    global _startup_time

    config = get_config_instance()
    configure_logging(config)
    _startup_time = datetime.now(timezone.utc)

    if config.xml_path.exists():
        logger.info("✓ API ready: searching %s", config.xml_path)
    else:
        logger.warning("⚠ SDN document not found: %s (POST /api/v1/data/update)", config.xml_path)


@app.on_event("shutdown")
async def shutdown():
    """Stop the worker pool; running searches finish on their own."""
    global _executor
    logger.info("Shutting down SDN Search API...")
    if _executor is not None:
        _executor.shutdown(wait=False)
        _executor = None


def _run_search(config: ConfigManager, query: Query) -> List[Tuple[SdnRecord, MatchRule]]:
    """Blocking search over a freshly opened document (runs in the executor)."""
    with open_document(config.xml_path, config.search.encoding) as f:
        return list(iter_matches(f, query, config.search.entry_tag))


def _record_count(info: dict) -> Optional[int]:
    value = info.get("Record Count")
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


@app.post(
    "/api/v1/search",
    response_model=SearchResponse,
    responses={
        200: {"model": SearchResponse, "description": "Search completed"},
        422: {"model": ErrorResponse, "description": "Validation error"},
        500: {"model": ErrorResponse, "description": "Malformed entry in SDN document"},
        503: {"model": ErrorResponse, "description": "SDN document unavailable"},
    },
    summary="Search for an individual",
    description="Match by identity document number and country, by name, or by alias",
)
async def search_individual(
    request: SearchRequest,
    config: ConfigManager = Depends(get_config_instance),
):
    """Run one search; matches come back in document order."""
    start_time = time.time()

    payload = request.model_dump(exclude_none=True)
    validate_query(payload, config)
    query = Query.from_mapping(payload)

    loop = asyncio.get_running_loop()
    pairs = await loop.run_in_executor(get_executor(), _run_search, config, query)

    matches = [
        MatchDetail(record=SdnRecordDetail(**record.to_dict()), rule=rule.value)
        for record, rule in pairs
    ]

    return SearchResponse(
        search_id=str(uuid.uuid4()),
        search_date=datetime.now(timezone.utc).isoformat(),
        query=query.to_dict(),
        is_hit=bool(matches),
        hit_count=len(matches),
        matches=matches,
        processing_time_ms=int((time.time() - start_time) * 1000),
    )


@app.get(
    "/api/v1/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check service health and the state of the local SDN document",
)
async def health_check(config: ConfigManager = Depends(get_config_instance)):
    """Always returns HTTP 200; problems are reported in the body."""
    xml_path = config.xml_path
    uptime_seconds = None
    if _startup_time:
        uptime_seconds = int((datetime.now(timezone.utc) - _startup_time).total_seconds())

    if not xml_path.exists():
        return HealthResponse(
            status="degraded",
            document=str(xml_path),
            document_exists=False,
            uptime_seconds=uptime_seconds,
            error_message="SDN document not found",
        )

    stat = xml_path.stat()
    try:
        info = read_publish_info(xml_path)
    except DownloadError as e:
        return HealthResponse(
            status="error",
            document=str(xml_path),
            document_exists=True,
            size_bytes=stat.st_size,
            uptime_seconds=uptime_seconds,
            error_message=str(e),
        )

    return HealthResponse(
        status="healthy",
        document=str(xml_path),
        document_exists=True,
        size_bytes=stat.st_size,
        last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
        publish_date=info.get("Publish Date"),
        record_count=_record_count(info),
        uptime_seconds=uptime_seconds,
    )


@app.post(
    "/api/v1/data/update",
    response_model=DataUpdateResponse,
    responses={
        200: {"model": DataUpdateResponse, "description": "Document refreshed"},
        401: {"model": ErrorResponse, "description": "Missing API key"},
        403: {"model": ErrorResponse, "description": "Invalid API key"},
        502: {"model": ErrorResponse, "description": "Download failed"},
    },
    summary="Refresh SDN document",
    description="Download the SDN archive and extract a fresh document",
)
async def update_data(
    config: ConfigManager = Depends(get_config_instance),
    api_key: str = Depends(verify_api_key),
):
    """Force a download; concurrent updates are serialized."""
    start_time = time.time()

    async with _update_lock:
        downloader = SdnDownloader(config)
        loop = asyncio.get_running_loop()
        xml_path = await loop.run_in_executor(get_executor(), downloader.ensure, True)
        info = await loop.run_in_executor(get_executor(), read_publish_info, xml_path)

    return DataUpdateResponse(
        success=True,
        document=str(xml_path),
        publish_date=info.get("Publish Date"),
        record_count=_record_count(info),
        processing_time_ms=int((time.time() - start_time) * 1000),
    )


@app.get("/", include_in_schema=False)
async def root():
    """Redirect root to API documentation."""
    return RedirectResponse(url="/api/docs")


if __name__ == "__main__":
    import uvicorn

    config = get_config_instance()
    uvicorn.run(app, host=config.api.host, port=config.api.port)
