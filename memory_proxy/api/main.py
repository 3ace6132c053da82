"""
Memory proxy HTTP API - record CRUD, filtered queries, manual cleanup and
the summary draft workflow in front of the durable store.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Body, Depends, FastAPI, Query
from fastapi.responses import JSONResponse

from ..core.config import VERSION, debug_enabled, is_heartbeat_enabled
from ..core.errors import AuthError, MemoryProxyError, NotFound, UpstreamUnavailable, ValidationError
from ..core.repository import RecordFilter
from ..core.services import ProxyServices, build_services
from .deps import get_services
from .schemas import (
    CleanupResponse,
    HealthResponse,
    RecordCreateRequest,
    RecordDeleteRequest,
    RecordDeleteResponse,
    RecordListResponse,
    RecordMutationResponse,
    RecordResponse,
    RecordStatusUpdateRequest,
)
from .summary import router as summary_router
from util.logging import logger

SERVICE_NAME = "Memory Proxy"


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = getattr(app.state, "services", None)
    if services is None:
        services = build_services()
        app.state.services = services

    if is_heartbeat_enabled():
        services.start()
        logger.info("Background tasks started (staleness sweep, draft inactivity watch)")
    else:
        logger.info("Heartbeat disabled (HEARTBEAT_ENABLED=false). Background tasks not started.")

    try:
        yield
    finally:
        services.stop()


app = FastAPI(
    title="Memory Proxy API",
    version=VERSION,
    description="Record store proxy with draft confirmation and stale-pending eviction",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan,
)

app.include_router(summary_router, prefix="/api/memory/summary", tags=["summary"])


@app.get("/api/health", response_model=HealthResponse)
def health_check_endpoint(services: ProxyServices = Depends(get_services)):
    """Check system health."""
    store_health = services.store.health()
    return HealthResponse(
        status="ok" if store_health else "degraded",
        service=SERVICE_NAME,
        version=VERSION,
        timestamp=datetime.now(),
        store_health=store_health,
        pending_drafts=len(services.drafts),
        heartbeat_status=services.heartbeat.get_status()["status"],
    )


@app.delete("/api/memory/cleanup", response_model=CleanupResponse)
def cleanup_endpoint(dry_run: bool = False, services: ProxyServices = Depends(get_services)):
    """Run one staleness sweep now."""
    report = services.sweeper.sweep(dry_run=dry_run)
    verb = "Would delete" if dry_run else "Deleted"
    return CleanupResponse(
        success=not report.errors,
        message=f"Cleanup completed. {verb} {len(report.evicted_ids)} rows.",
        deleted_ids=report.evicted_ids,
        report=report.to_dict(),
    )


@app.get("/api/memory", response_model=RecordListResponse)
def list_records_endpoint(
    topic: Optional[str] = Query(None, description="Case-insensitive exact topic match"),
    tag: Optional[str] = Query(None, description="Case-insensitive tag substring"),
    since: Optional[str] = Query(None, description="Only records updated on or after this date"),
    q: Optional[str] = Query(None, description="Case-insensitive full-text search"),
    services: ProxyServices = Depends(get_services),
):
    record_filter = RecordFilter.from_params(topic=topic, tag=tag, since=since, q=q)
    records = services.repository.list(record_filter)
    return RecordListResponse(
        data=[RecordResponse.from_record(r) for r in records],
        count=len(records),
    )


@app.post("/api/memory", response_model=RecordMutationResponse)
def create_record_endpoint(request: RecordCreateRequest, services: ProxyServices = Depends(get_services)):
    record = services.repository.create(
        topics=request.topics,
        tags=request.tags,
        key_facts=request.key_facts,
        confirmation_status=request.confirmation_status,
    )
    return RecordMutationResponse(
        success=True,
        message="Row added successfully",
        record=RecordResponse.from_record(record),
    )


@app.put("/api/memory", response_model=RecordMutationResponse)
def update_status_endpoint(request: RecordStatusUpdateRequest, services: ProxyServices = Depends(get_services)):
    if not request.id or not request.confirmation_status:
        raise ValidationError("Missing required fields: ID and ConfirmationStatus")

    record = services.repository.update_status(request.id, request.confirmation_status)
    return RecordMutationResponse(
        success=True,
        message=f"Row updated: ID {record.id}",
        record=RecordResponse.from_record(record),
    )


@app.delete("/api/memory", response_model=RecordDeleteResponse)
def delete_record_endpoint(
    record_id: Optional[int] = Query(None, alias="ID"),
    request: Optional[RecordDeleteRequest] = Body(None),
    services: ProxyServices = Depends(get_services),
):
    """Hard-delete a record by ID (query parameter or JSON body)."""
    if record_id is None and request is not None:
        record_id = request.id
    if not record_id:
        raise ValidationError("Missing required field: ID")

    services.repository.delete(record_id)
    return RecordDeleteResponse(success=True, message=f"Row hard deleted: ID {record_id}")


ERROR_STATUS_CODES = {
    ValidationError: 400,
    NotFound: 404,
    AuthError: 502,
    UpstreamUnavailable: 503,
}


@app.exception_handler(MemoryProxyError)
async def memory_proxy_exception_handler(request, exc):
    """Map core errors to HTTP status codes."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        500,
    )
    if status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}")
    content = {"detail": "Internal server error"}
    if debug_enabled():
        content["debug"] = str(exc)
    return JSONResponse(
        status_code=500,
        content=content,
    )
