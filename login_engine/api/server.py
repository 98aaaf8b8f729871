"""
FastAPI Server for the Login Management Engine.

Provides REST API endpoints for triggering queue drains, monitoring the
queue and the partner token, and direct partner test calls.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..auth.token_cache import token_preview
from ..config import Settings
from ..engine import EngineComponents, build_components
from ..exceptions import AuthError

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


class ProcessResponse(BaseModel):
    """Outcome of a manual drain."""
    started_at: str
    completed_at: Optional[str]
    total_items: int
    processed: int
    success_count: int
    error_count: int
    interrupted: bool
    failed_item_ids: List[int]


class TokenResponse(BaseModel):
    """Partner token status."""
    success: bool
    token_preview: str
    expires_in_seconds: int
    refresh_count: int
    timestamp: str


class PartnerCallResponse(BaseModel):
    """Result of a direct partner call."""
    success: bool
    external_key: str
    operation: str
    message: str
    password_returned: bool = False


# Global components (initialized on startup)
components: Optional[EngineComponents] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global components

    logger.info("Initializing Login Engine API server components")

    settings = Settings.from_file(os.environ.get("LOGIN_ENGINE_CONFIG"))
    settings.validate_runtime()
    components = build_components(settings)

    if settings.scheduler_enabled:
        components.scheduler.start()

    logger.info("Login Engine API server components initialized")

    yield

    logger.info("Shutting down Login Engine API server")
    components.close()
    components = None


app = FastAPI(
    title="Login Engine API",
    description="Login Management Engine - REST API for partner login queue processing",
    version=VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _require_components() -> EngineComponents:
    if components is None:
        raise HTTPException(status_code=503, detail="Engine components not available")
    return components


def _require_token_cache(engine: EngineComponents):
    if engine.token_cache is None:
        raise HTTPException(status_code=400, detail="Token endpoints are unavailable in mock mode")
    return engine.token_cache


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Login Engine API", "version": VERSION, "status": "running"}


@app.get("/health")
def health_check():
    """
    Health check endpoint.

    Probes the item store and the token exchange; overall status is
    "healthy" only when both answer.
    """
    engine = _require_components()

    try:
        pending = engine.store.count_pending()
        database = "healthy"
    except Exception as e:
        logger.error(f"Health check: store unavailable: {e}")
        pending = None
        database = "unhealthy"

    if engine.token_cache is None:
        api_status = "mock"
        token = {"mock_mode": True}
    else:
        try:
            engine.token_cache.get_valid_token()
            api_status = "healthy"
        except AuthError as e:
            logger.error(f"Health check: token exchange failed: {e}")
            api_status = "unhealthy"
        token = {
            "has_token": engine.token_cache.has_token,
            "expires_in_seconds": engine.token_cache.expires_in_seconds(),
        }

    healthy = database == "healthy" and api_status != "unhealthy"
    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": _now(),
        "components": {
            "api": api_status,
            "database": database,
            "scheduler": engine.scheduler.running,
        },
        "token": token,
        "pending_items": pending,
    }


@app.get("/status")
def get_status():
    """Pending queue size."""
    engine = _require_components()
    return {
        "pending_items": engine.orchestrator.get_pending_count(),
        "processing": engine.orchestrator.is_running,
        "timestamp": _now(),
    }


@app.get("/stats")
def get_system_stats():
    """Get system statistics and the persisted code tables."""
    engine = _require_components()

    try:
        return {
            "timestamp": _now(),
            "pending_items": engine.orchestrator.get_pending_count(),
            "system_status": "running",
            "mock_mode": engine.settings.mock_mode,
            "orchestrator": engine.orchestrator.get_stats(),
            "status_codes": engine.settings.status_codes,
            "type_codes": engine.settings.type_codes,
        }
    except Exception as e:
        logger.error(f"Error getting system stats: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.post("/process", response_model=ProcessResponse)
def process_queue():
    """
    Drain the pending queue now.

    Runs synchronously and returns the counts. Answers 409 when a drain
    (scheduled or manual) is already in progress.
    """
    engine = _require_components()

    result = engine.orchestrator.run()
    if result.skipped:
        raise HTTPException(status_code=409, detail="Processing already in progress")

    return ProcessResponse(
        started_at=result.started_at.isoformat(),
        completed_at=result.completed_at.isoformat() if result.completed_at else None,
        total_items=result.total_items,
        processed=result.processed,
        success_count=result.success_count,
        error_count=result.error_count,
        interrupted=result.interrupted,
        failed_item_ids=result.failed_item_ids,
    )


@app.get("/token/test", response_model=TokenResponse)
def test_token():
    """Obtain a token (cached when still fresh) and show a preview."""
    engine = _require_components()
    token_cache = _require_token_cache(engine)

    try:
        token = token_cache.get_valid_token()
    except AuthError as e:
        logger.error(f"Token test failed: {e}")
        raise HTTPException(status_code=502, detail=str(e)) from e

    return TokenResponse(
        success=True,
        token_preview=token_preview(token),
        expires_in_seconds=token_cache.expires_in_seconds(),
        refresh_count=token_cache.refresh_count,
        timestamp=_now(),
    )


@app.post("/token/refresh", response_model=TokenResponse)
def refresh_token():
    """Discard the cached token and fetch a new one."""
    engine = _require_components()
    token_cache = _require_token_cache(engine)

    token_cache.invalidate()
    try:
        token = token_cache.get_valid_token()
    except AuthError as e:
        logger.error(f"Token refresh failed: {e}")
        raise HTTPException(status_code=502, detail=str(e)) from e

    logger.info("Partner token refreshed on request")
    return TokenResponse(
        success=True,
        token_preview=token_preview(token),
        expires_in_seconds=token_cache.expires_in_seconds(),
        refresh_count=token_cache.refresh_count,
        timestamp=_now(),
    )


@app.post("/users/{external_key}/block", response_model=PartnerCallResponse)
def block_user(external_key: str):
    """Block a partner user directly, bypassing the queue."""
    engine = _require_components()

    result = engine.connector.block_user(external_key)
    if not result.success:
        raise HTTPException(status_code=502, detail=result.message)

    return PartnerCallResponse(
        success=True, external_key=external_key, operation="block", message=result.message
    )


@app.post("/users/{external_key}/unblock", response_model=PartnerCallResponse)
def unblock_user(external_key: str):
    """Unblock a partner user directly, bypassing the queue. The password is not echoed."""
    engine = _require_components()

    result = engine.connector.unblock_user(external_key)
    if not result.success:
        raise HTTPException(status_code=502, detail=result.message)

    return PartnerCallResponse(
        success=True,
        external_key=external_key,
        operation="unblock",
        message=result.message,
        password_returned=bool(result.data),
    )


@app.get("/audit")
def get_audit_logs(
    item_id: Optional[int] = Query(None, description="Filter by item ID"),
    limit: int = Query(100, description="Maximum number of results")
):
    """Get recent audit records, newest first."""
    engine = _require_components()
    return [record.model_dump(mode="json") for record in engine.audit_logger.get_events(item_id=item_id, limit=limit)]


def start_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str = "info"):
    """Start the FastAPI server."""
    uvicorn.run(
        "login_engine.api.server:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level
    )


if __name__ == "__main__":
    start_server()
