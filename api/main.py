"""
SpamShield API — Main Application

POST   /detections/analyze      — Score a submission, persist and act on it
GET    /detections              — List detection records
GET    /detections/stats        — Detection statistics and daily trend
GET    /detections/{id}         — One record plus its activity events
PUT    /detections/{id}/review  — Human review (appends to review history)
DELETE /detections/{id}         — Delete a record
GET    /audit                   — Recent activity-chain entries
GET    /audit/verify            — Verify chain integrity
GET    /health                  — Health check
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from spamshield.config import settings
from spamshield.engine import SpamEngine, build_engine, since_days
from spamshield.errors import ConflictError, DependencyError, NotFound, ValidationError
from spamshield.auth import (
    AUTH_ENABLED,
    is_authorized_moderator,
    moderator_id,
    require_api_key,
)
from spamshield.logging import setup_logging, get_logger
from spamshield.schemas.api import (
    AnalyzeRequest,
    AnalyzeResponse,
    AuditResponse,
    ChainVerification,
    DeleteResponse,
    DetectionDetailResponse,
    DetectionListResponse,
    HealthResponse,
    ReviewRequest,
    ReviewResponse,
    StatisticsResponse,
)

logger = get_logger("api")

_STATUS_PATTERN = "^(CONFIRMED|FALSE_POSITIVE|PENDING)$"


# ============================================================
# STARTUP / SHUTDOWN
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup."""
    setup_logging()
    mode = "enabled" if AUTH_ENABLED else "disabled, dev mode"
    logger.info(f"SpamShield API starting (auth {mode})")
    yield
    logger.info("SpamShield API shutting down")


app = FastAPI(
    title="SpamShield API",
    description="Heuristic spam scoring and detection review for community content",
    version=settings.ENGINE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",")],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["X-API-Key", "Content-Type", "Authorization"],
    allow_credentials=False,
)


# Lazy engine
_engine: Optional[SpamEngine] = None


def get_engine() -> SpamEngine:
    global _engine
    if _engine is None:
        _engine = build_engine(settings)
    return _engine


# ============================================================
# ERROR HANDLERS
# ============================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": "Detection not found"})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "current_revision": exc.actual},
    )


@app.exception_handler(DependencyError)
async def dependency_error_handler(request: Request, exc: DependencyError):
    logger.error(
        "Storage dependency failed",
        extra={"error": str(exc), "path": request.url.path, "method": request.method},
    )
    return JSONResponse(
        status_code=503,
        content={"detail": "Storage temporarily unavailable. No verdict was recorded."},
    )


@app.exception_handler(Exception)
async def global_error_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions — return structured error, don't leak internals."""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra={"error": str(exc), "path": request.url.path, "method": request.method},
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error. No verdict is available."},
    )


# ============================================================
# ROUTES
# ============================================================

@app.post("/detections/analyze", response_model=AnalyzeResponse)
async def analyze_content(
    request: AnalyzeRequest,
    key_id: Optional[str] = Depends(require_api_key),
    engine: SpamEngine = Depends(get_engine),
):
    """Score a submission for spam and recommend a moderation action."""
    return engine.analyze(
        request.content,
        content_type=request.content_type,
        target_id=request.target_id,
        actor_id=request.actor_id,
        workspace_id=request.workspace_id,
        auto_act=request.auto_act,
        authorized=is_authorized_moderator(key_id),
        persist=request.persist,
    )


@app.get("/detections", response_model=DetectionListResponse)
async def list_detections(
    workspace_id: Optional[str] = None,
    status: Optional[str] = Query(None, pattern=_STATUS_PATTERN),
    period: int = Query(7, ge=1, le=365),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    key_id: Optional[str] = Depends(require_api_key),
    engine: SpamEngine = Depends(get_engine),
):
    """List detection records, newest first."""
    page = engine.list_detections(
        workspace_id=workspace_id,
        status=status,
        since=since_days(period),
        limit=limit,
        offset=offset,
    )
    return {
        "records": [r.to_dict() for r in page["records"]],
        "pagination": page["pagination"],
    }


@app.get("/detections/stats", response_model=StatisticsResponse)
async def detection_statistics(
    workspace_id: Optional[str] = None,
    period: int = Query(7, ge=1, le=365),
    key_id: Optional[str] = Depends(require_api_key),
    engine: SpamEngine = Depends(get_engine),
):
    """Totals per status, accuracy, and a per-day trend."""
    return engine.get_statistics(workspace_id=workspace_id, window_days=period)


@app.get("/detections/{detection_id}", response_model=DetectionDetailResponse)
async def get_detection(
    detection_id: str,
    key_id: Optional[str] = Depends(require_api_key),
    engine: SpamEngine = Depends(get_engine),
):
    details = engine.get_detection_details(detection_id)
    return {
        "detection": details["detection"].to_dict(),
        "activity": details["activity"],
    }


@app.put("/detections/{detection_id}/review", response_model=ReviewResponse)
async def review_detection(
    detection_id: str,
    request: ReviewRequest,
    key_id: Optional[str] = Depends(require_api_key),
    engine: SpamEngine = Depends(get_engine),
):
    """Apply a moderator's decision to a detection record."""
    record = engine.review_detection(
        detection_id,
        new_status=request.status,
        reviewer_id=request.reviewer_id or moderator_id(key_id),
        notes=request.review_notes,
        expected_revision=request.expected_revision,
    )
    return {
        "success": True,
        "detection": record.to_dict(),
        "message": f"Detection status updated to {record.status}",
    }


@app.delete("/detections/{detection_id}", response_model=DeleteResponse)
async def delete_detection(
    detection_id: str,
    key_id: Optional[str] = Depends(require_api_key),
    engine: SpamEngine = Depends(get_engine),
):
    engine.delete_detection(detection_id, deleted_by=moderator_id(key_id))
    return {"success": True, "message": "Detection record deleted successfully"}


@app.get("/audit", response_model=AuditResponse)
async def get_audit(
    limit: int = Query(20, ge=1, le=100),
    event_type: Optional[str] = None,
    key_id: Optional[str] = Depends(require_api_key),
    engine: SpamEngine = Depends(get_engine),
):
    """Get recent activity-chain entries."""
    return {
        "entries": engine.audit_chain.get_recent(limit=limit, event_type=event_type),
        "total_count": engine.audit_chain.get_count(),
    }


@app.get("/audit/verify", response_model=ChainVerification)
async def verify_audit(
    limit: int = Query(100, ge=1, le=1000),
    key_id: Optional[str] = Depends(require_api_key),
    engine: SpamEngine = Depends(get_engine),
):
    """Verify integrity of the activity chain."""
    result = engine.audit_chain.verify_chain(limit=limit)
    engine.audit_chain.log(event_type="chain_verified", data=result)
    return result


@app.get("/health", response_model=HealthResponse)
async def health(engine: SpamEngine = Depends(get_engine)):
    """Health check — no auth required."""
    return {
        "status": "operational",
        "version": settings.ENGINE_VERSION,
        "engine_version": settings.ENGINE_VERSION,
        "detections": engine.store.count(),
        "audit_entries": engine.audit_chain.get_count(),
        "auth_enabled": AUTH_ENABLED,
    }


# --- Security + Version Headers Middleware ---
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security and version headers to all responses."""
    response = await call_next(request)
    response.headers["X-SpamShield-Version"] = settings.ENGINE_VERSION
    response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains; preload"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


# --- Request Logging Middleware ---
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with method, path, status, duration."""
    path = request.url.path
    if path == "/health":
        return await call_next(request)

    start = time.time()
    response = await call_next(request)
    duration_ms = round((time.time() - start) * 1000, 1)

    logger.info(
        f"{request.method} {path} → {response.status_code} ({duration_ms}ms)",
        extra={
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=settings.HOST, port=settings.PORT)
