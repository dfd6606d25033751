"""
FastAPI application exposing the monitoring services.

Routes:
- /api/scheduler                 scheduler status and control
- /api/admin/cleanup-duplicates  run the duplicate collapse engine
- /api/articles                  ingestion and paginated listing
- /api/admin/logs                monitoring log, newest first
- /api/sources, /api/admin/sources[/{id}]
- /api/timeline
- /api/stats
- /api/monitor/{name}            monitor status (GET), run one pipeline (POST, job target)
- /api/analytics/*               activity rollups (job targets)
"""

import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from .errors import MissingFieldsError, MonitorError, NotFoundError, ValidationError
from .ingestion import IngestionService
from .models import (
    ArticleCandidate,
    ContentStatus,
    SourceCandidate,
    SourceType,
    SourceUpdate,
    TimelineCandidate,
    utcnow,
)
from .plugin_loader import refresh_registry
from .scheduler import MonitoringScheduler
from .services import Services, build_services


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_services(request: Request) -> Services:
    return request.app.state.services


def get_scheduler(services: Services = Depends(get_services)) -> MonitoringScheduler:
    return services.scheduler


def get_ingestion(services: Services = Depends(get_services)) -> IngestionService:
    return services.ingestion


def _require(payload: Dict[str, Any], *fields: str) -> None:
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise MissingFieldsError(missing)


# ============================================================================
# SCHEDULER
# ============================================================================

@router.get("/scheduler")
async def scheduler_status(scheduler: MonitoringScheduler = Depends(get_scheduler)) -> Dict[str, Any]:
    active = scheduler.list_active()
    return {
        "success": True,
        "activeJobs": active,
        "isInitialized": scheduler.is_initialized,
        "nextRuns": scheduler.next_runs(),
        "message": "Scheduler is running" if scheduler.is_initialized else "Scheduler is not initialized",
    }


@router.post("/scheduler")
async def scheduler_control(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    scheduler: MonitoringScheduler = Depends(get_scheduler),
) -> Dict[str, Any]:
    action = (payload or {}).get("action")
    if action == "initialize":
        active = await scheduler.initialize()
        return {"success": True, "message": "Scheduler initialized successfully", "activeJobs": active}
    if action == "stop":
        scheduler.stop_all()
        return {"success": True, "message": "All scheduled jobs stopped", "activeJobs": []}
    raise ValidationError('Invalid action. Use "initialize" or "stop"', ["action"])


# ============================================================================
# DUPLICATE CLEANUP
# ============================================================================

@router.post("/admin/cleanup-duplicates")
async def cleanup_duplicates(services: Services = Depends(get_services)) -> Any:
    try:
        result = await services.collapse.run()
    except Exception as e:
        logger.error(f"Duplicate cleanup failed: {e}")
        return JSONResponse(status_code=500, content={"error": "Duplicate cleanup failed", "details": str(e)})

    return {
        "success": True,
        **result.to_json(),
        "message": f"Successfully removed {result.total_removed} duplicate articles",
    }


# ============================================================================
# ARTICLES
# ============================================================================

@router.post("/articles")
async def create_article(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    ingestion: IngestionService = Depends(get_ingestion),
) -> Dict[str, Any]:
    candidate = ArticleCandidate.model_validate(payload or {})
    item = await ingestion.ingest(candidate)
    return item.to_json()


@router.get("/articles")
async def list_articles(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    type: Optional[SourceType] = None,
    status: Optional[ContentStatus] = None,
    search: Optional[str] = None,
    source_id: Optional[str] = Query(None, alias="sourceId"),
    source_name: Optional[str] = Query(None, alias="sourceName"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    items, total = await services.store.list_articles(
        page=page,
        limit=limit,
        source_type=type,
        status=status,
        search=search,
        source_id=source_id,
        source_name=source_name,
    )
    return {
        "articles": [item.to_json() for item in items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit),
        },
    }


# ============================================================================
# MONITORING LOG
# ============================================================================

@router.get("/admin/logs")
async def list_logs(
    limit: int = Query(50, ge=1, le=500),
    source_type: Optional[SourceType] = Query(None, alias="sourceType"),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    entries = await services.store.list_logs(limit=limit, source_type=source_type)
    return [entry.to_json() for entry in entries]


# ============================================================================
# SOURCES
# ============================================================================

@router.get("/sources")
async def list_sources(
    type: Optional[SourceType] = None,
    active: Optional[bool] = None,
    with_counts: bool = Query(False, alias="withCounts"),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    sources = await services.store.list_sources(source_type=type, active=active, with_counts=with_counts)
    return [source.to_json() for source in sources]


@router.get("/admin/sources")
async def admin_list_sources(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    sources = await services.store.list_sources(with_counts=True)
    return [source.to_json() for source in sources]


@router.post("/admin/sources")
async def create_source(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    payload = payload or {}
    _require(payload, "name", "type", "url")
    candidate = SourceCandidate.model_validate(payload)
    if await services.store.get_source_by_url(candidate.url):
        raise ValidationError(f"A source with url {candidate.url} already exists", ["url"])

    source = await services.store.create_source(
        candidate.name, candidate.type, candidate.url, candidate.description
    )
    return source.to_json()


@router.patch("/admin/sources/{source_id}")
async def update_source(
    source_id: str,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    update = SourceUpdate.model_validate(payload or {})
    blank = [f for f in ("name", "url") if (payload or {}).get(f) == ""]
    if blank:
        raise ValidationError(f"Fields cannot be empty: {', '.join(blank)}", blank)

    store = services.store
    if await store.get_source(source_id) is None:
        raise NotFoundError(f"Source not found: {source_id}")
    if update.url is not None:
        existing = await store.get_source_by_url(update.url)
        if existing is not None and existing.id != source_id:
            raise ValidationError(f"A source with url {update.url} already exists", ["url"])

    source = await store.update_source(
        source_id,
        name=update.name,
        source_type=update.type,
        url=update.url,
        description=update.description,
        is_active=update.is_active,
    )
    return source.to_json()


@router.delete("/admin/sources/{source_id}")
async def delete_source(
    source_id: str,
    cascade: bool = False,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    removed = await services.store.delete_source(source_id, cascade=cascade)
    if removed is None:
        raise NotFoundError(f"Source not found: {source_id}")
    return {"success": True, "id": source_id, "deleted": removed}


# ============================================================================
# TIMELINE
# ============================================================================

@router.get("/timeline")
async def list_timeline(
    limit: int = Query(50, ge=1, le=500),
    type: Optional[str] = None,
    source_id: Optional[str] = Query(None, alias="sourceId"),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    events = await services.store.list_timeline_events(limit=limit, event_type=type, source_id=source_id)
    return [event.to_json() for event in events]


@router.post("/timeline")
async def create_timeline_event(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    payload = payload or {}
    _require(payload, "articleId", "eventType", "eventDate", "title")
    candidate = TimelineCandidate.model_validate(payload)
    if await services.store.get_article(candidate.article_id) is None:
        raise NotFoundError(f"Article not found: {candidate.article_id}")

    event = await services.store.create_timeline_event(
        candidate.article_id,
        candidate.event_type,
        candidate.event_date,
        candidate.title,
        description=candidate.description,
        importance=candidate.importance or 1,
    )
    return event.to_json()


# ============================================================================
# STATS
# ============================================================================

@router.get("/stats")
async def stats(services: Services = Depends(get_services)) -> Dict[str, int]:
    tz = ZoneInfo(services.scheduler.timezone)
    start_of_day = datetime.now(tz).replace(hour=0, minute=0, second=0, microsecond=0)
    store = services.store
    return {
        "totalArticles": await store.count_articles(),
        "todayArticles": await store.count_articles(created_since=start_of_day),
        "activeSources": await store.count_active_sources(),
        "pendingAnalysis": await store.count_articles(status=ContentStatus.PENDING),
    }


# ============================================================================
# JOB TARGETS
# ============================================================================

@router.get("/monitor/{name}")
async def monitor_status(name: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    source_type = services.monitors.source_type(name)
    store = services.store
    by_status = await store.article_status_counts(source_type, utcnow() - timedelta(hours=24))
    sources = await store.list_sources(source_type=source_type, active=True)
    last_update = await store.latest_article_created_at(source_type)
    return {
        "success": True,
        "monitor": name,
        "sourceType": source_type.value,
        "last24Hours": {"byStatus": by_status, "total": sum(by_status.values())},
        "activeSources": [{"id": s.id, "name": s.name, "url": s.url} for s in sources],
        "lastUpdate": last_update.isoformat() if last_update else None,
    }


@router.post("/monitor/{name}")
async def run_monitor(name: str, services: Services = Depends(get_services)) -> Any:
    try:
        return await services.monitors.run(name)
    except MonitorError:
        raise
    except Exception as e:
        return JSONResponse(
            status_code=500,
            content={"error": f"{name} monitoring failed", "details": str(e)},
        )


@router.post("/analytics/daily-summary")
async def daily_summary(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.analytics.daily_summary()


@router.post("/analytics/weekly-trends")
async def weekly_trends(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.analytics.weekly_trends()


# ============================================================================
# APPLICATION
# ============================================================================

def create_app(services: Optional[Services] = None) -> FastAPI:
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        refresh_registry()
        await services.start()
        try:
            yield
        finally:
            await services.stop()

    app = FastAPI(title="Conflict Monitor", version="1.0.0", lifespan=lifespan)
    app.state.services = services
    app.include_router(router)

    @app.get("/healthz")
    async def healthz() -> Dict[str, Any]:
        return {"status": "ok", "schedulerInitialized": services.scheduler.is_initialized}

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc), "fields": exc.fields})

    @app.exception_handler(PydanticValidationError)
    async def model_error_handler(request: Request, exc: PydanticValidationError) -> JSONResponse:
        fields = [".".join(str(p) for p in err["loc"]) for err in exc.errors()]
        return JSONResponse(status_code=400, content={"error": "Invalid request body", "fields": fields})

    @app.exception_handler(RequestValidationError)
    async def request_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [str(err["loc"][-1]) for err in exc.errors() if err.get("loc")]
        return JSONResponse(status_code=400, content={"error": "Invalid request", "fields": fields})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(MonitorError)
    async def monitor_error_handler(request: Request, exc: MonitorError) -> JSONResponse:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=500, content={"error": "Operation failed", "details": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})

    return app
