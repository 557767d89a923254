"""
TopoTable - Health and Info Routes
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Request

from core.config import Settings
from core.engine.datasource import Datasource

router = APIRouter(tags=["system"])


@router.get("/health")
async def health_check(request: Request, probe: bool = False):
    """
    Datasource health check ("Save & test").
    probe=true also GETs the upstream base URL; otherwise only configuration is checked.
    """
    config: Settings = request.app.state.config
    datasource: Datasource = request.app.state.datasource
    uptime = (datetime.now(timezone.utc) - request.app.state.start_time).total_seconds()

    result = await datasource.check_health(probe=probe)
    return {
        "status": result.status,
        "message": result.message,
        "app": config.app.name,
        "version": config.app.version,
        "uptime_seconds": round(uptime, 1),
    }


@router.get("/api/info")
async def api_info(request: Request):
    """Service, upstream and engine settings in effect"""
    config: Settings = request.app.state.config
    datasource: Datasource = request.app.state.datasource
    return {
        "app": config.app.name,
        "version": config.app.version,
        "description": config.app.description,
        "upstream": {
            "base_url": datasource.fetcher.base_url,
            "fetcher": config.datasource.fetcher,
            "auth_type": config.datasource.auth_type,
        },
        "engine": {
            "timeout_seconds": datasource.config.timeout_seconds,
            "workers": datasource.pipeline.workers,
            "strict_conversion": datasource.pipeline.strict,
            "converters": datasource.pipeline.registry.names(),
        },
        "endpoints": {
            "health": "/health",
            "info": "/api/info",
            "docs": "/docs",
            "query": "/api/ds/query",
            "extract": "/api/extract",
            "default_query": "/api/query/default",
            "options": "/api/options",
        }
    }
