"""
Health Routes
=============

FastAPI routes for health check endpoints.
"""

from typing import Dict

import psutil
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from screenshot_service.api.dependencies import get_app_settings, get_pipeline
from screenshot_service.config.settings import Settings
from screenshot_service.core.rendering.pipeline import RenderPipeline
from screenshot_service.models.schemas import HealthStatus

router = APIRouter(tags=["Health"])


def process_memory() -> Dict[str, float]:
    """Resident and virtual memory of this process in MB."""
    process = psutil.Process()
    info = process.memory_info()
    return {
        "rss_mb": round(info.rss / 1024 / 1024, 2),
        "vms_mb": round(info.vms / 1024 / 1024, 2),
        "percent": round(process.memory_percent(), 2),
    }


@router.get("/health", response_model=HealthStatus)
async def health_check(
    settings: Settings = Depends(get_app_settings),
    pipeline: RenderPipeline = Depends(get_pipeline),
) -> JSONResponse:
    """
    Report service health.

    Returns 200 while the browser is connected and 503 otherwise.
    """
    manager = pipeline.browser_manager
    connected = manager.is_connected
    health = HealthStatus(
        status="ok" if connected else "degraded",
        service=settings.app_name,
        version=settings.app_version,
        uptime=round(pipeline.stats.uptime_seconds, 1),
        browser="connected" if connected else "disconnected",
        performance={
            "activePagesCount": pipeline.admission.active,
            "requestsSinceRestart": manager.total_requests_served,
            **pipeline.stats.snapshot(),
        },
        memory=process_memory(),
    )
    return JSONResponse(
        status_code=200 if connected else 503, content=health.model_dump(mode="json")
    )
