"""
Status Routes
=============

FastAPI routes for service statistics and public configuration.
"""

from fastapi import APIRouter, Depends

from screenshot_service.api.auth import validate_api_key
from screenshot_service.api.dependencies import get_app_settings, get_pipeline
from screenshot_service.api.routes.health import process_memory
from screenshot_service.config.settings import Settings
from screenshot_service.core.rendering.pipeline import RenderPipeline
from screenshot_service.models.schemas import InfoResponse, StatsResponse

router = APIRouter(tags=["Status"], dependencies=[Depends(validate_api_key)])


@router.get("/stats", response_model=StatsResponse)
async def stats(
    settings: Settings = Depends(get_app_settings),
    pipeline: RenderPipeline = Depends(get_pipeline),
) -> StatsResponse:
    """Running request counters, browser state and effective wait configuration."""
    admission = pipeline.admission
    return StatsResponse(
        service=settings.app_name,
        version=settings.app_version,
        performance={
            **pipeline.stats.snapshot(),
            "activePagesCount": admission.active,
            "maxObservedConcurrency": admission.max_observed,
        },
        browser=pipeline.browser_manager.snapshot(),
        memory=process_memory(),
        config={
            "maxConcurrentPages": admission.limit,
            "waitPolicies": {
                name: policy.model_dump(mode="json")
                for name, policy in settings.wait_policies().items()
            },
            "smartCrop": settings.crop_config().model_dump(),
            "resourceBlocking": settings.enable_resource_blocking,
            "restartThreshold": settings.restart_threshold,
            "healthCheckInterval": settings.health_check_interval_seconds,
        },
    )


@router.get("/info", response_model=InfoResponse)
async def info(settings: Settings = Depends(get_app_settings)) -> InfoResponse:
    """Public limits of the service."""
    return InfoResponse(
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        config={
            "maxWidth": settings.max_width,
            "maxHeight": settings.max_height,
            "supportedFormats": list(settings.supported_formats),
            "defaultTimeout": settings.default_timeout_ms,
            "maxConcurrentPages": settings.max_concurrent_pages,
        },
    )
