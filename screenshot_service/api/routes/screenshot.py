"""
Screenshot Routes
=================

FastAPI route turning HTML payloads into encoded images.
"""

from fastapi import APIRouter, Depends, Response

from screenshot_service.api.auth import validate_api_key
from screenshot_service.api.dependencies import (
    enforce_body_limit,
    get_app_settings,
    get_pipeline,
)
from screenshot_service.api.rate_limit import screenshot_rate_limit
from screenshot_service.config.settings import Settings
from screenshot_service.core.errors import RequestValidationFailed
from screenshot_service.core.rendering.pipeline import RenderPipeline
from screenshot_service.models.schemas import ScreenshotRequest

router = APIRouter(tags=["Screenshot"])


@router.post(
    "/screenshot",
    dependencies=[
        Depends(enforce_body_limit),
        Depends(validate_api_key),
        Depends(screenshot_rate_limit),
    ],
    responses={
        200: {"content": {"image/png": {}, "image/jpeg": {}, "image/webp": {}}},
        400: {"description": "Invalid parameters"},
        429: {"description": "Service busy or rate limited"},
        500: {"description": "Screenshot generation failed"},
    },
)
async def take_screenshot(
    payload: ScreenshotRequest,
    settings: Settings = Depends(get_app_settings),
    pipeline: RenderPipeline = Depends(get_pipeline),
) -> Response:
    """Render ``htmlContent`` and return the image bytes."""
    try:
        render_request = payload.to_render_request(settings)
    except RequestValidationFailed:
        pipeline.stats.record_failure(0.0)
        raise

    result = await pipeline.render(render_request)

    return Response(
        content=result.image_data,
        media_type=result.media_type,
        headers={
            "X-Processing-Time": f"{round(result.duration_ms)}ms",
            "X-Total-Processed": str(pipeline.stats.successful_requests),
            "X-Render-Mode": result.mode.value,
            "X-Image-Width": str(result.width),
            "X-Image-Height": str(result.height),
        },
    )
