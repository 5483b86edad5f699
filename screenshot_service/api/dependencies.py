"""
Request Dependencies
====================

FastAPI dependencies resolving the per-application service objects stored
on ``app.state`` by the lifespan handler.
"""

from fastapi import HTTPException, Request

from screenshot_service.config.settings import Settings
from screenshot_service.core.rendering.browser_manager import BrowserManager
from screenshot_service.core.rendering.pipeline import RenderPipeline


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_pipeline(request: Request) -> RenderPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Render pipeline not initialized")
    return pipeline


def get_browser_manager(request: Request) -> BrowserManager:
    manager = getattr(request.app.state, "browser_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Browser manager not initialized")
    return manager


async def enforce_body_limit(request: Request) -> None:
    """
    Reject bodies larger than the configured limit.

    A declared ``Content-Length`` over the limit is rejected up front. Bodies
    without one (chunked uploads) are measured after they have been read, so
    they are buffered in full before the check.
    """
    settings = get_app_settings(request)
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit():
        too_large = int(content_length) > settings.max_body_bytes
    else:
        too_large = len(await request.body()) > settings.max_body_bytes
    if too_large:
        raise HTTPException(
            status_code=413,
            detail={
                "error": "Payload too large",
                "message": f"Request body exceeds {settings.max_body_bytes} bytes",
            },
        )
