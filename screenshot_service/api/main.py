"""
FastAPI Application
==================

Application factory for the screenshot service. The lifespan handler owns
the browser manager and the render pipeline; exception handlers translate
pipeline errors into the service's JSON error shape.
"""

from contextlib import asynccontextmanager
import time
import uuid
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from screenshot_service.api.rate_limit import FixedWindowRateLimiter
from screenshot_service.api.routes.health import router as health_router
from screenshot_service.api.routes.screenshot import router as screenshot_router
from screenshot_service.api.routes.status import router as status_router
from screenshot_service.config.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)
from screenshot_service.config.settings import Settings, get_settings
from screenshot_service.core.errors import (
    AdmissionRejected,
    EngineUnavailable,
    RequestValidationFailed,
    ScreenshotServiceError,
)
from screenshot_service.core.rendering.browser_manager import BrowserManager, Launcher
from screenshot_service.core.rendering.pipeline import RenderPipeline
from screenshot_service.models.schemas import ErrorResponse

logger = get_logger(__name__)


def _duration(request: Request) -> Optional[str]:
    started = getattr(request.state, "start_time", None)
    if started is None:
        return None
    return f"{round((time.perf_counter() - started) * 1000)}ms"


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: Optional[str] = None,
    details: Any = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        details=details,
        duration=_duration(request),
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


def _field_name(loc: tuple) -> str:
    parts = [str(part) for part in loc if part != "body"]
    return ".".join(parts) or "body"


def register_exception_handlers(app: FastAPI) -> None:
    """Map pipeline and framework errors to JSON error bodies."""

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [f"{_field_name(tuple(err.get('loc', ())))}: {err.get('msg')}" for err in exc.errors()]
        pipeline = getattr(request.app.state, "pipeline", None)
        if pipeline is not None:
            pipeline.stats.record_failure(0.0)
        logger.warning("Parameter validation failed", errors=errors)
        return _error_response(
            request, 400, "Invalid parameters", message="; ".join(errors), details=errors
        )

    @app.exception_handler(RequestValidationFailed)
    async def validation_failed_handler(request: Request, exc: RequestValidationFailed) -> JSONResponse:
        logger.warning("Parameter validation failed", errors=exc.errors)
        return _error_response(
            request, 400, exc.error, message="; ".join(exc.errors), details=exc.errors
        )

    @app.exception_handler(AdmissionRejected)
    async def admission_rejected_handler(request: Request, exc: AdmissionRejected) -> JSONResponse:
        return _error_response(
            request,
            429,
            exc.error,
            message=str(exc),
            details={"activePagesCount": exc.active, "maxConcurrentPages": exc.limit},
        )

    @app.exception_handler(EngineUnavailable)
    async def engine_unavailable_handler(request: Request, exc: EngineUnavailable) -> JSONResponse:
        return _error_response(request, 500, "Screenshot generation failed", message=str(exc))

    @app.exception_handler(ScreenshotServiceError)
    async def screenshot_error_handler(request: Request, exc: ScreenshotServiceError) -> JSONResponse:
        return _error_response(request, exc.status_code, exc.error, message=str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404 and exc.detail == "Not Found":
            return _error_response(
                request, 404, "Not Found", message="The requested endpoint does not exist"
            )
        if isinstance(exc.detail, dict):
            error = str(exc.detail.get("error", "Request failed"))
            message = exc.detail.get("message")
        else:
            error, message = str(exc.detail), None
        return _error_response(
            request, exc.status_code, error, message=message, headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        settings: Settings = request.app.state.settings
        logger.error("Unhandled exception", exception=str(exc), exc_info=True)
        message = "Something went wrong" if settings.environment == "production" else str(exc)
        return _error_response(request, 500, "Internal Server Error", message=message)


def create_app(settings: Optional[Settings] = None, launcher: Optional[Launcher] = None) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Settings to use, defaults to the process-wide instance
        launcher: Browser launcher override, used by tests

    Returns:
        FastAPI application instance
    """
    settings = settings or get_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting screenshot service", environment=settings.environment)
        browser_manager = BrowserManager(settings, launcher=launcher)
        try:
            await browser_manager.start()
        except EngineUnavailable as e:
            logger.error("Browser initialization failed", error=str(e))
            raise RuntimeError(f"Browser initialization failed: {e}") from e

        app.state.browser_manager = browser_manager
        app.state.pipeline = RenderPipeline(settings, browser_manager)
        logger.info(
            "Screenshot service ready",
            host=settings.host,
            port=settings.port,
            max_concurrent_pages=settings.max_concurrent_pages,
        )
        try:
            yield
        finally:
            logger.info("Shutting down screenshot service")
            try:
                await browser_manager.close()
            except Exception as e:
                logger.error("Error closing browser", error=str(e))
            app.state.pipeline = None
            app.state.browser_manager = None
            logger.info("Shutdown complete")

    app = FastAPI(
        title="Screenshot Service",
        description="Render HTML markup to PNG, JPEG or WebP images",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.pipeline = None
    app.state.browser_manager = None
    app.state.rate_limiter = (
        FixedWindowRateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_seconds)
        if settings.rate_limit_enabled
        else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_context(request: Request, call_next):  # type: ignore[no-untyped-def]
        """Attach a request ID and start time to every request."""
        request.state.request_id = str(uuid.uuid4())
        request.state.start_time = time.perf_counter()
        bind_request_context(request.state.request_id, path=request.url.path)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request.state.request_id
            if settings.log_performance:
                logger.info(
                    "Request handled",
                    method=request.method,
                    status=response.status_code,
                    duration=_duration(request),
                )
            return response
        finally:
            clear_request_context()

    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(screenshot_router)
    app.include_router(status_router)
    return app


def run_server() -> None:
    """Run the service with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "screenshot_service.api.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=settings.log_performance,
    )


if __name__ == "__main__":
    run_server()
