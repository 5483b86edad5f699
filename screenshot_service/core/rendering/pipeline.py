"""
Render Pipeline
===============

Orchestrates one screenshot request end to end: admission, browser
acquisition, mode classification, content injection, readiness wait, smart
crop and capture. The session is always closed and the admission slot
always released, whatever the outcome.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional
import asyncio
import time

from screenshot_service.config.logging import get_logger
from screenshot_service.config.settings import Settings
from screenshot_service.core.errors import CaptureFailure, RenderTimeout, ScreenshotServiceError
from screenshot_service.core.rendering.admission import AdmissionController
from screenshot_service.core.rendering.browser_manager import BrowserManager
from screenshot_service.core.rendering.html_preprocessor import HTMLPreprocessor
from screenshot_service.core.rendering.image_encoder import image_size
from screenshot_service.core.rendering.modes import RenderModeSelector, estimate_resources
from screenshot_service.core.rendering.readiness import ContentReadinessWaiter
from screenshot_service.core.rendering.smart_crop import SmartCropEngine
from screenshot_service.models.schemas import (
    CaptureResult,
    ContentBounds,
    ReadinessOutcome,
    RenderMode,
    RenderRequest,
    WaitPolicy,
)

logger = get_logger(__name__)


@dataclass
class RenderStats:
    """Running request counters read by the statistics endpoints."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    total_processing_time_ms: float = 0.0
    min_processing_time_ms: Optional[float] = None
    max_processing_time_ms: float = 0.0
    last_processing_time_ms: float = 0.0
    mode_counts: Dict[str, int] = field(default_factory=lambda: {m.value: 0 for m in RenderMode})
    started_at: float = field(default_factory=time.time)

    def _record(self, duration_ms: float) -> None:
        self.total_requests += 1
        self.total_processing_time_ms += duration_ms
        self.last_processing_time_ms = duration_ms
        self.max_processing_time_ms = max(self.max_processing_time_ms, duration_ms)
        if self.min_processing_time_ms is None or duration_ms < self.min_processing_time_ms:
            self.min_processing_time_ms = duration_ms

    def record_success(self, duration_ms: float, mode: RenderMode) -> None:
        self._record(duration_ms)
        self.successful_requests += 1
        self.mode_counts[mode.value] += 1

    def record_failure(self, duration_ms: float, rejected: bool = False) -> None:
        self._record(duration_ms)
        self.failed_requests += 1
        if rejected:
            self.rejected_requests += 1

    @property
    def average_processing_time_ms(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_processing_time_ms / self.total_requests

    @property
    def uptime_seconds(self) -> float:
        return time.time() - self.started_at

    def snapshot(self) -> Dict[str, Any]:
        return {
            "totalRequests": self.total_requests,
            "successfulRequests": self.successful_requests,
            "failedRequests": self.failed_requests,
            "rejectedRequests": self.rejected_requests,
            "averageProcessingTime": round(self.average_processing_time_ms, 2),
            "totalProcessingTime": round(self.total_processing_time_ms, 2),
            "minProcessingTime": (
                round(self.min_processing_time_ms, 2) if self.min_processing_time_ms else 0.0
            ),
            "maxProcessingTime": round(self.max_processing_time_ms, 2),
            "lastProcessingTime": round(self.last_processing_time_ms, 2),
            "modes": dict(self.mode_counts),
            "uptime": round(self.uptime_seconds, 1),
        }


class RenderPipeline:
    """Turns validated render requests into encoded screenshots."""

    def __init__(
        self,
        settings: Settings,
        browser_manager: BrowserManager,
        admission: Optional[AdmissionController] = None,
        selector: Optional[RenderModeSelector] = None,
        waiter: Optional[ContentReadinessWaiter] = None,
        cropper: Optional[SmartCropEngine] = None,
        preprocessor: Optional[HTMLPreprocessor] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings
        self.browser_manager = browser_manager
        self.admission = admission or AdmissionController(settings.max_concurrent_pages)
        self.selector = selector or RenderModeSelector(settings)
        self.waiter = waiter or ContentReadinessWaiter(settings.readiness_poll_interval_ms)
        self.cropper = cropper or SmartCropEngine(settings.crop_config())
        self.preprocessor = preprocessor or HTMLPreprocessor()
        self.stats = RenderStats()
        self._sleep = sleep
        self.logger: Any = logger.bind(component="render_pipeline")

    async def render(self, request: RenderRequest) -> CaptureResult:
        """
        Render ``request`` to an image.

        Raises:
            AdmissionRejected: If the concurrency limit is reached
            EngineUnavailable: If no browser could be launched
            CaptureFailure: If the final capture failed
            ScreenshotServiceError: For any other render failure
        """
        start = time.perf_counter()
        try:
            async with self.admission.slot() as active:
                self.logger.info(
                    "Screenshot requested",
                    width=request.width,
                    height=request.height,
                    format=request.format.value,
                    active=active,
                    max_concurrent=self.admission.limit,
                )
                result = await self._render_admitted(request, active, start)
        except ScreenshotServiceError as e:
            duration_ms = self._elapsed_ms(start)
            self.stats.record_failure(duration_ms, rejected=e.status_code == 429)
            if e.status_code != 429:
                self.logger.error(
                    "Screenshot failed", duration_ms=round(duration_ms), error=str(e)
                )
            raise
        except Exception as e:
            duration_ms = self._elapsed_ms(start)
            self.stats.record_failure(duration_ms)
            self.logger.error("Screenshot failed", duration_ms=round(duration_ms), error=str(e))
            raise ScreenshotServiceError(str(e)) from e

        self.stats.record_success(result.duration_ms, result.mode)
        self.logger.info(
            "Screenshot completed",
            duration_ms=round(result.duration_ms),
            size_kb=round(result.file_size / 1024, 1),
            mode=result.mode.value,
            total=self.stats.successful_requests,
        )
        return result

    async def _render_admitted(
        self, request: RenderRequest, active: int, start: float
    ) -> CaptureResult:
        engine = await self.browser_manager.ensure_ready()

        mode = self.selector.classify(request.html_content)
        policy = self.selector.policy_for(mode)
        viewport = request.viewport
        self.logger.debug(
            "Render mode selected",
            mode=mode.value,
            resources=estimate_resources(request.html_content).total,
        )

        session = None
        try:
            session = await engine.new_session(viewport)
            session.set_timeouts(request.timeout_ms, self.settings.navigation_timeout_ms)
            if request.enable_resource_blocking:
                await session.block_resources(self.settings.blocked_resource_types)

            html = self.preprocessor.process(request.html_content, request.background_color)
            await self._load_content(session, html, policy, active)

            readiness = await self._await_content(session, mode, policy, request, start)

            bounds = ContentBounds.full(viewport)
            if self._should_crop(request, mode):
                bounds = await self._crop(session, request, start) or bounds

            image = await session.capture(bounds, request.format, request.quality)
        finally:
            if session is not None:
                await self._close_session(session)

        if not image:
            raise CaptureFailure("Screenshot produced no image data")
        width, height = image_size(image)
        self.browser_manager.record_served()

        return CaptureResult(
            image_data=image,
            format=request.format,
            width=width,
            height=height,
            file_size=len(image),
            duration_ms=self._elapsed_ms(start),
            mode=mode,
            bounds=bounds,
            readiness=readiness,
        )

    async def _load_content(self, session: Any, html: str, policy: WaitPolicy, active: int) -> None:
        timeout_ms = policy.content_timeout_ms
        if active >= self.settings.busy_wait_threshold:
            timeout_ms += active * self.settings.busy_wait_per_page_ms
        try:
            await session.set_content(html, policy.wait_until, timeout_ms)
        except RenderTimeout as e:
            self.logger.warning("Content load timed out, capturing anyway", error=str(e))

    async def _await_content(
        self,
        session: Any,
        mode: RenderMode,
        policy: WaitPolicy,
        request: RenderRequest,
        start: float,
    ) -> Optional[ReadinessOutcome]:
        budget_ms = min(policy.image_timeout_ms, self._remaining_ms(request, start))
        try:
            if mode is RenderMode.ULTRAFAST:
                outcome = await self.waiter.inspect(session, policy, budget_ms)
                if outcome.images_total == 0 and outcome.background_images_total == 0:
                    await self._sleep(policy.settle_base_ms / 1000)
                    return outcome
                # fonts were already awaited; the image wait gets what is left
                return await self.waiter.await_ready(
                    session,
                    policy,
                    max(0.0, budget_ms - outcome.elapsed_ms),
                    fonts_ready=not outcome.fonts_timed_out,
                )
            return await self.waiter.await_ready(session, policy, budget_ms)
        except ScreenshotServiceError:
            raise
        except Exception as e:
            self.logger.warning("Readiness wait failed, capturing anyway", error=str(e))
            return None

    def _should_crop(self, request: RenderRequest, mode: RenderMode) -> bool:
        if not self.settings.smart_crop_enabled or request.smart_crop is False:
            return False
        # an explicit request overrides the mode's latency shortcut
        if request.smart_crop is True:
            return True
        return not self.selector.skips_smart_crop(mode)

    async def _crop(
        self, session: Any, request: RenderRequest, start: float
    ) -> Optional[ContentBounds]:
        remaining_s = self._remaining_ms(request, start) / 1000
        if remaining_s <= 0:
            self.logger.warning("No time left for smart crop, using full viewport")
            return None
        try:
            return await asyncio.wait_for(
                self.cropper.compute_bounds(session, request.viewport), timeout=remaining_s
            )
        except asyncio.TimeoutError:
            self.logger.warning("Smart crop timed out, using full viewport")
        except Exception as e:
            self.logger.warning("Smart crop failed, using full viewport", error=str(e))
        return None

    async def _close_session(self, session: Any) -> None:
        try:
            await session.close()
        except Exception as e:
            self.logger.warning("Failed to close render session", error=str(e))

    def _remaining_ms(self, request: RenderRequest, start: float) -> float:
        return max(0.0, request.timeout_ms - self._elapsed_ms(start))

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000
