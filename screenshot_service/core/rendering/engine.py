"""
Browser Engine
==============

Playwright adapter for the rendering engine. ``PlaywrightEngine`` wraps one
Chromium process; each ``PlaywrightSession`` is an isolated browser context
with a single page, bound to exactly one render request.
"""

from typing import Any, Iterable, Optional
import asyncio

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Route,
    TimeoutError as PlaywrightTimeoutError,
)

from screenshot_service.config.logging import get_logger
from screenshot_service.config.settings import Settings
from screenshot_service.core.errors import CaptureFailure, EngineUnavailable, RenderTimeout
from screenshot_service.core.rendering.image_encoder import transcode
from screenshot_service.models.schemas import ContentBounds, ImageFormat, Viewport

logger = get_logger(__name__)


class PlaywrightSession:
    """One browser tab used to load and capture a single request's content."""

    def __init__(self, context: BrowserContext, page: Page):
        self.context = context
        self.page = page
        self.logger: Any = logger.bind(component="render_session")
        self._closed = False

        self.page.on("pageerror", self._on_page_error)
        self.page.on("requestfailed", self._on_request_failed)

    def _on_page_error(self, error: Any) -> None:
        self.logger.debug("Page script error ignored", error=str(error))

    def _on_request_failed(self, request: Any) -> None:
        self.logger.debug("Subresource failed to load", url=request.url)

    async def set_viewport(self, viewport: Viewport) -> None:
        """Resize the page to ``viewport``; the scale factor is fixed by the context."""
        await self.page.set_viewport_size({"width": viewport.width, "height": viewport.height})

    def set_timeouts(self, timeout_ms: int, navigation_timeout_ms: int) -> None:
        self.page.set_default_timeout(timeout_ms)
        self.page.set_default_navigation_timeout(navigation_timeout_ms)

    async def block_resources(self, resource_types: Iterable[str]) -> None:
        """Abort requests for the given resource types."""
        blocked = frozenset(resource_types)
        if not blocked:
            return

        async def handle_route(route: Route) -> None:
            if route.request.resource_type in blocked:
                await route.abort()
            else:
                await route.continue_()

        await self.page.route("**/*", handle_route)

    async def set_content(self, html: str, wait_until: str, timeout_ms: float) -> None:
        """Inject HTML and wait for ``wait_until``."""
        try:
            await self.page.set_content(html, wait_until=wait_until, timeout=timeout_ms)  # type: ignore[arg-type]
        except PlaywrightTimeoutError as e:
            raise RenderTimeout("content load", timeout_ms) from e

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self.page.evaluate(script, arg)

    async def capture(
        self, bounds: ContentBounds, image_format: ImageFormat, quality: Optional[int] = None
    ) -> bytes:
        """Capture ``bounds`` of the page in the requested format."""
        try:
            if image_format is ImageFormat.JPEG:
                kwargs: dict = {"type": "jpeg"}
                if quality:
                    kwargs["quality"] = quality
                return await self.page.screenshot(clip=bounds.as_clip(), **kwargs)  # type: ignore[arg-type]

            png_bytes = await self.page.screenshot(type="png", clip=bounds.as_clip())  # type: ignore[arg-type]
        except PlaywrightTimeoutError as e:
            raise CaptureFailure(f"Screenshot timed out: {e}") from e
        except Exception as e:
            raise CaptureFailure(str(e)) from e

        return transcode(png_bytes, image_format, quality)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.context.close()


class PlaywrightEngine:
    """A running Chromium instance."""

    def __init__(self, playwright: Playwright, browser: Browser):
        self._playwright = playwright
        self.browser = browser

    @classmethod
    async def launch(cls, settings: Settings) -> "PlaywrightEngine":
        """
        Start Playwright and launch Chromium.

        Raises:
            EngineUnavailable: If the browser cannot be started
        """
        playwright = None
        try:
            playwright = await async_playwright().start()
            browser = await playwright.chromium.launch(
                headless=settings.browser_headless,
                args=list(settings.browser_args),
            )
        except Exception as e:
            if playwright is not None:
                await playwright.stop()
            raise EngineUnavailable(f"Browser launch failed: {e}") from e
        return cls(playwright, browser)

    def is_connected(self) -> bool:
        return self.browser.is_connected()

    def page_count(self) -> int:
        return sum(len(context.pages) for context in self.browser.contexts)

    async def new_session(self, viewport: Viewport) -> PlaywrightSession:
        """Open an isolated context with a page sized to ``viewport``."""
        context = await self.browser.new_context(device_scale_factor=viewport.scale)
        try:
            page = await context.new_page()
            session = PlaywrightSession(context, page)
            await session.set_viewport(viewport)
        except Exception:
            await context.close()
            raise
        return session

    async def close(self, timeout: float = 10.0) -> None:
        try:
            await asyncio.wait_for(self.browser.close(), timeout=timeout)
        finally:
            await self._playwright.stop()
