"""
Browser Manager
===============

Owns the process-wide Chromium instance: launches it on demand, probes its
health on a fixed interval, and relaunches it after a crash or once it has
served enough requests. Launches and restarts are single-flight: concurrent
callers share the attempt already in progress instead of starting another
browser.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional
import asyncio
import contextlib

from screenshot_service.config.logging import get_logger
from screenshot_service.config.settings import Settings
from screenshot_service.core.errors import EngineUnavailable
from screenshot_service.core.rendering.engine import PlaywrightEngine

logger = get_logger(__name__)

Launcher = Callable[[Settings], Awaitable[Any]]


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    RESTARTING = "restarting"


class HealthTickResult(str, Enum):
    HEALTHY = "healthy"
    RESTARTED = "restarted"
    RELAUNCHED = "relaunched"
    FAILED = "failed"


class BrowserManager:
    """Lifecycle manager for the shared browser handle."""

    def __init__(self, settings: Settings, launcher: Optional[Launcher] = None):
        self.settings = settings
        self._launcher: Launcher = launcher or PlaywrightEngine.launch
        self._engine: Optional[Any] = None
        self._inflight: Optional[asyncio.Future] = None
        self._health_task: Optional[asyncio.Task] = None
        self.state = EngineState.UNINITIALIZED
        self.total_requests_served = 0
        self.launch_count = 0
        self.restart_count = 0
        self.last_restart_at: Optional[datetime] = None
        self.logger: Any = logger.bind(component="browser_manager")

    @property
    def is_connected(self) -> bool:
        return self._engine is not None and self._engine.is_connected()

    def page_count(self) -> int:
        if not self.is_connected:
            return 0
        return self._engine.page_count()

    def record_served(self) -> int:
        self.total_requests_served += 1
        return self.total_requests_served

    async def ensure_ready(self) -> Any:
        """
        Return a connected engine, launching one if needed.

        Raises:
            EngineUnavailable: If the launch fails; the next call retries
        """
        engine = self._engine
        if engine is not None and engine.is_connected():
            return engine
        return await self._single_flight(self._relaunch)

    async def restart(self, reason: str = "manual") -> Any:
        """Close the current engine and launch a fresh one."""
        self.logger.info(
            "Restarting browser", reason=reason, requests_served=self.total_requests_served
        )
        return await self._single_flight(self._restart)

    async def _single_flight(self, factory: Callable[[], Awaitable[Any]]) -> Any:
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(factory())
            self._inflight.add_done_callback(self._clear_inflight)
        return await asyncio.shield(self._inflight)

    def _clear_inflight(self, future: asyncio.Future) -> None:
        if self._inflight is future:
            self._inflight = None

    async def _restart(self) -> Any:
        self.state = EngineState.RESTARTING
        await self._close_engine()
        self.total_requests_served = 0
        self.restart_count += 1
        self.last_restart_at = datetime.now(timezone.utc)
        return await self._launch()

    async def _relaunch(self) -> Any:
        if self._engine is not None:
            self.logger.warning("Browser disconnected, reinitializing")
            self.state = EngineState.RESTARTING
            await self._close_engine()
        return await self._launch()

    async def _launch(self) -> Any:
        self.logger.info("Launching browser", headless=self.settings.browser_headless)
        try:
            engine = await self._launcher(self.settings)
        except Exception as e:
            self._engine = None
            self.state = EngineState.UNINITIALIZED
            self.logger.error("Browser launch failed", error=str(e))
            if isinstance(e, EngineUnavailable):
                raise
            raise EngineUnavailable(f"Browser launch failed: {e}") from e

        self._engine = engine
        self.state = EngineState.READY
        self.launch_count += 1
        self.logger.info("Browser initialized", launches=self.launch_count)
        return engine

    async def _close_engine(self) -> None:
        engine, self._engine = self._engine, None
        if engine is None:
            return
        try:
            await engine.close(timeout=self.settings.browser_close_timeout_seconds)
            self.logger.info("Browser closed")
        except Exception as e:
            self.logger.warning("Error closing browser", error=str(e))

    async def health_tick(self) -> HealthTickResult:
        """Run one health probe."""
        try:
            if not self.is_connected:
                await self.ensure_ready()
                return HealthTickResult.RELAUNCHED

            if self.settings.log_performance:
                self.logger.info(
                    "Browser health",
                    pages=self.page_count(),
                    requests_served=self.total_requests_served,
                )

            if self.total_requests_served >= self.settings.restart_threshold:
                await self.restart(reason="threshold")
                return HealthTickResult.RESTARTED

            return HealthTickResult.HEALTHY
        except Exception as e:
            self.logger.error("Browser health check failed", error=str(e))
            return HealthTickResult.FAILED

    async def _health_loop(self) -> None:
        interval = self.settings.health_check_interval_seconds
        while True:
            await asyncio.sleep(interval)
            await self.health_tick()

    def start_health_checks(self) -> None:
        if self._health_task is None or self._health_task.done():
            self._health_task = asyncio.create_task(self._health_loop())

    async def stop_health_checks(self) -> None:
        task, self._health_task = self._health_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def start(self) -> None:
        await self.ensure_ready()
        self.start_health_checks()

    async def close(self) -> None:
        """Stop health probing and close the browser."""
        await self.stop_health_checks()
        if self._inflight is not None:
            with contextlib.suppress(Exception):
                await self._inflight
        await self._close_engine()
        self.state = EngineState.UNINITIALIZED

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "connected": self.is_connected,
            "pages": self.page_count(),
            "requests_since_restart": self.total_requests_served,
            "restart_threshold": self.settings.restart_threshold,
            "launches": self.launch_count,
            "restarts": self.restart_count,
            "last_restart_at": self.last_restart_at.isoformat() if self.last_restart_at else None,
        }
