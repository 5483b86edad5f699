"""
Unit Tests for Browser Manager
==============================

Tests for single-flight launches, threshold restarts, crash recovery and
shutdown of the shared browser.
"""

import asyncio

import pytest

from screenshot_service.core.errors import EngineUnavailable
from screenshot_service.core.rendering.browser_manager import (
    BrowserManager,
    EngineState,
    HealthTickResult,
)

from tests.utils.helpers import make_settings
from tests.utils.mocks import FakeEngine, FakeLauncher


class FailingCloseEngine(FakeEngine):
    async def close(self, timeout: float = 10.0) -> None:
        self.connected = False
        raise RuntimeError("browser already gone")


class TestBrowserLaunch:
    """Test launching and relaunching."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_launch(self):
        launcher = FakeLauncher(delay=0.05)
        manager = BrowserManager(make_settings(), launcher=launcher)

        engines = await asyncio.gather(*(manager.ensure_ready() for _ in range(10)))

        assert launcher.calls == 1
        assert launcher.max_in_flight == 1
        assert all(engine is engines[0] for engine in engines)
        assert manager.state is EngineState.READY
        assert manager.launch_count == 1

    @pytest.mark.asyncio
    async def test_connected_engine_reused(self, browser_manager, fake_launcher):
        first = await browser_manager.ensure_ready()
        second = await browser_manager.ensure_ready()

        assert first is second
        assert fake_launcher.calls == 1

    @pytest.mark.asyncio
    async def test_disconnected_engine_relaunched(self, browser_manager, fake_launcher):
        first = await browser_manager.ensure_ready()
        first.connected = False

        second = await browser_manager.ensure_ready()

        assert second is not first
        assert fake_launcher.calls == 2
        assert first.closed
        assert browser_manager.is_connected

    @pytest.mark.asyncio
    async def test_launch_failure_then_retry(self):
        launcher = FakeLauncher(failures=1)
        manager = BrowserManager(make_settings(), launcher=launcher)

        with pytest.raises(EngineUnavailable):
            await manager.ensure_ready()
        assert manager.state is EngineState.UNINITIALIZED
        assert not manager.is_connected

        engine = await manager.ensure_ready()
        assert engine is launcher.engines[0]
        assert launcher.calls == 2
        assert manager.state is EngineState.READY

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_failure(self):
        launcher = FakeLauncher(delay=0.02, failures=1)
        manager = BrowserManager(make_settings(), launcher=launcher)

        results = await asyncio.gather(
            *(manager.ensure_ready() for _ in range(3)), return_exceptions=True
        )

        assert launcher.calls == 1
        assert all(isinstance(r, EngineUnavailable) for r in results)

    def test_page_count_without_engine(self, browser_manager):
        assert browser_manager.page_count() == 0
        assert not browser_manager.is_connected


class TestBrowserRestart:
    """Test planned restarts."""

    @pytest.mark.asyncio
    async def test_threshold_triggers_exactly_one_restart(self):
        launcher = FakeLauncher()
        manager = BrowserManager(make_settings(restart_threshold=3), launcher=launcher)
        first = await manager.ensure_ready()
        for _ in range(3):
            manager.record_served()

        assert await manager.health_tick() is HealthTickResult.RESTARTED
        assert launcher.calls == 2
        assert first.closed
        assert manager.total_requests_served == 0
        assert manager.restart_count == 1
        assert manager.last_restart_at is not None

        assert await manager.health_tick() is HealthTickResult.HEALTHY
        assert launcher.calls == 2

    @pytest.mark.asyncio
    async def test_below_threshold_is_healthy(self):
        launcher = FakeLauncher()
        manager = BrowserManager(make_settings(restart_threshold=3), launcher=launcher)
        await manager.ensure_ready()
        manager.record_served()
        manager.record_served()

        assert await manager.health_tick() is HealthTickResult.HEALTHY
        assert launcher.calls == 1
        assert manager.total_requests_served == 2

    @pytest.mark.asyncio
    async def test_concurrent_restarts_coalesce(self, browser_manager, fake_launcher):
        await browser_manager.ensure_ready()

        await asyncio.gather(browser_manager.restart(), browser_manager.restart())

        assert fake_launcher.calls == 2
        assert browser_manager.restart_count == 1

    @pytest.mark.asyncio
    async def test_close_errors_swallowed_on_restart(self):
        launcher = FakeLauncher(engine_factory=FailingCloseEngine)
        manager = BrowserManager(make_settings(), launcher=launcher)
        await manager.ensure_ready()

        engine = await manager.restart(reason="test")

        assert engine is launcher.engines[1]
        assert manager.is_connected


class TestHealthTick:
    """Test the periodic probe."""

    @pytest.mark.asyncio
    async def test_relaunches_disconnected_browser(self, browser_manager, fake_launcher):
        engine = await browser_manager.ensure_ready()
        engine.connected = False

        assert await browser_manager.health_tick() is HealthTickResult.RELAUNCHED
        assert fake_launcher.calls == 2
        assert browser_manager.is_connected

    @pytest.mark.asyncio
    async def test_failed_relaunch_reported(self):
        launcher = FakeLauncher(failures=1)
        manager = BrowserManager(make_settings(), launcher=launcher)

        assert await manager.health_tick() is HealthTickResult.FAILED
        assert await manager.health_tick() is HealthTickResult.RELAUNCHED

    @pytest.mark.asyncio
    async def test_health_loop_runs_ticks(self):
        launcher = FakeLauncher()
        manager = BrowserManager(
            make_settings(health_check_interval_seconds=0.01), launcher=launcher
        )
        await manager.start()
        engine = launcher.engines[0]
        engine.connected = False

        for _ in range(100):
            if launcher.calls >= 2:
                break
            await asyncio.sleep(0.01)

        await manager.close()
        assert launcher.calls >= 2


class TestShutdown:
    """Test closing the manager."""

    @pytest.mark.asyncio
    async def test_close_stops_health_checks_and_browser(self, browser_manager, fake_launcher):
        await browser_manager.start()

        await browser_manager.close()

        assert fake_launcher.engines[0].closed
        assert browser_manager.state is EngineState.UNINITIALIZED
        assert browser_manager._health_task is None

    @pytest.mark.asyncio
    async def test_close_swallows_browser_errors(self):
        manager = BrowserManager(
            make_settings(), launcher=FakeLauncher(engine_factory=FailingCloseEngine)
        )
        await manager.start()

        await manager.close()

        assert not manager.is_connected

    @pytest.mark.asyncio
    async def test_snapshot(self, browser_manager):
        await browser_manager.ensure_ready()
        browser_manager.record_served()

        snapshot = browser_manager.snapshot()

        assert snapshot["state"] == "ready"
        assert snapshot["connected"] is True
        assert snapshot["requests_since_restart"] == 1
        assert snapshot["restart_threshold"] == 100
        assert snapshot["launches"] == 1
        assert snapshot["last_restart_at"] is None
