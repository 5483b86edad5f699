"""
Test Configuration
==================

Pytest fixtures shared by unit and integration tests. No test launches a
real browser: the browser manager is wired to ``FakeLauncher``.
"""

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from screenshot_service.api.main import create_app
from screenshot_service.config.settings import Settings
from screenshot_service.core.rendering.browser_manager import BrowserManager
from screenshot_service.core.rendering.pipeline import RenderPipeline

from tests.utils.helpers import make_settings
from tests.utils.mocks import FakeClock, FakeLauncher


@pytest.fixture
def test_settings() -> Settings:
    """Test settings fixture."""
    return make_settings()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def browser_manager(test_settings: Settings, fake_launcher: FakeLauncher) -> BrowserManager:
    return BrowserManager(test_settings, launcher=fake_launcher)


@pytest.fixture
def pipeline(test_settings: Settings, browser_manager: BrowserManager) -> RenderPipeline:
    return RenderPipeline(test_settings, browser_manager)


@pytest.fixture
def client(test_settings: Settings, fake_launcher: FakeLauncher) -> Generator[TestClient, None, None]:
    """FastAPI test client with a fake browser."""
    app = create_app(test_settings, launcher=fake_launcher)
    with TestClient(app) as test_client:
        yield test_client


def pytest_collection_modifyitems(config, items):
    """Add markers based on file paths."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
