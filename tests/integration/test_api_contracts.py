"""
API Contract Tests
==================

HTTP-level tests of the screenshot service against a scripted browser:
status codes, response headers and the JSON error shape.
"""

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from screenshot_service.api.main import create_app

from tests.utils.helpers import image_dimensions, image_format, make_settings
from tests.utils.mocks import FakeEngine, FakeLauncher, FakeSession, element

HTML = "<div style='width:100px;height:50px;background:red'>Hello</div>"
RED_BOX = "<div style='width:100px;height:50px;background:red'></div>"
RED_BOX_ELEMENTS = [
    element(0, 0, 400, 300, tag="HTML", children=2),
    element(0, 0, 400, 300, tag="BODY", children=1),
    element(150, 125, 100, 50),
]


def sessions_opened(launcher: FakeLauncher) -> int:
    return sum(len(engine.sessions) for engine in launcher.engines)


@pytest.fixture
def secured_client() -> Generator[TestClient, None, None]:
    app = create_app(make_settings(api_key="s3cret"), launcher=FakeLauncher())
    with TestClient(app) as test_client:
        yield test_client


class TestScreenshotEndpoint:
    """Test POST /screenshot success paths."""

    def test_png_screenshot(self, client, fake_launcher):
        response = client.post(
            "/screenshot", json={"htmlContent": HTML, "width": 400, "height": 300}
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert image_format(response.content) == "png"
        assert image_dimensions(response.content) == (400, 300)
        assert response.headers["X-Render-Mode"] == "ultrafast"
        assert response.headers["X-Image-Width"] == "400"
        assert response.headers["X-Image-Height"] == "300"
        assert response.headers["X-Total-Processed"] == "1"
        assert response.headers["X-Processing-Time"].endswith("ms")
        assert "X-Request-ID" in response.headers
        assert sessions_opened(fake_launcher) == 1

    def test_jpeg_screenshot(self, client):
        response = client.post(
            "/screenshot",
            json={"htmlContent": HTML, "options": {"format": "jpeg", "quality": 50}},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert image_format(response.content) == "jpeg"

    def test_webp_screenshot(self, client):
        response = client.post(
            "/screenshot", json={"htmlContent": HTML, "options": {"format": "webp"}}
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/webp"

    def test_default_viewport(self, client, test_settings):
        response = client.post("/screenshot", json={"htmlContent": HTML})

        assert image_dimensions(response.content) == (
            test_settings.default_width,
            test_settings.default_height,
        )

    def test_processed_counter_increments(self, client):
        for expected in ("1", "2"):
            response = client.post("/screenshot", json={"htmlContent": HTML})
            assert response.headers["X-Total-Processed"] == expected


class TestSmartCropContract:
    """Test the smartCrop option for the red box payload."""

    @pytest.fixture
    def crop_client(self, fake_launcher) -> Generator[TestClient, None, None]:
        fake_launcher.engine_factory = lambda: FakeEngine(
            lambda viewport: FakeSession(viewport, elements=RED_BOX_ELEMENTS)
        )
        with TestClient(create_app(make_settings(), launcher=fake_launcher)) as test_client:
            yield test_client

    def test_explicit_smart_crop_returns_content_box(self, crop_client):
        response = crop_client.post(
            "/screenshot",
            json={
                "htmlContent": RED_BOX,
                "width": 400,
                "height": 300,
                "options": {"smartCrop": True},
            },
        )

        assert response.status_code == 200
        assert response.headers["X-Render-Mode"] == "ultrafast"
        assert image_dimensions(response.content) == (120, 70)

    def test_omitted_smart_crop_returns_viewport(self, crop_client):
        response = crop_client.post(
            "/screenshot", json={"htmlContent": RED_BOX, "width": 400, "height": 300}
        )

        assert response.status_code == 200
        assert image_dimensions(response.content) == (400, 300)


class TestScreenshotValidation:
    """Test 400 responses."""

    def test_missing_html_content(self, client, fake_launcher):
        response = client.post("/screenshot", json={"width": 400})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid parameters"
        assert any("htmlContent" in item for item in body["details"])
        assert body["duration"].endswith("ms")
        assert client.app.state.pipeline.admission.active == 0
        assert sessions_opened(fake_launcher) == 0

    def test_malformed_json(self, client):
        response = client.post(
            "/screenshot", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400

    def test_width_over_limit(self, client, fake_launcher):
        response = client.post("/screenshot", json={"htmlContent": HTML, "width": 5000})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid parameters"
        assert any(item.startswith("width") for item in body["details"])
        assert sessions_opened(fake_launcher) == 0

    def test_unsupported_format(self, client):
        response = client.post(
            "/screenshot", json={"htmlContent": HTML, "options": {"format": "gif"}}
        )

        assert response.status_code == 400
        assert "format" in response.json()["message"]

    def test_negative_width(self, client):
        response = client.post("/screenshot", json={"htmlContent": HTML, "width": -1})
        assert response.status_code == 400

    def test_validation_failures_counted(self, client):
        client.post("/screenshot", json={})
        client.post("/screenshot", json={"htmlContent": HTML, "height": 9000})

        stats = client.app.state.pipeline.stats
        assert stats.failed_requests == 2
        assert stats.successful_requests == 0

    def test_body_too_large(self, fake_launcher):
        app = create_app(make_settings(max_body_bytes=100), launcher=fake_launcher)
        with TestClient(app) as test_client:
            response = test_client.post("/screenshot", json={"htmlContent": "x" * 500})

        assert response.status_code == 413
        assert response.json()["error"] == "Payload too large"

    def test_chunked_body_too_large(self, fake_launcher):
        app = create_app(make_settings(max_body_bytes=100), launcher=fake_launcher)
        chunks = [b'{"htmlContent": "', b"x" * 500, b'"}']
        with TestClient(app) as test_client:
            response = test_client.post(
                "/screenshot",
                content=iter(chunks),
                headers={"Content-Type": "application/json"},
            )

        assert response.status_code == 413
        assert response.json()["error"] == "Payload too large"
        assert sessions_opened(fake_launcher) == 0

    def test_chunked_body_within_limit(self, client):
        chunks = [b'{"htmlContent": "', HTML.encode(), b'"}']
        response = client.post(
            "/screenshot", content=iter(chunks), headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200


class TestAdmission:
    """Test 429 when the concurrency limit is reached."""

    def test_busy_service_rejects(self, client, fake_launcher):
        admission = client.app.state.pipeline.admission
        for _ in range(admission.limit):
            admission.try_admit()
        try:
            response = client.post("/screenshot", json={"htmlContent": HTML})
        finally:
            for _ in range(admission.limit):
                admission.release()

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "Service busy"
        assert body["details"] == {"activePagesCount": 3, "maxConcurrentPages": 3}
        assert sessions_opened(fake_launcher) == 0

        assert client.post("/screenshot", json={"htmlContent": HTML}).status_code == 200


class TestRateLimit:
    """Test the per-client request window."""

    def test_rate_limit_exceeded(self, fake_launcher):
        settings = make_settings(rate_limit_enabled=True, rate_limit_max_requests=2)
        with TestClient(create_app(settings, launcher=fake_launcher)) as test_client:
            statuses = [
                test_client.post("/screenshot", json={"htmlContent": HTML}).status_code
                for _ in range(2)
            ]
            response = test_client.post("/screenshot", json={"htmlContent": HTML})

        assert statuses == [200, 200]
        assert response.status_code == 429
        assert response.json()["error"] == "Screenshot rate limit exceeded"
        assert int(response.headers["Retry-After"]) >= 1


class TestAuthentication:
    """Test the API key gate."""

    def test_missing_key(self, secured_client):
        response = secured_client.post("/screenshot", json={"htmlContent": HTML})

        assert response.status_code == 401
        assert response.json()["error"] == "API key required"

    def test_wrong_key(self, secured_client):
        response = secured_client.post(
            "/screenshot", json={"htmlContent": HTML}, headers={"X-API-Key": "nope"}
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Invalid API key"

    @pytest.mark.parametrize(
        "headers", [{"X-API-Key": "s3cret"}, {"Authorization": "Bearer s3cret"}]
    )
    def test_valid_key(self, secured_client, headers):
        response = secured_client.post(
            "/screenshot", json={"htmlContent": HTML}, headers=headers
        )
        assert response.status_code == 200

    def test_stats_requires_key(self, secured_client):
        assert secured_client.get("/stats").status_code == 401
        assert secured_client.get("/stats", headers={"X-API-Key": "s3cret"}).status_code == 200

    def test_health_is_public(self, secured_client):
        assert secured_client.get("/health").status_code == 200


class TestHealth:
    """Test GET /health."""

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["browser"] == "connected"
        assert body["performance"]["activePagesCount"] == 0
        assert "rss_mb" in body["memory"]

    def test_restart_counter_distinct_from_lifetime_total(self, client):
        client.post("/screenshot", json={"htmlContent": HTML})
        client.post("/screenshot", json={"htmlContent": HTML})
        client.app.state.browser_manager.total_requests_served = 0

        performance = client.get("/health").json()["performance"]

        assert performance["requestsSinceRestart"] == 0
        assert performance["successfulRequests"] == 2
        assert "totalRequestsProcessed" not in performance

    def test_disconnected_browser(self, client, fake_launcher):
        fake_launcher.engines[0].connected = False

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
        assert response.json()["browser"] == "disconnected"

    def test_render_recovers_disconnected_browser(self, client, fake_launcher):
        fake_launcher.engines[0].connected = False

        assert client.post("/screenshot", json={"htmlContent": HTML}).status_code == 200
        assert fake_launcher.calls == 2
        assert client.get("/health").status_code == 200


class TestStatusEndpoints:
    """Test /stats, /info and unknown routes."""

    def test_stats(self, client):
        client.post("/screenshot", json={"htmlContent": HTML})

        body = client.get("/stats").json()

        assert body["performance"]["totalRequests"] == 1
        assert body["performance"]["successfulRequests"] == 1
        assert body["performance"]["modes"]["ultrafast"] == 1
        assert body["browser"]["connected"] is True
        assert body["config"]["maxConcurrentPages"] == 3
        assert set(body["config"]["waitPolicies"]) == {"ultrafast", "fast", "standard"}

    def test_info(self, client):
        body = client.get("/info").json()

        assert body["config"]["maxWidth"] == 4096
        assert body["config"]["supportedFormats"] == ["png", "jpeg", "webp"]
        assert body["environment"] == "testing"

    def test_unknown_route(self, client):
        response = client.get("/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"] == "Not Found"


class TestLifespan:
    """Test startup and shutdown."""

    def test_browser_closed_on_shutdown(self, fake_launcher):
        with TestClient(create_app(make_settings(), launcher=fake_launcher)):
            assert fake_launcher.calls == 1

        assert fake_launcher.engines[0].closed

    def test_startup_fails_without_browser(self):
        app = create_app(make_settings(), launcher=FakeLauncher(failures=1))
        with pytest.raises(RuntimeError):
            with TestClient(app):
                pass  # pragma: no cover
