"""
Unit Tests for Logging Configuration
====================================
"""

import structlog

from screenshot_service.config.logging import (
    bind_request_context,
    clear_request_context,
    get_logging_config,
)

from tests.utils.helpers import make_settings


class TestLoggingConfig:
    """Test the stdlib logging configuration."""

    def test_json_handler_in_production(self):
        config = get_logging_config(make_settings(environment="production"))
        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["formatters"]["json"]["()"] == "pythonjsonlogger.json.JsonFormatter"

    def test_plain_handler_outside_production(self):
        config = get_logging_config(make_settings(log_level="warning"))
        assert config["handlers"]["console"]["formatter"] == "plain"
        assert config["loggers"][""]["level"] == "WARNING"

    def test_access_log_follows_performance_flag(self):
        quiet = get_logging_config(make_settings())
        verbose = get_logging_config(make_settings(log_performance=True))
        assert quiet["loggers"]["uvicorn.access"]["level"] == "WARNING"
        assert verbose["loggers"]["uvicorn.access"]["level"] == "INFO"


class TestRequestContext:
    """Test request-scoped log values."""

    def test_bind_replaces_previous_request(self):
        bind_request_context("first", path="/a")
        bind_request_context("second")

        assert structlog.contextvars.get_contextvars() == {"request_id": "second"}
        clear_request_context()
        assert structlog.contextvars.get_contextvars() == {}
