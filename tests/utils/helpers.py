"""
Test Helpers
============

Helper functions for common testing operations.
"""

import asyncio
import io
import time
from typing import Any, Callable, Tuple

from PIL import Image

from screenshot_service.config.settings import Settings


def make_settings(**overrides: Any) -> Settings:
    """Settings for tests: no env file, quick waits, generous rate limit."""
    values = {
        "environment": "testing",
        "log_level": "DEBUG",
        "rate_limit_enabled": False,
        "health_check_interval_seconds": 3600,
        "readiness_poll_interval_ms": 10,
        "ultrafast_settle_base_ms": 0,
        "fast_settle_base_ms": 0,
        "fast_settle_per_image_ms": 0,
        "standard_settle_base_ms": 0,
        "standard_settle_per_image_ms": 0,
        "ultrafast_settle_per_image_ms": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def image_dimensions(data: bytes) -> Tuple[int, int]:
    """Width and height of encoded image bytes."""
    with Image.open(io.BytesIO(data)) as image:
        return image.size


def image_format(data: bytes) -> str:
    with Image.open(io.BytesIO(data)) as image:
        return str(image.format).lower()


async def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float = 5.0,
    interval: float = 0.01,
    error_message: str = "Condition not met within timeout",
) -> None:
    """Wait for a condition to become true."""
    start_time = time.time()

    while time.time() - start_time < timeout:
        if condition():
            return
        await asyncio.sleep(interval)

    raise TimeoutError(error_message)
