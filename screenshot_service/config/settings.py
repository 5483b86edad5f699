"""
Application Settings
===================

Main application settings and environment configuration using Pydantic Settings.
Every tunable of the rendering pipeline lives here; the instance is frozen
once built, so the values stay fixed for the lifetime of the process.
"""

from typing import Annotated, Dict, List, Optional, Union
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
import json

from screenshot_service.models.schemas import CropConfig, RenderMode, WaitPolicy


DEFAULT_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-accelerated-2d-canvas",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-web-security",
    "--disable-features=TranslateUI,BlinkGenPropertyTrees",
    "--disable-ipc-flooding-protection",
    "--disable-default-apps",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-sync",
    "--hide-scrollbars",
    "--mute-audio",
    "--no-default-browser-check",
    "--no-first-run",
    "--disable-notifications",
    "--memory-pressure-off",
]

StrList = Annotated[List[str], NoDecode]


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="screenshot-service", description="Service name")
    app_version: str = Field(default="1.1.2", description="Service version")
    environment: str = Field(
        default="development", description="Environment: development, testing, production"
    )
    debug: bool = Field(default=False, description="Debug mode")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3002, description="Server port")

    # Request bounds
    default_width: int = Field(default=1280, gt=0, description="Default viewport width")
    default_height: int = Field(default=720, gt=0, description="Default viewport height")
    max_width: int = Field(default=4096, gt=0, description="Maximum viewport width")
    max_height: int = Field(default=4096, gt=0, description="Maximum viewport height")
    default_format: str = Field(default="png", description="Default image format")
    supported_formats: StrList = Field(
        default=["png", "jpeg", "webp"], description="Accepted image formats"
    )
    default_scale: float = Field(default=1.0, gt=0, description="Default device pixel ratio")
    max_scale: float = Field(default=3.0, gt=0, description="Maximum device pixel ratio")
    default_timeout_ms: int = Field(default=15000, gt=0, description="Default page timeout")
    navigation_timeout_ms: int = Field(default=10000, gt=0, description="Navigation timeout")
    max_body_bytes: int = Field(default=10 * 1024 * 1024, description="Request body limit")

    # Admission control
    max_concurrent_pages: int = Field(default=3, gt=0, description="Concurrent render sessions")

    # Ultrafast tier
    ultrafast_wait_until: str = Field(default="load", description="Navigation wait condition")
    ultrafast_content_timeout_ms: int = Field(default=15000, gt=0)
    ultrafast_font_timeout_ms: int = Field(default=3000, ge=0)
    ultrafast_image_timeout_ms: int = Field(default=3000, ge=0)
    ultrafast_settle_base_ms: int = Field(default=200, ge=0)
    ultrafast_settle_per_image_ms: int = Field(default=200, ge=0)
    ultrafast_settle_max_ms: int = Field(default=8000, ge=0)

    # Fast tier
    fast_wait_until: str = Field(default="load", description="Navigation wait condition")
    fast_content_timeout_ms: int = Field(default=20000, gt=0)
    fast_font_timeout_ms: int = Field(default=5000, ge=0)
    fast_image_timeout_ms: int = Field(default=2000, ge=0)
    fast_settle_base_ms: int = Field(default=300, ge=0)
    fast_settle_per_image_ms: int = Field(default=100, ge=0)
    fast_settle_max_ms: int = Field(default=2000, ge=0)

    # Standard tier
    standard_wait_until: str = Field(default="load", description="Navigation wait condition")
    standard_content_timeout_ms: int = Field(default=20000, gt=0)
    standard_font_timeout_ms: int = Field(default=5000, ge=0)
    standard_image_timeout_ms: int = Field(default=3000, ge=0)
    standard_settle_base_ms: int = Field(default=500, ge=0)
    standard_settle_per_image_ms: int = Field(default=100, ge=0)
    standard_settle_max_ms: int = Field(default=2000, ge=0)

    # Extra content-load time granted while the pool is busy
    busy_wait_threshold: int = Field(default=3, ge=0, description="Active pages before extension")
    busy_wait_per_page_ms: int = Field(default=300, ge=0, description="Extension per active page")

    # Readiness polling
    readiness_poll_interval_ms: int = Field(default=250, gt=0, description="Image poll interval")

    # Smart crop
    smart_crop_enabled: bool = Field(default=True, description="Enable smart cropping")
    crop_min_content_size: int = Field(default=50, ge=0, description="Smallest accepted crop")
    crop_padding: int = Field(default=10, ge=0, description="Padding around content")
    crop_max_padding: int = Field(default=50, ge=0, description="Upper bound on padding")
    crop_max_elements: int = Field(default=100, gt=0, description="Elements inspected per crop")
    crop_skip_complex_elements: bool = Field(default=True, description="Skip complex elements")
    crop_complex_child_threshold: int = Field(default=10, ge=0)
    crop_complex_tags: StrList = Field(default=["SVG"], description="Tags treated as complex")
    disable_smart_crop_in_fast_mode: bool = Field(default=True)

    # Browser Configuration
    browser_headless: bool = Field(default=True, description="Run browser in headless mode")
    browser_args: StrList = Field(default=DEFAULT_BROWSER_ARGS, description="Chromium flags")
    restart_threshold: int = Field(default=100, gt=0, description="Requests before restart")
    health_check_interval_seconds: float = Field(default=60.0, gt=0)
    browser_close_timeout_seconds: float = Field(default=10.0, gt=0)

    # Resource blocking
    enable_resource_blocking: bool = Field(default=False)
    blocked_resource_types: StrList = Field(default=[])

    # Security Configuration
    api_key: Optional[str] = Field(default="disabled", description="API key, 'disabled' for none")
    cors_origins: StrList = Field(default=["*"], description="Allowed CORS origins")

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_window_seconds: int = Field(default=300, gt=0)
    rate_limit_max_requests: int = Field(default=50, gt=0)

    # Monitoring Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_performance: bool = Field(default=False, description="Emit per-request timing logs")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "testing", "production"}
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator(
        "supported_formats",
        "crop_complex_tags",
        "browser_args",
        "blocked_resource_types",
        "cors_origins",
        mode="before",
    )
    @classmethod
    def parse_string_list(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse list values from a JSON array or comma-separated string."""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("[") and v.endswith("]"):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("ultrafast_wait_until", "fast_wait_until", "standard_wait_until")
    @classmethod
    def validate_wait_until(cls, v: str) -> str:
        allowed = {"load", "domcontentloaded", "networkidle", "commit"}
        if v not in allowed:
            raise ValueError(f"Wait condition must be one of: {allowed}")
        return v

    @property
    def api_key_enabled(self) -> bool:
        return bool(self.api_key) and self.api_key != "disabled"

    def wait_policy(self, mode: RenderMode) -> WaitPolicy:
        """Build the wait-policy record for a render mode."""
        prefix = mode.value
        return WaitPolicy(
            mode=mode,
            wait_until=getattr(self, f"{prefix}_wait_until"),
            content_timeout_ms=getattr(self, f"{prefix}_content_timeout_ms"),
            font_timeout_ms=getattr(self, f"{prefix}_font_timeout_ms"),
            image_timeout_ms=getattr(self, f"{prefix}_image_timeout_ms"),
            settle_base_ms=getattr(self, f"{prefix}_settle_base_ms"),
            settle_per_image_ms=getattr(self, f"{prefix}_settle_per_image_ms"),
            settle_max_ms=getattr(self, f"{prefix}_settle_max_ms"),
        )

    def wait_policies(self) -> Dict[str, WaitPolicy]:
        return {mode.value: self.wait_policy(mode) for mode in RenderMode}

    def crop_config(self) -> CropConfig:
        """Build the smart-crop parameter record."""
        return CropConfig(
            enabled=self.smart_crop_enabled,
            min_content_size=self.crop_min_content_size,
            padding=self.crop_padding,
            max_padding=self.crop_max_padding,
            max_elements=self.crop_max_elements,
            skip_complex_elements=self.crop_skip_complex_elements,
            complex_child_threshold=self.crop_complex_child_threshold,
            complex_tags=[tag.upper() for tag in self.crop_complex_tags],
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="SCREENSHOT_",
        frozen=True,
    )


# Global settings instance - will be initialized when needed
settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
