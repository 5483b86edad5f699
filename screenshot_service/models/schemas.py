"""
Pydantic Models and Schemas
===========================

Data models for screenshot requests and responses, plus the immutable
records passed between the stages of the render pipeline.
"""

from typing import Optional, List, Dict, Any, Literal, TYPE_CHECKING
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from screenshot_service.config.settings import Settings


# Enums
class ImageFormat(str, Enum):
    """Encoded image formats the service can produce."""
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"

    @property
    def media_type(self) -> str:
        return f"image/{self.value}"

    @property
    def supports_quality(self) -> bool:
        return self is not ImageFormat.PNG


class RenderMode(str, Enum):
    """Performance tier chosen per request from its visual-resource density."""
    ULTRAFAST = "ultrafast"
    FAST = "fast"
    STANDARD = "standard"


# Policy records derived from settings
class WaitPolicy(BaseModel):
    """Wait budgets applied to a render in a given mode."""
    model_config = ConfigDict(frozen=True)

    mode: RenderMode
    wait_until: str = Field("load", description="Navigation wait condition for set_content")
    content_timeout_ms: int = Field(..., gt=0, description="Budget for the content-set operation")
    font_timeout_ms: int = Field(..., ge=0, description="Budget for document.fonts.ready")
    image_timeout_ms: int = Field(..., ge=0, description="Budget for image settling")
    settle_base_ms: int = Field(..., ge=0, description="Fixed delay after images settle")
    settle_per_image_ms: int = Field(..., ge=0, description="Extra delay per detected image")
    settle_max_ms: int = Field(..., ge=0, description="Cap on the settle delay")

    def settle_delay_ms(self, image_count: int) -> int:
        """Final settle delay for a document with ``image_count`` images."""
        if image_count <= 0:
            return min(self.settle_base_ms, self.settle_max_ms)
        return min(self.settle_base_ms + image_count * self.settle_per_image_ms, self.settle_max_ms)


class CropConfig(BaseModel):
    """Smart-crop parameters."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    min_content_size: int = Field(50, ge=0)
    padding: int = Field(10, ge=0)
    max_padding: int = Field(50, ge=0)
    max_elements: int = Field(100, gt=0)
    skip_complex_elements: bool = True
    complex_child_threshold: int = Field(10, ge=0)
    complex_tags: List[str] = Field(default_factory=lambda: ["SVG"])

    @property
    def effective_padding(self) -> int:
        return min(self.padding, self.max_padding)


# Geometry
class Viewport(BaseModel):
    """Viewport dimensions of a render session."""
    model_config = ConfigDict(frozen=True)

    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    scale: float = Field(1.0, gt=0, description="Device pixel ratio")


class ContentBounds(BaseModel):
    """Rectangle within the viewport to capture."""
    model_config = ConfigDict(frozen=True)

    x: float = Field(0, ge=0)
    y: float = Field(0, ge=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)

    @classmethod
    def full(cls, viewport: Viewport) -> "ContentBounds":
        return cls(x=0, y=0, width=viewport.width, height=viewport.height)

    def as_clip(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


# API Request Models
class ScreenshotOptions(BaseModel):
    """Per-request rendering options."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    format: Optional[str] = Field(None, description="Image format: png, jpeg or webp")
    quality: Optional[int] = Field(None, ge=1, le=100, description="JPEG/WebP quality (1-100)")
    scale: Optional[float] = Field(None, gt=0, description="Device pixel ratio")
    timeout: Optional[int] = Field(None, gt=0, description="Page timeout in milliseconds")
    smart_crop: Optional[bool] = Field(
        None,
        alias="smartCrop",
        description="Crop to visible content; omitted follows the render mode, true forces it",
    )
    enable_resource_blocking: Optional[bool] = Field(
        None, alias="enableResourceBlocking", description="Abort configured resource types"
    )
    background_color: Optional[str] = Field(
        None, alias="backgroundColor", description="Page background, transparent by default"
    )


class ScreenshotRequest(BaseModel):
    """Request body of ``POST /screenshot``."""
    model_config = ConfigDict(populate_by_name=True)

    html_content: str = Field(..., alias="htmlContent", min_length=1, description="HTML to render")
    width: Optional[int] = Field(None, gt=0, description="Viewport width in pixels")
    height: Optional[int] = Field(None, gt=0, description="Viewport height in pixels")
    options: ScreenshotOptions = Field(default_factory=ScreenshotOptions)

    @field_validator("html_content")
    @classmethod
    def validate_html_content(cls, v: str) -> str:
        """Validate HTML content is not blank."""
        if not v.strip():
            raise ValueError("htmlContent cannot be empty")
        return v

    def to_render_request(self, settings: "Settings") -> "RenderRequest":
        """
        Apply configured defaults and limits.

        Raises:
            RequestValidationFailed: listing every field outside configured bounds
        """
        from screenshot_service.core.errors import RequestValidationFailed

        errors: List[str] = []
        width = self.width if self.width is not None else settings.default_width
        height = self.height if self.height is not None else settings.default_height
        if width > settings.max_width:
            errors.append(f"width must be a positive number not exceeding {settings.max_width}")
        if height > settings.max_height:
            errors.append(f"height must be a positive number not exceeding {settings.max_height}")

        opts = self.options
        image_format: Optional[ImageFormat] = None
        format_name = (opts.format or settings.default_format).lower()
        supported = [f for f in settings.supported_formats if f in ImageFormat._value2member_map_]
        if format_name not in supported:
            errors.append(f"format must be one of: {', '.join(supported)}")
        else:
            image_format = ImageFormat(format_name)

        scale = opts.scale if opts.scale is not None else settings.default_scale
        if scale > settings.max_scale:
            errors.append(f"scale must be a positive number not exceeding {settings.max_scale}")

        if errors:
            raise RequestValidationFailed(errors)

        enable_blocking = opts.enable_resource_blocking
        return RenderRequest(
            html_content=self.html_content,
            width=width,
            height=height,
            format=image_format,
            quality=opts.quality if image_format.supports_quality else None,
            scale=scale,
            smart_crop=opts.smart_crop,
            timeout_ms=opts.timeout or settings.default_timeout_ms,
            enable_resource_blocking=(
                settings.enable_resource_blocking if enable_blocking is None else enable_blocking
            ),
            background_color=opts.background_color,
        )


class RenderRequest(BaseModel):
    """A validated render request, bounded by configured limits."""
    model_config = ConfigDict(frozen=True)

    html_content: str = Field(..., min_length=1)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    format: ImageFormat = ImageFormat.PNG
    quality: Optional[int] = Field(None, ge=1, le=100)
    scale: float = Field(1.0, gt=0)
    smart_crop: Optional[bool] = None
    timeout_ms: int = Field(15000, gt=0)
    enable_resource_blocking: bool = False
    background_color: Optional[str] = None

    @property
    def viewport(self) -> Viewport:
        return Viewport(width=self.width, height=self.height, scale=self.scale)


# Pipeline Results
class ReadinessOutcome(BaseModel):
    """Image loading state observed by the readiness waiter."""
    images_total: int = 0
    images_loaded: int = 0
    images_failed: int = 0
    background_images_total: int = 0
    timed_out: bool = False
    fonts_timed_out: bool = False
    elapsed_ms: float = 0.0

    @property
    def images_pending(self) -> int:
        return max(0, self.images_total - self.images_loaded - self.images_failed)


class CaptureResult(BaseModel):
    """Encoded screenshot plus processing metadata."""
    image_data: bytes = Field(..., description="Encoded image bytes", exclude=True)
    format: ImageFormat = Field(..., description="Format of image_data")
    width: int = Field(..., description="Image width in pixels")
    height: int = Field(..., description="Image height in pixels")
    file_size: int = Field(..., description="Size of image_data in bytes")
    duration_ms: float = Field(..., description="Wall-clock processing time")
    mode: RenderMode = Field(..., description="Render mode used")
    bounds: Optional[ContentBounds] = Field(None, description="Captured region")
    readiness: Optional[ReadinessOutcome] = None

    @property
    def media_type(self) -> str:
        return self.format.media_type


# Health and Statistics Models
class HealthStatus(BaseModel):
    """Health check status."""
    status: Literal["ok", "degraded"] = Field(..., description="Overall status")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    uptime: float = Field(..., description="Process uptime in seconds")
    browser: Literal["connected", "disconnected"] = Field(..., description="Browser state")
    performance: Dict[str, Any] = Field(default_factory=dict)
    memory: Dict[str, float] = Field(default_factory=dict)


class StatsResponse(BaseModel):
    """Running statistics of the service."""
    service: str
    version: str
    performance: Dict[str, Any]
    browser: Dict[str, Any]
    memory: Dict[str, float]
    config: Dict[str, Any]


class InfoResponse(BaseModel):
    """Public service information."""
    service: str
    version: str
    environment: str
    config: Dict[str, Any]


# Error Models
class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(..., description="Error summary")
    message: Optional[str] = Field(None, description="Error detail")
    details: Optional[Any] = Field(None, description="Additional error details")
    duration: Optional[str] = Field(None, description="Processing time before failure")
    request_id: Optional[str] = Field(None, description="Request identifier for tracking")
