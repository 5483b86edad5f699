"""
Render Mode Selection
=====================

Classifies HTML payloads into a performance tier from a cheap count of the
visual resources they reference. Pages with no images skip settle polling;
image-heavy pages get the full readiness protocol.
"""

from dataclasses import dataclass
import re

from screenshot_service.config.settings import Settings
from screenshot_service.models.schemas import RenderMode, WaitPolicy

IMG_TAG_PATTERN = re.compile(r"<img[^>]*>", re.IGNORECASE)
BACKGROUND_URL_PATTERN = re.compile(r"background-image\s*:\s*url", re.IGNORECASE)

FAST_MODE_MAX_RESOURCES = 2


@dataclass(frozen=True)
class ResourceEstimate:
    img_tags: int
    background_images: int

    @property
    def total(self) -> int:
        return self.img_tags + self.background_images


def estimate_resources(html_content: str) -> ResourceEstimate:
    """Count ``<img>`` tags and ``background-image: url(...)`` declarations."""
    return ResourceEstimate(
        img_tags=len(IMG_TAG_PATTERN.findall(html_content)),
        background_images=len(BACKGROUND_URL_PATTERN.findall(html_content)),
    )


def classify(html_content: str) -> RenderMode:
    """Pick the render mode for ``html_content``."""
    total = estimate_resources(html_content).total
    if total == 0:
        return RenderMode.ULTRAFAST
    if total <= FAST_MODE_MAX_RESOURCES:
        return RenderMode.FAST
    return RenderMode.STANDARD


def is_complete_document(html_content: str) -> bool:
    return "<!DOCTYPE" in html_content or "<html" in html_content


class RenderModeSelector:
    """Maps payloads to modes and modes to their configured wait policy."""

    def __init__(self, settings: Settings):
        self._policies = {mode: settings.wait_policy(mode) for mode in RenderMode}
        self._skip_crop_in_fast = settings.disable_smart_crop_in_fast_mode

    def classify(self, html_content: str) -> RenderMode:
        return classify(html_content)

    def policy_for(self, mode: RenderMode) -> WaitPolicy:
        return self._policies[mode]

    def skips_smart_crop(self, mode: RenderMode) -> bool:
        """Whether cropping is traded away for latency in ``mode``."""
        if mode is RenderMode.ULTRAFAST:
            return True
        return mode is RenderMode.FAST and self._skip_crop_in_fast
