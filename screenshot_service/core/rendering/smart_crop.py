"""
Smart Crop
==========

Computes a tight bounding box around visible content so captures exclude
empty viewport margin. Element geometry is collected in the page with a
hard cap on the number of elements inspected; filtering and box arithmetic
happen here.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional
import math

from screenshot_service.config.logging import get_logger
from screenshot_service.models.schemas import ContentBounds, CropConfig, Viewport

logger = get_logger(__name__)

# Root containers always span the viewport and would defeat cropping.
ROOT_TAGS = frozenset({"HTML", "HEAD", "BODY"})

ELEMENT_GEOMETRY_SCRIPT = r"""
(maxElements) => {
  const elements = Array.from(document.querySelectorAll('*')).slice(0, maxElements);
  return elements.map((el) => {
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    return {
      tag: el.tagName.toUpperCase(),
      left: rect.left,
      top: rect.top,
      right: rect.right,
      bottom: rect.bottom,
      display: style.display,
      visibility: style.visibility,
      children: el.children.length,
    };
  });
}
"""


@dataclass(frozen=True)
class ElementBox:
    tag: str
    left: float
    top: float
    right: float
    bottom: float
    display: str = "block"
    visibility: str = "visible"
    children: int = 0

    @classmethod
    def from_page(cls, data: dict) -> "ElementBox":
        return cls(
            tag=str(data.get("tag", "")).upper(),
            left=float(data.get("left", 0)),
            top=float(data.get("top", 0)),
            right=float(data.get("right", 0)),
            bottom=float(data.get("bottom", 0)),
            display=str(data.get("display", "block")),
            visibility=str(data.get("visibility", "visible")),
            children=int(data.get("children", 0)),
        )

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    def is_visible(self) -> bool:
        return (
            self.width > 0
            and self.height > 0
            and self.display != "none"
            and self.visibility != "hidden"
        )

    def is_complex(self, config: CropConfig) -> bool:
        return self.children > config.complex_child_threshold or self.tag in config.complex_tags


def content_bounds(
    boxes: Iterable[ElementBox], viewport: Viewport, config: CropConfig
) -> Optional[ContentBounds]:
    """
    Bounding box of qualifying elements, padded and clamped to the viewport.

    Returns:
        ContentBounds, or None when nothing qualifies or the result is smaller
        than ``config.min_content_size`` in either dimension
    """
    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for index, box in enumerate(boxes):
        if index >= config.max_elements:
            break
        if box.tag in ROOT_TAGS or not box.is_visible():
            continue
        if config.skip_complex_elements and box.is_complex(config):
            continue
        min_x = min(min_x, box.left)
        min_y = min(min_y, box.top)
        max_x = max(max_x, box.right)
        max_y = max(max_y, box.bottom)

    if min_x == math.inf:
        return None

    padding = config.effective_padding
    left = max(0, math.floor(min_x - padding))
    top = max(0, math.floor(min_y - padding))
    right = min(viewport.width, math.ceil(max_x + padding))
    bottom = min(viewport.height, math.ceil(max_y + padding))
    width = right - left
    height = bottom - top

    if width <= 0 or height <= 0:
        return None
    if width < config.min_content_size or height < config.min_content_size:
        return None
    return ContentBounds(x=left, y=top, width=width, height=height)


class SmartCropEngine:
    """Computes crop regions for render sessions."""

    def __init__(self, config: CropConfig):
        self.config = config
        self.logger: Any = logger.bind(component="smart_crop")

    async def collect(self, session: Any) -> List[ElementBox]:
        raw = await session.evaluate(ELEMENT_GEOMETRY_SCRIPT, self.config.max_elements)
        return [ElementBox.from_page(item) for item in raw or []]

    async def compute_bounds(self, session: Any, viewport: Viewport) -> Optional[ContentBounds]:
        """Crop region for ``session``, or None to capture the full viewport."""
        boxes = await self.collect(session)
        bounds = content_bounds(boxes, viewport, self.config)
        self.logger.debug(
            "Smart crop computed",
            elements=len(boxes),
            bounds=bounds.as_clip() if bounds else None,
        )
        return bounds
