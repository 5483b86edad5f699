"""
Content Readiness
=================

Waits, within a fixed budget, for fonts, ``<img>`` elements and CSS
background images of a rendered document to finish loading or fail.
Broken or never-resolving references can delay a render but never block
it past its budget; on timeout the partial counts are returned and the
caller captures whatever is on screen.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional
import asyncio
import time

from screenshot_service.config.logging import get_logger
from screenshot_service.models.schemas import ReadinessOutcome, WaitPolicy

logger = get_logger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]

FONTS_READY_SCRIPT = "() => document.fonts.ready.then(() => true)"

# Classifies <img> elements and issues one load probe per background-image
# URL; probe state survives between calls on window.__screenshotBgProbes.
IMAGE_SNAPSHOT_SCRIPT = r"""
() => {
  const images = Array.from(document.images);
  let loaded = 0;
  let failed = 0;
  for (const img of images) {
    if (img.complete) {
      if (img.naturalWidth > 0) loaded++; else failed++;
    }
  }
  const probes = window.__screenshotBgProbes || (window.__screenshotBgProbes = {});
  let backgroundElements = 0;
  for (const el of document.querySelectorAll('*')) {
    const bg = window.getComputedStyle(el).backgroundImage;
    if (!bg || bg === 'none' || !bg.includes('url(')) continue;
    backgroundElements++;
    for (const match of bg.matchAll(/url\(\s*['"]?([^'")]+)['"]?\s*\)/g)) {
      const url = match[1];
      if (url in probes) continue;
      probes[url] = 'pending';
      const probe = new Image();
      probe.onload = () => { probes[url] = 'loaded'; };
      probe.onerror = () => { probes[url] = 'failed'; };
      probe.src = url;
    }
  }
  const states = Object.values(probes);
  return {
    imagesTotal: images.length,
    imagesLoaded: loaded,
    imagesFailed: failed,
    backgroundImagesTotal: backgroundElements,
    backgroundUrlsPending: states.filter((s) => s === 'pending').length,
  };
}
"""


async def poll_until(
    predicate: Callable[[], Awaitable[bool]],
    interval: float,
    deadline: float,
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> bool:
    """
    Evaluate ``predicate`` every ``interval`` seconds until it holds.

    Args:
        predicate: Async condition to test
        interval: Seconds between evaluations
        deadline: Absolute ``clock()`` value after which polling stops
        clock: Monotonic time source
        sleep: Async sleep used between evaluations

    Returns:
        True if the predicate held before the deadline, False otherwise
    """
    if await predicate():
        return True
    while True:
        remaining = deadline - clock()
        if remaining <= 0:
            return False
        await sleep(min(interval, remaining))
        if await predicate():
            return True


@dataclass
class ImageSnapshot:
    images_total: int = 0
    images_loaded: int = 0
    images_failed: int = 0
    background_images_total: int = 0
    background_pending: int = 0

    @classmethod
    def from_page(cls, data: Optional[dict]) -> "ImageSnapshot":
        data = data or {}
        return cls(
            images_total=int(data.get("imagesTotal", 0)),
            images_loaded=int(data.get("imagesLoaded", 0)),
            images_failed=int(data.get("imagesFailed", 0)),
            background_images_total=int(data.get("backgroundImagesTotal", 0)),
            background_pending=int(data.get("backgroundUrlsPending", 0)),
        )

    @property
    def images_pending(self) -> int:
        return max(0, self.images_total - self.images_loaded - self.images_failed)

    @property
    def settled(self) -> bool:
        return self.images_pending == 0 and self.background_pending == 0

    @property
    def resource_count(self) -> int:
        return self.images_total + self.background_images_total


class ContentReadinessWaiter:
    """Bounded wait for a session's visual resources."""

    def __init__(
        self,
        poll_interval_ms: int = 250,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.poll_interval = poll_interval_ms / 1000
        self._clock = clock
        self._sleep = sleep
        self.logger: Any = logger.bind(component="readiness")

    async def wait_for_fonts(self, session: Any, timeout_ms: float) -> bool:
        """Await ``document.fonts.ready``; False when it did not resolve in time."""
        if timeout_ms <= 0:
            return False
        try:
            await asyncio.wait_for(session.evaluate(FONTS_READY_SCRIPT), timeout=timeout_ms / 1000)
            return True
        except asyncio.TimeoutError:
            self.logger.warning("Font loading timeout", timeout_ms=timeout_ms)
            return False

    async def snapshot(self, session: Any) -> ImageSnapshot:
        return ImageSnapshot.from_page(await session.evaluate(IMAGE_SNAPSHOT_SCRIPT))

    async def inspect(
        self, session: Any, policy: WaitPolicy, budget_ms: Optional[float] = None
    ) -> ReadinessOutcome:
        """Fonts plus a single image classification, without polling."""
        start = self._clock()
        font_timeout_ms: float = policy.font_timeout_ms
        if budget_ms is not None:
            font_timeout_ms = min(font_timeout_ms, max(budget_ms, 0))
        fonts_ready = await self.wait_for_fonts(session, font_timeout_ms)
        snap = await self.snapshot(session)
        return self._outcome(snap, timed_out=False, fonts_ready=fonts_ready, start=start)

    async def await_ready(
        self,
        session: Any,
        policy: WaitPolicy,
        budget_ms: float,
        fonts_ready: Optional[bool] = None,
    ) -> ReadinessOutcome:
        """
        Wait for fonts and images within ``budget_ms``.

        Args:
            session: Render session exposing ``evaluate``
            policy: Wait policy of the render mode
            budget_ms: Overall budget for this wait
            fonts_ready: Result of an earlier font wait; skips the font wait when given

        Returns:
            ReadinessOutcome with the last observed counts
        """
        start = self._clock()
        deadline = start + max(budget_ms, 0) / 1000

        def remaining_ms() -> float:
            return max(0.0, (deadline - self._clock()) * 1000)

        if fonts_ready is None:
            fonts_ready = await self.wait_for_fonts(
                session, min(policy.font_timeout_ms, remaining_ms())
            )

        latest = await self.snapshot(session)
        timed_out = False
        if not latest.settled:

            async def settled() -> bool:
                nonlocal latest
                latest = await self.snapshot(session)
                return latest.settled

            timed_out = not await poll_until(
                settled, self.poll_interval, deadline, clock=self._clock, sleep=self._sleep
            )

        if not timed_out:
            delay_ms = min(policy.settle_delay_ms(latest.resource_count), remaining_ms())
            if delay_ms > 0:
                await self._sleep(delay_ms / 1000)

        outcome = self._outcome(latest, timed_out=timed_out, fonts_ready=fonts_ready, start=start)
        log = self.logger.warning if timed_out else self.logger.debug
        log(
            "Image readiness finished",
            images_total=outcome.images_total,
            images_loaded=outcome.images_loaded,
            images_failed=outcome.images_failed,
            background_images=outcome.background_images_total,
            timed_out=timed_out,
            elapsed_ms=round(outcome.elapsed_ms, 1),
        )
        return outcome

    def _outcome(
        self, snap: ImageSnapshot, timed_out: bool, fonts_ready: bool, start: float
    ) -> ReadinessOutcome:
        return ReadinessOutcome(
            images_total=snap.images_total,
            images_loaded=snap.images_loaded,
            images_failed=snap.images_failed,
            background_images_total=snap.background_images_total,
            timed_out=timed_out,
            fonts_timed_out=not fonts_ready,
            elapsed_ms=(self._clock() - start) * 1000,
        )
