"""
Admission Control
=================

Bounds the number of concurrently active render sessions. Requests beyond
the limit are rejected immediately instead of queuing behind a fixed-size
browser.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from screenshot_service.config.logging import get_logger
from screenshot_service.core.errors import AdmissionRejected

logger = get_logger(__name__)


class AdmissionController:
    """
    Counter of active sessions capped at ``limit``.

    All mutation happens on the event loop thread without awaiting between
    the check and the update, so no lock is needed.
    """

    def __init__(self, limit: int):
        if limit <= 0:
            raise ValueError("Admission limit must be positive")
        self.limit = limit
        self._active = 0
        self.rejected_total = 0
        self.max_observed = 0
        self.logger: Any = logger.bind(component="admission")

    @property
    def active(self) -> int:
        return self._active

    def try_admit(self) -> bool:
        """Take a slot if one is free."""
        if self._active + 1 > self.limit:
            self.rejected_total += 1
            return False
        self._active += 1
        self.max_observed = max(self.max_observed, self._active)
        return True

    def release(self) -> None:
        """Give back a slot taken by a successful ``try_admit``."""
        if self._active <= 0:
            raise RuntimeError("release() called without a matching admission")
        self._active -= 1

    @asynccontextmanager
    async def slot(self) -> AsyncGenerator[int, None]:
        """
        Hold a slot for the duration of the block.

        Yields:
            Number of active sessions including this one

        Raises:
            AdmissionRejected: If the limit is reached
        """
        if not self.try_admit():
            self.logger.warning("Admission rejected", active=self._active, limit=self.limit)
            raise AdmissionRejected(self._active, self.limit)
        try:
            yield self._active
        finally:
            self.release()
