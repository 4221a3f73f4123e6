"""Cooperative cancellation for long provider waits."""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from services.errors import TaskCancelled


class CancellationToken:
    """Cancel flag with an optional deadline.

    Polling loops sleep through :meth:`sleep` so that a client disconnect or
    an expired deadline wakes them immediately instead of after the full
    interval.
    """

    def __init__(self, deadline_seconds: Optional[float] = None):
        self._event = asyncio.Event()
        self._deadline: Optional[float] = None
        if deadline_seconds and deadline_seconds > 0:
            self._deadline = time.monotonic() + float(deadline_seconds)
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Operation cancelled") -> None:
        if self.reason is None:
            self.reason = reason
        self._event.set()

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            self.cancel("Deadline exceeded")
            return True
        return False

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise TaskCancelled(self.reason or "Operation cancelled")

    async def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``; raise TaskCancelled if cancelled meanwhile."""
        self.raise_if_cancelled()
        timeout = max(float(seconds), 0.0)
        remaining = self.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        self.raise_if_cancelled()
