"""Periodic watchdog for pending campaign sends.

``PendingSendMonitor`` wakes up every ``interval`` seconds and asks the
tracker to retry sends whose current attempt has been pending for longer
than the confirmation timeout.  Every ``cleanup_interval`` seconds it also
purges history older than the retention horizon.  A failing tick is logged
and does not stop the loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from sharpsend.safeguards.tracker import SendSafeguardService

LOGGER = logging.getLogger(__name__)


class PendingSendMonitor:
    """Runs the stuck-send check and record cleanup on a timer."""

    def __init__(
        self,
        service: SendSafeguardService,
        interval: Optional[float] = None,
        cleanup_interval: Optional[float] = None,
    ) -> None:
        settings = service.settings
        self._service = service
        self._interval = (
            settings.monitor_interval_seconds if interval is None else interval
        )
        self._cleanup_interval = (
            settings.cleanup_interval_seconds
            if cleanup_interval is None
            else cleanup_interval
        )
        if self._interval <= 0:
            raise ValueError("interval must be positive")
        self._task: Optional[asyncio.Task[None]] = None
        self._last_cleanup = 0.0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the monitor on the running event loop (idempotent)."""
        if self.running:
            return
        self._last_cleanup = time.monotonic()
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="pending-send-monitor"
        )
        LOGGER.info(
            "Pending send monitor started (every %ss, cleanup every %ss)",
            self._interval,
            self._cleanup_interval,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        LOGGER.info("Pending send monitor stopped")

    async def tick(self) -> None:
        """Run one monitor pass."""
        handled = await self._service.check_stuck_sends()
        if handled:
            LOGGER.info("Monitor handled stuck campaigns: %s", ", ".join(handled))

        if time.monotonic() - self._last_cleanup >= self._cleanup_interval:
            self._last_cleanup = time.monotonic()
            self._service.cleanup_old_records()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except Exception:
                LOGGER.exception("Pending send monitor tick failed")


__all__ = ["PendingSendMonitor"]
