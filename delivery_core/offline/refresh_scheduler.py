# =============================================================================
# delivery_core/offline/refresh_scheduler.py
# Periodic and Focus-Triggered Refresh
# =============================================================================
"""
RefreshScheduler - keeps the current day in step with other devices.

- Every interval while reachable: push unsynced creations, reconcile today,
  reload stores
- Every interval while unreachable (if enabled): probe and reconnect
- on_focus(): the same refresh, run immediately
"""

from __future__ import annotations
import asyncio
from typing import Optional
import logging

from delivery_core.offline.reconciliation_engine import ReconciliationEngine

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """
    Drives ReconciliationEngine refreshes on the running event loop.

    Usage:
        scheduler = RefreshScheduler(engine, interval=60)
        scheduler.start()
        ...
        await scheduler.on_focus()   # window regained focus
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        interval: float = 60.0,
        background_reconnect: bool = True,
    ):
        self._engine = engine
        self.interval = interval
        self.background_reconnect = background_reconnect
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self.ticks = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the refresh loop on the current event loop."""
        if self.is_running:
            return

        self._stop.clear()
        self._task = asyncio.ensure_future(self._refresh_loop())
        logger.info(f"Refresh scheduler started (every {self.interval}s)")

    async def stop(self) -> None:
        """Stop the loop and wait for an in-flight tick to finish."""
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Refresh scheduler stopped")

    async def _refresh_loop(self) -> None:
        while not self._stop.is_set():
            # Wait for interval or stop signal
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Refresh error: {e}")

    async def tick(self) -> bool:
        """
        Run one scheduled refresh.

        Returns:
            True if a refresh ran against the remote
        """
        self.ticks += 1
        if self._engine.is_online:
            await self._engine.refresh_tick()
            return self._engine.is_online

        if self.background_reconnect:
            return await self._engine.reconnect()

        logger.debug("Skipping refresh: remote unreachable")
        return False

    async def on_focus(self) -> bool:
        """Refresh immediately when the consuming surface regains focus."""
        if not self._engine.is_online:
            logger.debug("Focus refresh skipped: remote unreachable")
            return False

        logger.debug("Focus regained, refreshing today")
        await self._engine.refresh_tick()
        return self._engine.is_online
