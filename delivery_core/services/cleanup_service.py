# =============================================================================
# delivery_core/services/cleanup_service.py
# End-of-Day Retention Cleanup
# =============================================================================
"""
CleanupService - removes delivered orders once the business day ends.

Automatic path: an hourly check purges today's delivered orders once the
local hour reaches the cleanup hour, at most once per logical day. The day
is only marked done after a pass that reached the remote and deleted every
delivered order.
Manual path: force_cleanup() purges immediately and leaves the automatic
end-of-day run in place.

Every delete goes through ReconciliationEngine.delete_delivery(), so it is
remote-first and verified.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from delivery_core.errors import DeliveryTrackerError, handle_error
from delivery_core.offline import ReconciliationEngine
from delivery_core.services.base_service import BaseService


@dataclass
class PurgeResult:
    """Counts of one purge pass over a logical day."""
    removed: int = 0
    remaining: int = 0
    failed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "removed": self.removed,
            "remaining": self.remaining,
            "failed": list(self.failed),
        }


class CleanupService(BaseService):
    """
    Retention policy for terminal (delivered) records.

    Usage:
        cleanup = CleanupService(engine, cleanup_hour=23)
        cleanup.start_monitoring()
        result = await cleanup.force_cleanup()
        print(result.removed, result.remaining)
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        cleanup_hour: int = 23,
        check_interval: float = 3600.0,
        now_fn: Optional[Callable[[], datetime]] = None,
        today_fn: Optional[Callable[[], str]] = None,
    ):
        super().__init__()
        self._engine = engine
        self.cleanup_hour = cleanup_hour
        self.check_interval = check_interval
        self._now = now_fn or datetime.now
        self._today_fn = today_fn
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    def today(self) -> str:
        """Logical day: the engine's when shared, else derived from the clock."""
        if self._today_fn is not None:
            return self._today_fn()
        return self._now().strftime("%Y-%m-%d")

    @property
    def last_cleanup_date(self) -> Optional[str]:
        return self._engine.cache.get_last_cleanup_date()

    # =========================================================================
    # POLICY
    # =========================================================================

    def is_retention_window_open(self) -> bool:
        """True once the local hour has reached the cleanup hour."""
        return self._now().hour >= self.cleanup_hour

    def should_run_cleanup(self, today: Optional[str] = None) -> bool:
        """True unless the automatic cleanup already ran for this day."""
        return self.last_cleanup_date != (today or self.today())

    def next_auto_cleanup(self) -> datetime:
        now = self._now()
        next_run = now.replace(hour=self.cleanup_hour, minute=0, second=0, microsecond=0)
        if now.hour >= self.cleanup_hour:
            next_run += timedelta(days=1)
        return next_run

    # =========================================================================
    # PURGE
    # =========================================================================

    async def purge_terminal_records(self, date: Optional[str] = None) -> PurgeResult:
        """
        Delete every delivered record of one logical day.

        A record that fails to delete is logged, counted in `failed` and
        skipped; the pass continues with the rest.
        """
        date = date or self.today()
        deliveries = await self._engine.get_deliveries_for_date(date)
        delivered = [d for d in deliveries if d.is_delivered]
        result = PurgeResult(remaining=len(deliveries) - len(delivered))

        self.logger.info(
            f"Cleanup of {date}: removing {len(delivered)} delivered, "
            f"keeping {result.remaining} active"
        )

        for delivery in delivered:
            try:
                await self._engine.delete_delivery(delivery.id, date=date)
                result.removed += 1
            except DeliveryTrackerError as e:
                handle_error(e)
                result.failed.append(delivery.id)

        self.logger.info(
            f"Cleanup of {date} completed: {result.removed} removed, "
            f"{result.remaining} remaining, {len(result.failed)} failed"
        )
        return result

    async def check_and_run(self) -> Optional[PurgeResult]:
        """Automatic path: purge today if the window is open and it has not run yet."""
        today = self.today()
        should_run = self.should_run_cleanup(today)
        is_time = self.is_retention_window_open()
        self.logger.debug(f"Cleanup check: should_run={should_run}, is_time={is_time}")

        if not (should_run and is_time):
            return None

        with self.log_operation(f"Automatic cleanup of {today}"):
            result = await self.purge_terminal_records(today)

        # An offline pass only saw the cached day; the next hourly check retries
        if result.failed or not self._engine.is_online:
            self.logger.warning(
                f"Cleanup of {today} incomplete ({len(result.failed)} failed, "
                f"online={self._engine.is_online}); will retry at the next check"
            )
            return result

        self._engine.cache.set_last_cleanup_date(today)
        self._engine.state.last_cleanup_date = today
        return result

    async def force_cleanup(self, date: Optional[str] = None) -> PurgeResult:
        """
        Manual path: purge now, regardless of the hour.

        The day is not recorded, so the automatic end-of-day run still happens.
        """
        self.logger.info("Forced cleanup initiated by user")
        return await self.purge_terminal_records(date)

    def delivered_count(self, date: Optional[str] = None) -> int:
        """Delivered orders of a day in the current working set."""
        date = date or self.today()
        return sum(
            1
            for day in self._engine.daily_data if day.date == date
            for d in day.deliveries if d.is_delivered
        )

    def get_cleanup_status(self) -> Dict[str, Any]:
        return {
            "last_cleanup": self.last_cleanup_date,
            "should_run": self.should_run_cleanup(),
            "is_cleanup_time": self.is_retention_window_open(),
            "next_auto_cleanup": self.next_auto_cleanup().isoformat(),
        }

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def is_monitoring(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_monitoring(self) -> None:
        """Check immediately, then every check_interval seconds."""
        if self.is_monitoring:
            return

        self._stop.clear()
        self._task = asyncio.ensure_future(self._monitor_loop())
        self.logger.info("Cleanup monitoring started")

    async def stop_monitoring(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
        self.logger.info("Cleanup monitoring stopped")

    async def _monitor_loop(self) -> None:
        while not self._stop.is_set():
            try:
                await self.check_and_run()
            except Exception as e:
                self.logger.error(f"Automatic cleanup failed: {e}")

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.check_interval)
                break
            except asyncio.TimeoutError:
                pass
