# =============================================================================
# delivery_core/context.py
# Explicit Wiring of the Tracker Components
# =============================================================================
"""
TrackerContext - one object holding every component of a running tracker.

Built once at startup and handed to whatever consumes the tracker. Nothing
is a module-level singleton, so several independent trackers can live in
one process (tests run two "devices" against one remote this way).

Usage:
    context = await build_context(load_config())
    await context.start()
    ...
    await context.shutdown()
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Optional
import logging

from delivery_core.config import TrackerConfig
from delivery_core.data import RemoteStoreClient
from delivery_core.offline import (
    ConnectionManager,
    LocalCache,
    ReconciliationEngine,
    RefreshScheduler,
    SyncState,
)
from delivery_core.services import CleanupService, ExportService

logger = logging.getLogger(__name__)


@dataclass
class TrackerContext:
    config: TrackerConfig
    state: SyncState
    remote: RemoteStoreClient
    cache: LocalCache
    connection: ConnectionManager
    engine: ReconciliationEngine
    scheduler: RefreshScheduler
    cleanup: CleanupService
    exporter: ExportService

    async def start(self) -> None:
        """
        Initialize the engine, then start the refresh and cleanup timers.

        Raises:
            RemoteUnavailable: remote unreachable in strict startup mode
        """
        await self.engine.initialize()
        self.scheduler.start()
        self.cleanup.start_monitoring()
        logger.info(f"Delivery tracker started ({self.config.startup_mode.value} mode)")

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        await self.cleanup.stop_monitoring()
        await self.remote.close()
        self.cache.close()
        logger.info("Delivery tracker stopped")


async def build_context(
    config: Optional[TrackerConfig] = None,
    remote: Optional[RemoteStoreClient] = None,
    today_fn: Optional[Callable[[], str]] = None,
) -> TrackerContext:
    """
    Construct every component from configuration.

    Args:
        config: Tracker configuration (defaults when None)
        remote: Pre-built remote client; created from config credentials if None
        today_fn: Override for the current logical day
    """
    config = config or TrackerConfig()
    if remote is None:
        remote = await RemoteStoreClient.connect(config)

    state = SyncState()
    cache = LocalCache(config.local_db_path)
    connection = ConnectionManager(remote, state)
    engine = ReconciliationEngine(remote, cache, connection, config, today_fn=today_fn)

    return TrackerContext(
        config=config,
        state=state,
        remote=remote,
        cache=cache,
        connection=connection,
        engine=engine,
        scheduler=RefreshScheduler(
            engine,
            interval=config.refresh_interval_seconds,
            background_reconnect=config.background_reconnect,
        ),
        cleanup=CleanupService(
            engine,
            cleanup_hour=config.cleanup_hour,
            check_interval=config.cleanup_check_interval_seconds,
            today_fn=engine.today,
        ),
        exporter=ExportService(today_fn=today_fn),
    )
