# =============================================================================
# delivery_core/offline/reconciliation_engine.py
# Reconciliation Engine - Single API for Local/Remote Record State
# =============================================================================
"""
ReconciliationEngine - decides what the current set of records is.

Reads:
- Reachable: fetch from the remote, overwrite the local cache, return it
- Unreachable: return the last local snapshot, with no remote call

Writes:
- add/update: local cache first (optimistic), then remote. A failed remote
  write leaves the local copy in place and marks the remote unreachable.
- delete: remote first, verified by re-reading the day, then local

Reconciliation (periodic tick, focus, forced refresh):
    reconciled(date) = R  U  (Local[date] \\ R)      matched by id
The remote copy wins for every id it knows; records only this device has
are kept. Applying it again to its own output changes nothing.

All methods run on one event loop. Between two awaits nothing else touches
the cache, but another refresh may run while a remote call is awaited, so
local state is always re-read after the await.
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date as date_type
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
import logging

from delivery_core.config import StartupMode, TrackerConfig
from delivery_core.data import DELIVERIES_TABLE, STORES_TABLE, RemoteStoreClient
from delivery_core.errors import (
    RecordNotFound,
    RemoteUnavailable,
    SchemaMissing,
    VerificationFailed,
    handle_error,
)
from delivery_core.models import (
    DailyAggregate,
    Delivery,
    Store,
    ViewMode,
    build_daily_data,
    new_delivery,
    new_store,
    slice_window,
)
from delivery_core.offline.connection_manager import ConnectionManager, SyncState
from delivery_core.offline.local_cache import LocalCache

logger = logging.getLogger(__name__)

# Remote failures that leave the local copy in charge
REMOTE_FAILURES = (RemoteUnavailable, SchemaMissing)


def merge_day(remote: Iterable[Delivery], local: Iterable[Delivery]) -> List[Delivery]:
    """
    Reconcile one logical day.

    Every remote record is taken as-is; local records are kept only when the
    remote does not know their id. Remote order first, then local-only order.
    """
    remote = list(remote)
    remote_ids = {d.id for d in remote}
    return remote + [d for d in local if d.id not in remote_ids]


@dataclass
class WriteResult:
    """Outcome of an add/update. The record is always saved locally."""
    record: Union[Delivery, Store]
    synced: bool
    notice: Optional[str] = None

    def __bool__(self) -> bool:
        return self.synced


class ReconciliationEngine:
    """
    Orchestrates the local cache and the remote store.

    Usage:
        engine = ReconciliationEngine(remote, cache, connection, config)
        await engine.initialize()
        result = await engine.add_delivery(store, customer_name="A. Rao", order_price=120)
        if not result:
            show(result.notice)
        today = await engine.reconcile(engine.today())
    """

    def __init__(
        self,
        remote: RemoteStoreClient,
        cache: LocalCache,
        connection: ConnectionManager,
        config: Optional[TrackerConfig] = None,
        today_fn: Optional[Callable[[], str]] = None,
    ):
        """
        Args:
            remote: Remote store client
            cache: Local cache (owned exclusively by this engine)
            connection: Reachability state holder
            config: Tracker configuration
            today_fn: Returns the current logical day as YYYY-MM-DD
        """
        self._remote = remote
        self._cache = cache
        self._connection = connection
        self._config = config or TrackerConfig()
        self._today_fn = today_fn or (lambda: date_type.today().isoformat())
        self._daily_data: List[DailyAggregate] = []
        self._stores: List[Store] = []
        self._initialized = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_online(self) -> bool:
        return self._connection.is_online

    @property
    def state(self) -> SyncState:
        return self._connection.state

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def cache(self) -> LocalCache:
        return self._cache

    @property
    def daily_data(self) -> List[DailyAggregate]:
        """Working set as of the last read, newest day first."""
        return list(self._daily_data)

    @property
    def stores(self) -> List[Store]:
        return list(self._stores)

    @property
    def pending_sync_count(self) -> int:
        return len(self._cache.read_pending())

    def today(self) -> str:
        return self._today_fn()

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    async def initialize(self) -> None:
        """
        Probe the remote, prepare its schema and load the working set.

        Best-effort mode serves the local cache when the remote cannot be
        reached or its schema cannot be prepared.

        Raises:
            RemoteUnavailable: remote unreachable in strict startup mode
            SchemaMissing: schema could not be prepared in strict startup mode
        """
        if self._initialized:
            return

        self._cache.initialize()
        self.state.last_cleanup_date = self._cache.get_last_cleanup_date()

        if not await self._connection.check_connection():
            if self._config.startup_mode is StartupMode.STRICT:
                raise RemoteUnavailable(
                    "Remote store is required but unreachable at startup",
                    operation="initialize",
                    recoverable=False,
                )
            logger.warning("Remote store unreachable at startup; serving local cache")
            self._serve_cache_snapshot()
            return

        try:
            await self._ensure_schema_once()
        except REMOTE_FAILURES as e:
            if self._config.startup_mode is StartupMode.STRICT:
                raise
            handle_error(e)
            logger.warning("Remote schema not ready at startup; serving local cache")
            self._serve_cache_snapshot()
            return

        await self.get_daily_data()
        await self.get_stores()

        self._initialized = True
        logger.info(
            f"ReconciliationEngine initialized. Online: {self.is_online}, "
            f"days: {len(self._daily_data)}, stores: {len(self._stores)}"
        )

    def _serve_cache_snapshot(self) -> None:
        self._daily_data = self._cache.read_all()
        self._stores = self._cache.read_stores()
        self._initialized = True

    async def _ensure_schema_once(self) -> None:
        """Run ensure_schema() at most once per process lifetime."""
        if self.state.schema_ready:
            return
        with self._remote_guard():
            await self._remote.ensure_schema()
        self._connection.mark_schema_ready()

    @contextmanager
    def _remote_guard(self):
        """Flip to unreachable when a remote call fails for transport reasons."""
        try:
            yield
        except RemoteUnavailable as e:
            self._connection.mark_unreachable(e.message)
            raise

    # =========================================================================
    # READS
    # =========================================================================

    async def get_daily_data(self) -> List[DailyAggregate]:
        """All days, newest first. Remote when reachable, else the local snapshot."""
        if self.is_online:
            await self.flush_pending()

        if self.is_online:
            try:
                with self._remote_guard():
                    deliveries = await self._remote.list_all()
                days = build_daily_data(deliveries)
                self._cache.write_all(days)
                self._daily_data = days
                logger.debug(f"Retrieved {len(days)} days of data from remote")
                return list(days)
            except REMOTE_FAILURES as e:
                self._log_fallback(e, "Falling back to local daily data")

        self._daily_data = self._cache.read_all()
        return list(self._daily_data)

    async def get_stores(self) -> List[Store]:
        """All stores by name. Remote when reachable, else the local snapshot."""
        if self.is_online:
            try:
                with self._remote_guard():
                    stores = await self._remote.list_stores()
                self._cache.write_stores(stores)
                self._stores = stores
                logger.debug(f"Retrieved {len(stores)} stores from remote")
                return list(stores)
            except REMOTE_FAILURES as e:
                self._log_fallback(e, "Falling back to local stores")

        self._stores = self._cache.read_stores()
        return list(self._stores)

    async def refresh_stores(self) -> List[Store]:
        """Unconditional reload of the store list (remote when reachable)."""
        return await self.get_stores()

    def get_today_data(self) -> DailyAggregate:
        """Today's aggregate from the working set (empty if nothing recorded)."""
        return slice_window(self._daily_data, ViewMode.DAILY, self.today())[0]

    def get_data_for_window(self, mode: Union[ViewMode, str]) -> List[DailyAggregate]:
        """Trailing 1/7/30 days of the working set."""
        return slice_window(self._daily_data, ViewMode(mode), self.today())

    async def get_deliveries_for_date(self, date: str) -> List[Delivery]:
        """Current record set of one day (reconciled when reachable)."""
        day = await self.reconcile(date)
        return list(day.deliveries)

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def reconcile(self, date: str) -> DailyAggregate:
        """
        Merge the remote and local views of one day and store the result.

        Unreachable: returns the cached day without calling the remote.
        """
        if not self.is_online:
            return self._load_cached_day(date)

        try:
            with self._remote_guard():
                remote_set = await self._remote.list_by_date(date)
        except REMOTE_FAILURES as e:
            self._log_fallback(e, f"Reconcile of {date} skipped, using local data")
            return self._load_cached_day(date)

        # Read after the await: writes that landed meanwhile must be included
        local = self._cache.read_day(date)
        merged = merge_day(remote_set, local)
        self._cache.write_day(date, merged)
        self._set_working_day(date, merged)

        local_only = len(merged) - len(remote_set)
        logger.debug(f"Reconciled {date}: {len(remote_set)} remote, {local_only} local-only")
        return DailyAggregate(date=date, deliveries=merged)

    async def reconcile_all(self) -> List[DailyAggregate]:
        """reconcile() over every day known remotely or locally."""
        if not self.is_online:
            self._daily_data = self._cache.read_all()
            return list(self._daily_data)

        try:
            with self._remote_guard():
                remote_all = await self._remote.list_all()
        except REMOTE_FAILURES as e:
            self._log_fallback(e, "Full reconcile skipped, using local data")
            self._daily_data = self._cache.read_all()
            return list(self._daily_data)

        remote_days = {d.date: d.deliveries for d in build_daily_data(remote_all)}
        local_days = {d.date: d.deliveries for d in self._cache.read_all()}

        merged = []
        for date in set(remote_days) | set(local_days):
            deliveries = merge_day(remote_days.get(date, ()), local_days.get(date, ()))
            if deliveries:
                merged.append(DailyAggregate(date=date, deliveries=deliveries))
        merged.sort(key=lambda d: d.date, reverse=True)

        self._cache.write_all(merged)
        self._daily_data = merged
        return list(merged)

    async def refresh_tick(self) -> DailyAggregate:
        """One periodic/focus refresh: reconcile today, reload stores."""
        await self.flush_pending()
        today = await self.reconcile(self.today())
        await self.refresh_stores()
        return today

    async def force_refresh(self) -> List[DailyAggregate]:
        """Push pending creations, reconcile every day and reload stores."""
        await self.flush_pending()
        days = await self.reconcile_all()
        await self.refresh_stores()
        return days

    async def clear_and_resync(self) -> List[DailyAggregate]:
        """
        Drop the local snapshot and rebuild it from the remote.

        Pending creations are pushed first so they are not lost.
        """
        if not self.is_online:
            raise RemoteUnavailable(
                "Resync requires a connection to the remote store",
                operation="clear_and_resync",
            )
        await self.flush_pending()
        if self.pending_sync_count:
            raise RemoteUnavailable(
                "Unsynced records could not be sent; resync aborted",
                operation="clear_and_resync",
            )
        self._cache.clear()
        days = await self.get_daily_data()
        await self.refresh_stores()
        logger.info(f"Cleared local data and resynced {len(days)} days")
        return days

    # =========================================================================
    # WRITES
    # =========================================================================

    async def add_store(
        self,
        name: str,
        address: Optional[str] = None,
        contact: Optional[str] = None,
        price_per_order: Optional[float] = None,
    ) -> WriteResult:
        store = new_store(name, address=address, contact=contact, price_per_order=price_per_order)
        self._cache.upsert_store(store)
        self._upsert_working_store(store)
        return await self._push(STORES_TABLE, store, queue_on_failure=True)

    async def update_store(self, store_id: str, patch: Dict[str, Any]) -> WriteResult:
        existing = self._find_store(store_id)
        if existing is None:
            await self.get_stores()
            existing = self._find_store(store_id)
            if existing is None:
                raise RecordNotFound(
                    "This store may have been deleted",
                    record_id=store_id,
                    record_type="store",
                )

        updated = existing.with_updates(patch)
        self._cache.upsert_store(updated)
        self._upsert_working_store(updated)
        return await self._push(STORES_TABLE, updated)

    async def add_delivery(
        self,
        store: Store,
        date: Optional[str] = None,
        **fields: Any,
    ) -> WriteResult:
        """
        Create a delivery for a store (today unless a date is given).

        Extra keyword arguments are the delivery fields accepted by
        new_delivery(): customer_name, phone_number, order_price, ...
        """
        delivery = new_delivery(store, date=date or self.today(), **fields)
        self._cache.upsert_day_delivery(delivery.date, delivery)
        self._upsert_working_delivery(delivery)
        return await self._push(DELIVERIES_TABLE, delivery, queue_on_failure=True)

    async def add_deliveries(
        self,
        store: Store,
        orders: List[Dict[str, Any]],
        date: Optional[str] = None,
    ) -> List[WriteResult]:
        """Bulk add. Each order is written separately, in order."""
        results = []
        for order in orders:
            order = dict(order)
            order_date = order.pop("date", None) or date
            results.append(await self.add_delivery(store, date=order_date, **order))
        synced = sum(1 for r in results if r.synced)
        logger.info(f"Bulk add for {store.name}: {len(results)} saved, {synced} synced")
        return results

    async def update_delivery(self, record_id: str, patch: Dict[str, Any]) -> WriteResult:
        """
        Apply a partial update to a delivery.

        Raises:
            RecordNotFound: the id is absent even after re-fetching
        """
        existing = self._find_delivery(record_id)
        if existing is None:
            logger.warning(f"Attempted to update unknown delivery {record_id}; re-fetching")
            await self.get_daily_data()
            existing = self._find_delivery(record_id)
            if existing is None:
                raise RecordNotFound(
                    "This delivery may have been deleted",
                    record_id=record_id,
                    record_type="delivery",
                )

        updated = existing.with_updates(patch)
        if updated.date != existing.date:
            self._cache.remove_delivery(existing.date, record_id)
            self._remove_working_delivery(existing.date, record_id)
        self._cache.upsert_day_delivery(updated.date, updated)
        self._upsert_working_delivery(updated)
        return await self._push(DELIVERIES_TABLE, updated)

    async def _push(
        self,
        table: str,
        record: Union[Delivery, Store],
        queue_on_failure: bool = False,
    ) -> WriteResult:
        """Send a locally saved record to the remote."""
        if not self.is_online:
            if queue_on_failure:
                self._cache.add_pending(table, record.id, getattr(record, "date", None))
            return WriteResult(record, synced=False, notice=handle_error(
                RemoteUnavailable("Remote store is unreachable", operation=f"save {table}"),
                log_error=False,
            ))

        try:
            with self._remote_guard():
                await self._save_remote(table, record)
        except REMOTE_FAILURES as e:
            if queue_on_failure:
                self._cache.add_pending(table, record.id, getattr(record, "date", None))
            return WriteResult(record, synced=False, notice=handle_error(e))

        self._cache.remove_pending(record.id)
        return WriteResult(record, synced=True)

    async def _save_remote(self, table: str, record: Union[Delivery, Store]) -> None:
        if table == DELIVERIES_TABLE:
            await self._remote.save_delivery(record)
        else:
            await self._remote.save_store(record)

    async def flush_pending(self) -> int:
        """
        Re-send creations whose remote write failed earlier.

        Stops at the first transport failure. Returns the number sent.
        """
        pending = self._cache.read_pending()
        if not pending or not self.is_online:
            return 0

        flushed = 0
        for entry in pending:
            if entry["table"] == DELIVERIES_TABLE:
                record = self._cache.find_delivery(entry["id"])
            else:
                record = next((s for s in self._cache.read_stores() if s.id == entry["id"]), None)

            if record is None:
                self._cache.remove_pending(entry["id"])
                continue

            try:
                with self._remote_guard():
                    await self._save_remote(entry["table"], record)
            except REMOTE_FAILURES as e:
                logger.warning(f"Stopped sending unsynced records: {e.message}")
                break

            self._cache.remove_pending(entry["id"])
            flushed += 1

        if flushed:
            logger.info(f"Sent {flushed} unsynced records to the remote store")
        return flushed

    # =========================================================================
    # DELETES
    # =========================================================================

    async def delete_delivery(self, record_id: str, date: Optional[str] = None) -> None:
        """
        Delete remotely, verify the day no longer lists it, then delete locally.

        Raises:
            RemoteUnavailable: remote not reachable (nothing is deleted)
            RecordNotFound: the id is unknown even after re-fetching
            VerificationFailed: the remote still lists the id
        """
        if date is None:
            existing = self._find_delivery(record_id) or self._cache.find_delivery(record_id)
            if existing is None:
                await self.get_daily_data()
                existing = self._find_delivery(record_id)
                if existing is None:
                    raise RecordNotFound(
                        "This delivery may have been deleted",
                        record_id=record_id,
                        record_type="delivery",
                    )
            date = existing.date

        if not self.is_online:
            raise RemoteUnavailable(
                "Deleting requires a connection to the remote store",
                operation="delete delivery",
            )

        with self._remote_guard():
            await self._remote.delete(DELIVERIES_TABLE, record_id)
            remaining = await self._remote.list_by_date(date)

        if any(d.id == record_id for d in remaining):
            raise VerificationFailed(
                f"Delivery {record_id} still exists after deletion",
                record_id=record_id,
                date=date,
            )

        self._cache.remove_delivery(date, record_id)
        self._cache.remove_pending(record_id)
        self._remove_working_delivery(date, record_id)
        logger.info(f"Deleted delivery {record_id}; {len(remaining)} remain on {date}")

    async def delete_store(self, store_id: str) -> None:
        """
        Delete a store remotely, verify, then locally.

        Its deliveries are left untouched and keep their store_name snapshot.
        """
        if not self.is_online:
            raise RemoteUnavailable(
                "Deleting requires a connection to the remote store",
                operation="delete store",
            )

        with self._remote_guard():
            await self._remote.delete(STORES_TABLE, store_id)
            remaining = await self._remote.list_stores()

        if any(s.id == store_id for s in remaining):
            raise VerificationFailed(
                f"Store {store_id} still exists after deletion",
                record_id=store_id,
            )

        self._cache.remove_store(store_id)
        self._cache.remove_pending(store_id)
        self._stores = [s for s in self._stores if s.id != store_id]
        logger.info(f"Deleted store {store_id}")

    # =========================================================================
    # CONNECTIVITY
    # =========================================================================

    async def test_remote_connection(self) -> bool:
        """Probe the remote; a successful probe makes it reachable again."""
        return await self._connection.check_connection()

    async def reconnect(self) -> bool:
        """
        Probe, prepare the schema if needed, push pending creations and refresh.

        Returns:
            True if the remote is reachable afterwards
        """
        logger.info("Reconnecting to remote store...")
        if not await self._connection.check_connection():
            return False

        try:
            await self._ensure_schema_once()
        except (RemoteUnavailable, SchemaMissing) as e:
            handle_error(e)
            return False

        await self.force_refresh()
        return self.is_online

    def get_status(self) -> Dict[str, Any]:
        """Engine status for display."""
        status = self._connection.get_status_display()
        status.update({
            "initialized": self._initialized,
            "pending_sync": self.pending_sync_count,
            "cache_degraded": self._cache.degraded,
            "days": len(self._daily_data),
            "stores": len(self._stores),
            "today": self.today(),
        })
        return status

    # =========================================================================
    # WORKING SET
    # =========================================================================

    def _load_cached_day(self, date: str) -> DailyAggregate:
        deliveries = self._cache.read_day(date)
        self._set_working_day(date, deliveries)
        return DailyAggregate(date=date, deliveries=deliveries)

    def _find_delivery(self, record_id: str) -> Optional[Delivery]:
        for day in self._daily_data:
            found = day.find(record_id)
            if found is not None:
                return found
        return None

    def _find_store(self, store_id: str) -> Optional[Store]:
        return next((s for s in self._stores if s.id == store_id), None)

    def _set_working_day(self, date: str, deliveries: List[Delivery]) -> None:
        days = [d for d in self._daily_data if d.date != date]
        if deliveries:
            days.append(DailyAggregate(date=date, deliveries=deliveries))
        self._daily_data = sorted(days, key=lambda d: d.date, reverse=True)

    def _upsert_working_delivery(self, delivery: Delivery) -> None:
        current = next((d for d in self._daily_data if d.date == delivery.date), None)
        deliveries = list(current.deliveries) if current else []
        for i, existing in enumerate(deliveries):
            if existing.id == delivery.id:
                deliveries[i] = delivery
                break
        else:
            deliveries.insert(0, delivery)
        self._set_working_day(delivery.date, deliveries)

    def _remove_working_delivery(self, date: str, record_id: str) -> None:
        current = next((d for d in self._daily_data if d.date == date), None)
        if current is not None:
            self._set_working_day(date, [d for d in current.deliveries if d.id != record_id])

    def _upsert_working_store(self, store: Store) -> None:
        stores = [s for s in self._stores if s.id != store.id] + [store]
        self._stores = sorted(stores, key=lambda s: s.name.lower())
