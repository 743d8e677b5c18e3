# =============================================================================
# delivery_core/offline/local_cache.py
# Local SQLite Key/Value Cache for Offline Operation
# =============================================================================
"""
LocalCache - durable last-known-good snapshot of daily data and stores.

Layout (one SQLite table, JSON values):
- "delivery-tracker-daily-data"    list of {date, deliveries}
- "delivery-tracker-stores"        list of stores
- "delivery-tracker-last-cleanup"  logical day of the last automatic cleanup
- "delivery-tracker-pending-sync"  creations the remote has not acknowledged

The cache never raises to its caller. If the SQLite file cannot be opened or
a statement fails, it logs, switches to an in-memory dict for the rest of the
process (degraded mode), and unreadable values come back as empty.
"""

from __future__ import annotations
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging

from delivery_core.errors import DataValidationError
from delivery_core.models import DailyAggregate, Delivery, Store

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


class LocalCache:
    """
    Key/value snapshot store owned by the reconciliation engine.

    Usage:
        cache = LocalCache(Path("local_data/delivery_tracker.db"))
        cache.initialize()
        cache.upsert_day_delivery("2024-01-10", delivery)
        days = cache.read_all()
    """

    DAILY_DATA_KEY = "delivery-tracker-daily-data"
    STORES_KEY = "delivery-tracker-stores"
    LAST_CLEANUP_KEY = "delivery-tracker-last-cleanup"
    PENDING_SYNC_KEY = "delivery-tracker-pending-sync"
    PROBE_KEY = "__delivery_tracker_probe__"

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS cache_entries (
            key TEXT PRIMARY KEY,
            value TEXT,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """

    def __init__(self, db_path: Union[Path, str] = MEMORY):
        """
        Args:
            db_path: SQLite file, or ":memory:" for a process-local cache
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None
        self._memory: Dict[str, str] = {}
        self._degraded = False
        self._initialized = False

    @property
    def degraded(self) -> bool:
        """True once the durable medium failed and only memory is used."""
        return self._degraded

    def _degrade(self, error: Exception) -> None:
        if not self._degraded:
            logger.warning(f"Local cache unavailable, continuing in memory only: {error}")
        self._degraded = True

    def _get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            if self.db_path != MEMORY:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
        return self._connection

    @contextmanager
    def transaction(self):
        """Context manager for cache transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> None:
        """Create the key/value table, or fall back to memory."""
        if self._initialized:
            return

        try:
            with self.transaction() as conn:
                conn.execute(self.SCHEMA)
            logger.info(f"Local cache initialized at: {self.db_path}")
        except (sqlite3.Error, OSError) as e:
            self._degrade(e)

        self._initialized = True

    # =========================================================================
    # RAW KEY/VALUE ACCESS
    # =========================================================================

    def _get(self, key: str) -> Optional[str]:
        if not self._degraded:
            try:
                row = self._get_connection().execute(
                    "SELECT value FROM cache_entries WHERE key = ?", [key]
                ).fetchone()
                return row["value"] if row else None
            except (sqlite3.Error, OSError) as e:
                self._degrade(e)
        return self._memory.get(key)

    def _set(self, key: str, value: str) -> None:
        self._memory[key] = value
        if self._degraded:
            return
        try:
            with self.transaction() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO cache_entries (key, value, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    [key, value, datetime.now().isoformat()],
                )
        except (sqlite3.Error, OSError) as e:
            self._degrade(e)

    def _delete(self, key: str) -> None:
        self._memory.pop(key, None)
        if self._degraded:
            return
        try:
            with self.transaction() as conn:
                conn.execute("DELETE FROM cache_entries WHERE key = ?", [key])
        except (sqlite3.Error, OSError) as e:
            self._degrade(e)

    def _read_json(self, key: str, default: Any) -> Any:
        raw = self._get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.error(f"Corrupted cache entry {key}, treating as empty: {e}")
            return default

    def _write_json(self, key: str, value: Any) -> None:
        self._set(key, json.dumps(value))

    def is_usable(self) -> bool:
        """Probe the durable medium with a throwaway write/read/delete."""
        if self._degraded:
            return False
        probe = f"probe_{datetime.now().timestamp()}"
        try:
            with self.transaction() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO cache_entries (key, value) VALUES (?, ?)",
                    [self.PROBE_KEY, probe],
                )
                row = conn.execute(
                    "SELECT value FROM cache_entries WHERE key = ?", [self.PROBE_KEY]
                ).fetchone()
                conn.execute("DELETE FROM cache_entries WHERE key = ?", [self.PROBE_KEY])
            return row is not None and row["value"] == probe
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Local cache probe failed: {e}")
            return False

    # =========================================================================
    # DAILY DATA
    # =========================================================================

    def read_all(self) -> List[DailyAggregate]:
        """Last snapshot of every cached day, newest first."""
        days = []
        for entry in self._read_json(self.DAILY_DATA_KEY, []):
            try:
                days.append(DailyAggregate.from_dict(entry))
            except (DataValidationError, KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping unreadable cached day: {e}")
        return sorted(days, key=lambda d: d.date, reverse=True)

    def read_day(self, date: str) -> List[Delivery]:
        for day in self.read_all():
            if day.date == date:
                return list(day.deliveries)
        return []

    def write_all(self, snapshot: List[DailyAggregate]) -> None:
        """Overwrite the whole daily snapshot."""
        ordered = sorted(snapshot, key=lambda d: d.date, reverse=True)
        self._write_json(self.DAILY_DATA_KEY, [day.to_dict() for day in ordered])

    def write_day(self, date: str, deliveries: List[Delivery]) -> None:
        """Replace one day's partition, keeping the others. Empty days are dropped."""
        days = {day.date: day for day in self.read_all()}
        if deliveries:
            days[date] = DailyAggregate(date=date, deliveries=deliveries)
        else:
            days.pop(date, None)
        self.write_all(list(days.values()))

    def upsert_day_delivery(self, date: str, delivery: Delivery) -> None:
        deliveries = self.read_day(date)
        for i, existing in enumerate(deliveries):
            if existing.id == delivery.id:
                deliveries[i] = delivery
                break
        else:
            deliveries.insert(0, delivery)
        self.write_day(date, deliveries)

    def remove_delivery(self, date: str, record_id: str) -> bool:
        """Drop one delivery from a day. Returns False if it was not cached."""
        deliveries = self.read_day(date)
        remaining = [d for d in deliveries if d.id != record_id]
        if len(remaining) == len(deliveries):
            return False
        self.write_day(date, remaining)
        return True

    def find_delivery(self, record_id: str) -> Optional[Delivery]:
        for day in self.read_all():
            found = day.find(record_id)
            if found is not None:
                return found
        return None

    # =========================================================================
    # STORES
    # =========================================================================

    def read_stores(self) -> List[Store]:
        stores = []
        for entry in self._read_json(self.STORES_KEY, []):
            try:
                stores.append(Store.from_dict(entry))
            except (DataValidationError, KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping unreadable cached store: {e}")
        return stores

    def write_stores(self, stores: List[Store]) -> None:
        self._write_json(self.STORES_KEY, [store.to_dict() for store in stores])

    def upsert_store(self, store: Store) -> None:
        stores = [s for s in self.read_stores() if s.id != store.id]
        stores.append(store)
        self.write_stores(sorted(stores, key=lambda s: s.name.lower()))

    def remove_store(self, store_id: str) -> bool:
        stores = self.read_stores()
        remaining = [s for s in stores if s.id != store_id]
        if len(remaining) == len(stores):
            return False
        self.write_stores(remaining)
        return True

    # =========================================================================
    # SCALARS
    # =========================================================================

    def get_last_cleanup_date(self) -> Optional[str]:
        value = self._read_json(self.LAST_CLEANUP_KEY, None)
        return value if isinstance(value, str) else None

    def set_last_cleanup_date(self, date: str) -> None:
        self._write_json(self.LAST_CLEANUP_KEY, date)

    def read_pending(self) -> List[Dict[str, str]]:
        """Creations written locally whose remote write failed."""
        entries = self._read_json(self.PENDING_SYNC_KEY, [])
        return [e for e in entries if isinstance(e, dict) and "id" in e and "table" in e]

    def add_pending(self, table: str, record_id: str, date: Optional[str] = None) -> None:
        entries = [e for e in self.read_pending() if e["id"] != record_id]
        entry = {"table": table, "id": record_id}
        if date:
            entry["date"] = date
        entries.append(entry)
        self._write_json(self.PENDING_SYNC_KEY, entries)

    def remove_pending(self, record_id: str) -> None:
        entries = self.read_pending()
        remaining = [e for e in entries if e["id"] != record_id]
        if len(remaining) != len(entries):
            self._write_json(self.PENDING_SYNC_KEY, remaining)

    def clear(self) -> None:
        """Drop every snapshot (used before a full resync)."""
        for key in (self.DAILY_DATA_KEY, self.STORES_KEY):
            self._delete(key)

    def close(self) -> None:
        """Close the SQLite connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
