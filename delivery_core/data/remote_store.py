# =============================================================================
# delivery_core/data/remote_store.py
# Supabase-backed Remote Store Client (async)
# Handles schema bootstrap, CRUD statements and the self-healing retry
# =============================================================================
"""
RemoteStoreClient - thin async wrapper around the hosted Postgres (Supabase).

Every operation goes through _execute(), which:
- bounds the call with the configured timeout
- turns transport/auth failures into RemoteUnavailable
- turns "missing table/column" failures into SchemaMissing, runs
  ensure_schema() once and retries the operation exactly once more

Raw httpx / postgrest exceptions never leave this module.

Usage:
    client = await RemoteStoreClient.connect(config)
    await client.ensure_schema()
    deliveries = await client.list_by_date("2024-01-10")
"""

from __future__ import annotations
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from delivery_core.config import TrackerConfig
from delivery_core.errors import (
    ConfigurationError,
    DataValidationError,
    RemoteUnavailable,
    SchemaMissing,
)
from delivery_core.models import Delivery, Store

logger = logging.getLogger(__name__)

STORES_TABLE = "stores"
DELIVERIES_TABLE = "deliveries"

# Postgres / PostgREST codes meaning the table or column does not exist
MISSING_SCHEMA_CODES = {
    "42P01",      # undefined_table
    "42703",      # undefined_column
    "PGRST204",   # column not found in schema cache
    "PGRST205",   # table not found in schema cache
}

# Supabase returns at most this many rows per request
PAGE_SIZE = 1000


def _decode_rows(rows: List[Dict[str, Any]], decode: Callable[[Dict[str, Any]], Any], table: str) -> List[Any]:
    """Decode remote rows, skipping any that cannot be read."""
    records = []
    for row in rows:
        try:
            records.append(decode(row))
        except (DataValidationError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Skipping unreadable {table} row {row.get('id')!r}: {e}")
    return records


class RemoteStoreClient:
    """
    CRUD and schema bootstrap for the stores and deliveries tables.

    The client holds no local state besides the in-flight schema task; the
    caller (the reconciliation engine) owns reachability.
    """

    # Idempotent DDL, run through the exec_sql RPC
    SCHEMA = {
        STORES_TABLE: """
            CREATE TABLE IF NOT EXISTS stores (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                address TEXT,
                contact TEXT,
                price_per_order REAL,
                created_at TIMESTAMPTZ DEFAULT NOW()
            )
        """,
        DELIVERIES_TABLE: """
            CREATE TABLE IF NOT EXISTS deliveries (
                id TEXT PRIMARY KEY,
                store_id TEXT NOT NULL,
                store_name TEXT NOT NULL,
                date TEXT NOT NULL,
                customer_name TEXT,
                phone_number TEXT,
                address TEXT,
                item_details TEXT,
                order_number TEXT,
                delivery_status TEXT NOT NULL DEFAULT 'pending pickup',
                order_price REAL NOT NULL DEFAULT 0,
                total_deliveries INTEGER NOT NULL DEFAULT 0,
                delivered INTEGER NOT NULL DEFAULT 0,
                pending INTEGER NOT NULL DEFAULT 0,
                bills INTEGER NOT NULL DEFAULT 0,
                payment_total REAL NOT NULL DEFAULT 0,
                payment_paid REAL NOT NULL DEFAULT 0,
                payment_pending REAL NOT NULL DEFAULT 0,
                payment_overdue REAL NOT NULL DEFAULT 0,
                notes TEXT,
                created_at TIMESTAMPTZ DEFAULT NOW()
            )
        """,
    }

    # Columns a partially migrated table may lack: added one by one
    COLUMNS = {
        STORES_TABLE: {
            "address": "TEXT",
            "contact": "TEXT",
            "price_per_order": "REAL",
            "created_at": "TIMESTAMPTZ DEFAULT NOW()",
        },
        DELIVERIES_TABLE: {
            "customer_name": "TEXT",
            "phone_number": "TEXT",
            "address": "TEXT",
            "item_details": "TEXT",
            "order_number": "TEXT",
            "delivery_status": "TEXT NOT NULL DEFAULT 'pending pickup'",
            "order_price": "REAL NOT NULL DEFAULT 0",
            "total_deliveries": "INTEGER NOT NULL DEFAULT 0",
            "delivered": "INTEGER NOT NULL DEFAULT 0",
            "pending": "INTEGER NOT NULL DEFAULT 0",
            "bills": "INTEGER NOT NULL DEFAULT 0",
            "payment_total": "REAL NOT NULL DEFAULT 0",
            "payment_paid": "REAL NOT NULL DEFAULT 0",
            "payment_pending": "REAL NOT NULL DEFAULT 0",
            "payment_overdue": "REAL NOT NULL DEFAULT 0",
            "notes": "TEXT",
            "created_at": "TIMESTAMPTZ DEFAULT NOW()",
        },
    }

    def __init__(
        self,
        client: AsyncClient,
        timeout: float = 10.0,
        schema_rpc: str = "exec_sql",
    ):
        """
        Args:
            client: Supabase async client
            timeout: Seconds before any single remote call is abandoned
            schema_rpc: Name of the SQL-executing RPC used for DDL
        """
        self._client = client
        self.timeout = timeout
        self.schema_rpc = schema_rpc
        self._schema_task: Optional[asyncio.Task] = None

    @classmethod
    async def connect(cls, config: TrackerConfig) -> RemoteStoreClient:
        """Create the Supabase async client from configuration."""
        if not config.has_remote_credentials:
            raise ConfigurationError(
                "Supabase credentials not found. Set SUPABASE_URL and SUPABASE_KEY "
                "or the [supabase] section of secrets.toml",
                config_key="supabase",
            )
        client = await acreate_client(config.supabase_url, config.supabase_key)
        return cls(
            client,
            timeout=config.remote_timeout_seconds,
            schema_rpc=config.schema_rpc,
        )

    # =========================================================================
    # EXECUTION WRAPPERS
    # =========================================================================

    async def _call(
        self,
        operation: str,
        table: Optional[str],
        build: Callable[[], Any],
    ) -> Any:
        """Run one request and translate failures into tracker errors."""
        try:
            return await asyncio.wait_for(build().execute(), timeout=self.timeout)
        except APIError as e:
            if e.code in MISSING_SCHEMA_CODES:
                raise SchemaMissing(
                    f"Remote schema incomplete during {operation}: {e.message}",
                    table=table,
                    remote_code=e.code,
                ) from e
            raise RemoteUnavailable(
                f"Remote store rejected {operation}: {e.message}",
                operation=operation,
                cause=e.code,
            ) from e
        except asyncio.TimeoutError as e:
            raise RemoteUnavailable(
                f"Remote store timed out after {self.timeout}s during {operation}",
                operation=operation,
                cause="timeout",
            ) from e
        except (httpx.HTTPError, OSError) as e:
            raise RemoteUnavailable(
                f"Remote store unreachable during {operation}: {e}",
                operation=operation,
                cause=type(e).__name__,
            ) from e

    async def _execute(
        self,
        operation: str,
        table: Optional[str],
        build: Callable[[], Any],
    ) -> Any:
        """_call() with one schema repair and one retry on SchemaMissing."""
        try:
            return await self._call(operation, table, build)
        except SchemaMissing as e:
            logger.warning(f"{e.message}; repairing schema and retrying once")
            await self.ensure_schema()
            return await self._call(operation, table, build)

    async def _fetch_pages(
        self,
        operation: str,
        table: str,
        build_page: Callable[[int, int], Any],
    ) -> List[Dict[str, Any]]:
        """Fetch every row across Supabase's per-request row limit."""
        rows: List[Dict[str, Any]] = []
        offset = 0

        while True:
            start, end = offset, offset + PAGE_SIZE - 1
            response = await self._execute(operation, table, lambda: build_page(start, end))
            batch = response.data or []
            rows.extend(batch)
            if len(batch) < PAGE_SIZE:
                break
            offset += PAGE_SIZE

        return rows

    # =========================================================================
    # SCHEMA
    # =========================================================================

    async def ensure_schema(self) -> None:
        """
        Create both tables and any missing columns.

        Safe to call repeatedly: every statement is idempotent. Concurrent
        callers await the same in-flight run.
        """
        if self._schema_task is None or self._schema_task.done():
            self._schema_task = asyncio.ensure_future(self._create_schema())
        await asyncio.shield(self._schema_task)

    async def _create_schema(self) -> None:
        for table, ddl in self.SCHEMA.items():
            await self._call(
                "ensure_schema", table,
                lambda ddl=ddl: self._client.rpc(self.schema_rpc, {"query": ddl}),
            )
            for column, definition in self.COLUMNS[table].items():
                sql = f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {column} {definition}"
                await self._call(
                    "ensure_schema", table,
                    lambda sql=sql: self._client.rpc(self.schema_rpc, {"query": sql}),
                )
            logger.debug(f"Created/verified remote table: {table}")
        logger.info("Remote schema verified")

    # =========================================================================
    # CONNECTIVITY
    # =========================================================================

    async def probe(self) -> bool:
        """
        Check that the remote answers.

        A missing-table answer still proves the server is reachable.
        """
        try:
            await self._call(
                "probe", STORES_TABLE,
                lambda: self._client.table(STORES_TABLE).select("id").limit(1),
            )
            return True
        except SchemaMissing:
            return True
        except RemoteUnavailable as e:
            logger.debug(f"Remote probe failed: {e}")
            return False

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create_or_replace(self, table: str, record: Dict[str, Any]) -> None:
        """Insert or overwrite one row by primary key."""
        await self._execute(
            f"upsert {table}", table,
            lambda: self._client.table(table).upsert(record),
        )

    async def save_store(self, store: Store) -> None:
        await self.create_or_replace(STORES_TABLE, store.to_row())

    async def save_delivery(self, delivery: Delivery) -> None:
        await self.create_or_replace(DELIVERIES_TABLE, delivery.to_row())

    async def list_by_date(self, date: str) -> List[Delivery]:
        """All deliveries of one logical day (string equality on date)."""
        response = await self._execute(
            "list deliveries by date", DELIVERIES_TABLE,
            lambda: (
                self._client.table(DELIVERIES_TABLE)
                .select("*")
                .eq("date", date)
                .order("created_at", desc=True)
            ),
        )
        return _decode_rows(response.data or [], Delivery.from_row, DELIVERIES_TABLE)

    async def list_all(self) -> List[Delivery]:
        """Every delivery, most recently created first."""
        rows = await self._fetch_pages(
            "list deliveries", DELIVERIES_TABLE,
            lambda start, end: (
                self._client.table(DELIVERIES_TABLE)
                .select("*")
                .order("created_at", desc=True)
                .order("id")
                .range(start, end)
            ),
        )
        return _decode_rows(rows, Delivery.from_row, DELIVERIES_TABLE)

    async def list_stores(self) -> List[Store]:
        rows = await self._fetch_pages(
            "list stores", STORES_TABLE,
            lambda start, end: (
                self._client.table(STORES_TABLE)
                .select("*")
                .order("name")
                .order("id")
                .range(start, end)
            ),
        )
        return _decode_rows(rows, Store.from_row, STORES_TABLE)

    async def delete(self, table: str, record_id: str) -> None:
        await self._execute(
            f"delete from {table}", table,
            lambda: self._client.table(table).delete().eq("id", record_id),
        )

    async def close(self) -> None:
        """Close the HTTP session under the PostgREST client."""
        postgrest = getattr(self._client, "postgrest", None)
        if postgrest is not None and hasattr(postgrest, "aclose"):
            await postgrest.aclose()
