# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

import pytest

from delivery_core.config import StartupMode, TrackerConfig
from delivery_core.data import DELIVERIES_TABLE, STORES_TABLE
from delivery_core.errors import RemoteUnavailable, SchemaMissing
from delivery_core.models import Delivery, DeliveryStatus, PaymentStatus, Store
from delivery_core.offline import ConnectionManager, LocalCache, ReconciliationEngine


TODAY = "2024-01-10"


# =============================================================================
# FAKE REMOTE STORE
# =============================================================================

class FakeRemoteStore:
    """
    In-memory stand-in for RemoteStoreClient with the same async surface.

    Flip `reachable` to simulate a dropped network; set `ignore_deletes` to
    simulate a remote that acknowledges deletes without applying them,
    or add ids to `linger_ids` to do so for single records. Set
    `schema_broken` for a remote whose tables stay missing after repair.
    Several engines may share one instance to act as separate devices.
    """

    def __init__(self):
        self.stores: Dict[str, Store] = {}
        self.deliveries: Dict[str, Delivery] = {}
        self.reachable = True
        self.ignore_deletes = False
        self.linger_ids: set = set()
        self.calls: List[str] = []
        self.schema_calls = 0
        self.schema_broken = False

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if not self.reachable:
            raise RemoteUnavailable(
                f"Remote store unreachable during {operation}",
                operation=operation,
                cause="ConnectError",
            )
        if self.schema_broken and operation != "ensure_schema":
            raise SchemaMissing(
                f"Remote schema incomplete during {operation}",
                remote_code="42P01",
            )

    async def probe(self) -> bool:
        self.calls.append("probe")
        return self.reachable

    async def ensure_schema(self) -> None:
        self._check("ensure_schema")
        self.schema_calls += 1

    async def create_or_replace(self, table: str, record) -> None:
        self._check(f"upsert {table}")
        if table == DELIVERIES_TABLE:
            self.deliveries[record.id] = record
        else:
            self.stores[record.id] = record

    async def save_store(self, store: Store) -> None:
        await self.create_or_replace(STORES_TABLE, store)

    async def save_delivery(self, delivery: Delivery) -> None:
        await self.create_or_replace(DELIVERIES_TABLE, delivery)

    async def list_by_date(self, date: str) -> List[Delivery]:
        self._check("list deliveries by date")
        return [d for d in self.deliveries.values() if d.date == date]

    async def list_all(self) -> List[Delivery]:
        self._check("list deliveries")
        return sorted(self.deliveries.values(), key=lambda d: d.date, reverse=True)

    async def list_stores(self) -> List[Store]:
        self._check("list stores")
        return sorted(self.stores.values(), key=lambda s: s.name.lower())

    async def delete(self, table: str, record_id: str) -> None:
        self._check(f"delete from {table}")
        if self.ignore_deletes or record_id in self.linger_ids:
            return
        if table == DELIVERIES_TABLE:
            self.deliveries.pop(record_id, None)
        else:
            self.stores.pop(record_id, None)

    async def close(self) -> None:
        pass

    def remote_call_count(self) -> int:
        """Calls other than probes."""
        return sum(1 for c in self.calls if c != "probe")


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def sample_store():
    return Store(id="store-1", name="Corner Bakery", address="1 Main St", price_per_order=50.0)


def make_delivery(
    record_id: str,
    date: str = TODAY,
    status: DeliveryStatus = DeliveryStatus.PENDING_PICKUP,
    price: float = 50.0,
    store_id: str = "store-1",
    customer_name: str = "",
) -> Delivery:
    """Build a delivery with counters consistent with its status."""
    status = DeliveryStatus(status)
    return Delivery(
        id=record_id,
        store_id=store_id,
        store_name="Corner Bakery",
        date=date,
        customer_name=customer_name or f"Customer {record_id}",
        delivery_status=status,
        order_price=price,
        payment_status=PaymentStatus.for_order(price),
        delivered=1 if status is DeliveryStatus.DELIVERED else 0,
        pending=1 if status is DeliveryStatus.PENDING_PICKUP else 0,
    )


@pytest.fixture
def delivery_factory():
    return make_delivery


# =============================================================================
# COMPONENT FIXTURES
# =============================================================================

@pytest.fixture
def fake_remote():
    return FakeRemoteStore()


@pytest.fixture
def cache():
    local = LocalCache()
    local.initialize()
    yield local
    local.close()


@pytest.fixture
def make_engine(fake_remote):
    """Factory for engines; pass a shared remote to simulate several devices."""
    caches = []

    def _make(
        remote: Optional[FakeRemoteStore] = None,
        cache: Optional[LocalCache] = None,
        startup_mode: StartupMode = StartupMode.STRICT,
        initialize: bool = True,
    ) -> ReconciliationEngine:
        remote = remote or fake_remote
        if cache is None:
            cache = LocalCache()
            caches.append(cache)
        config = TrackerConfig(startup_mode=startup_mode)
        engine = ReconciliationEngine(
            remote, cache, ConnectionManager(remote), config, today_fn=lambda: TODAY
        )
        if initialize:
            asyncio.run(engine.initialize())
        return engine

    yield _make

    for cache in caches:
        cache.close()


@pytest.fixture
def engine(make_engine):
    """Initialized engine against a reachable fake remote."""
    return make_engine()


@pytest.fixture
def end_of_day():
    """Clock just after the default cleanup hour on TODAY."""
    return lambda: datetime(2024, 1, 10, 23, 15)


@pytest.fixture
def mid_day():
    return lambda: datetime(2024, 1, 10, 14, 0)
