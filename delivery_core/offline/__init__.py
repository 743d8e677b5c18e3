# =============================================================================
# delivery_core/offline/__init__.py
# Local/Remote Reconciliation for the Delivery Tracker
# =============================================================================
"""
Offline-Tolerant Record Keeping

Keeps stores and deliveries consistent between a hosted remote database and
a local cache, so the tracker keeps working when the network drops.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │               ReconciliationEngine                        │  │
│   │       (Single API - callers use this only)                │  │
│   └──────────────────────────────────────────────────────────┘  │
│              │                  │                  │            │
│              ▼                  ▼                  ▼            │
│   ┌──────────────────┐ ┌────────────────┐ ┌────────────────┐   │
│   │  ConnectionMgr   │ │   LocalCache   │ │  RemoteStore   │   │
│   │   (SyncState)    │ │    (SQLite)    │ │   (Supabase)   │   │
│   └──────────────────┘ └────────────────┘ └────────────────┘   │
│              ▲                                                   │
│   ┌──────────────────┐                                          │
│   │ RefreshScheduler │                                          │
│   │ (60s + on focus) │                                          │
│   └──────────────────┘                                          │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from delivery_core.offline import ReconciliationEngine

await engine.initialize()
result = await engine.add_delivery(store, customer_name="A. Rao")
print(engine.is_online)             # True/False
print(engine.pending_sync_count)    # Creations not yet on the remote
"""

from delivery_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionStatus,
    SyncState,
)

from delivery_core.offline.local_cache import LocalCache

from delivery_core.offline.reconciliation_engine import (
    ReconciliationEngine,
    WriteResult,
    merge_day,
)

from delivery_core.offline.refresh_scheduler import RefreshScheduler

__all__ = [
    # Connection Management
    "ConnectionManager",
    "ConnectionStatus",
    "SyncState",
    # Local Cache
    "LocalCache",
    # Reconciliation (Main API)
    "ReconciliationEngine",
    "WriteResult",
    "merge_day",
    # Scheduling
    "RefreshScheduler",
]
