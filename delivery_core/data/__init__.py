# =============================================================================
# delivery_core/data/__init__.py
# Remote data access
# =============================================================================

from .remote_store import (
    RemoteStoreClient,
    STORES_TABLE,
    DELIVERIES_TABLE,
    MISSING_SCHEMA_CODES,
)

__all__ = [
    "RemoteStoreClient",
    "STORES_TABLE",
    "DELIVERIES_TABLE",
    "MISSING_SCHEMA_CODES",
]
