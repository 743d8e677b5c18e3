# =============================================================================
# delivery_core/models/__init__.py
# Record Model
# =============================================================================

from .records import (
    DeliveryStatus,
    PaymentStatus,
    Store,
    Delivery,
    DailySummary,
    DailyAggregate,
    ViewMode,
    WINDOW_DAYS,
    new_record_id,
    new_store,
    new_delivery,
    compute_summary,
    build_daily_data,
    slice_window,
)

__all__ = [
    "DeliveryStatus",
    "PaymentStatus",
    "Store",
    "Delivery",
    "DailySummary",
    "DailyAggregate",
    "ViewMode",
    "WINDOW_DAYS",
    "new_record_id",
    "new_store",
    "new_delivery",
    "compute_summary",
    "build_daily_data",
    "slice_window",
]
