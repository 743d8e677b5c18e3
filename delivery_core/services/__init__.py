# =============================================================================
# delivery_core/services/__init__.py
# Service Layer for the Delivery Tracker
# =============================================================================
"""
Services built on top of the ReconciliationEngine.

Usage Example:
-------------
    from delivery_core.services import CleanupService, ExportService

    cleanup = CleanupService(engine, cleanup_hour=23)
    result = await cleanup.force_cleanup()
    print(f"Removed {result.removed}, {result.remaining} still active")

    exporter = ExportService()
    csv_text = exporter.export_csv(engine.daily_data, start_date="2024-01-01")
"""

from .base_service import BaseService
from .cleanup_service import CleanupService, PurgeResult
from .export_service import ExportService, FORMAT_VERSION

__all__ = [
    # Base classes
    "BaseService",
    # Retention
    "CleanupService",
    "PurgeResult",
    # Export
    "ExportService",
    "FORMAT_VERSION",
]
