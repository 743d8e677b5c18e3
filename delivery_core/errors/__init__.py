# =============================================================================
# delivery_core/errors/__init__.py
# Centralized Error Handling for the Delivery Tracker
# =============================================================================

from .exceptions import (
    DeliveryTrackerError,
    RemoteUnavailable,
    SchemaMissing,
    RecordNotFound,
    VerificationFailed,
    DataValidationError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    user_notice,
    SAVE_FAILED_NOTICE,
)

__all__ = [
    # Exceptions
    "DeliveryTrackerError",
    "RemoteUnavailable",
    "SchemaMissing",
    "RecordNotFound",
    "VerificationFailed",
    "DataValidationError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "user_notice",
    "SAVE_FAILED_NOTICE",
]
