# =============================================================================
# delivery_core/errors/handlers.py
# Error Handling Utilities for the Delivery Tracker
# =============================================================================

from __future__ import annotations
import traceback
from typing import Optional

from delivery_core.logging import get_logger
from .exceptions import (
    DeliveryTrackerError,
    RemoteUnavailable,
    SchemaMissing,
    RecordNotFound,
    VerificationFailed,
    DataValidationError,
)

logger = get_logger(__name__)

SAVE_FAILED_NOTICE = "Could not save to the server, check your connection"

_NOTICES = (
    (RemoteUnavailable, SAVE_FAILED_NOTICE),
    (SchemaMissing, "The server database is not set up correctly. Please contact support."),
    (RecordNotFound, "This record may have been deleted. Refreshing data..."),
    (VerificationFailed, "The server still reports this record after deleting it. Please try again."),
)


def user_notice(error: Exception) -> str:
    """
    Map an error to the text the presentation layer shows the user.

    Validation messages are shown as-is since they describe the user's input.
    """
    for error_type, notice in _NOTICES:
        if isinstance(error, error_type):
            return notice
    if isinstance(error, DataValidationError):
        return error.message
    return "Something went wrong. Please try again."


def handle_error(
    error: Exception,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> str:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        log_error: Whether to log the error
        user_message: Custom message to return (uses the mapped notice if None)

    Returns:
        The user-facing notice for the error
    """
    if isinstance(error, DeliveryTrackerError):
        code = error.code
        details = error.details
        message = error.message
    else:
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        message = str(error)

    if log_error:
        logger.error(
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=not isinstance(error, DeliveryTrackerError),
        )

    return user_message or user_notice(error)
