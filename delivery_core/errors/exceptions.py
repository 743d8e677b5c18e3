# =============================================================================
# delivery_core/errors/exceptions.py
# Custom Exception Hierarchy for the Delivery Tracker
# =============================================================================

from typing import Optional, Dict, Any


def _context(**values: Any) -> Dict[str, Any]:
    """Keep only the context values that were supplied."""
    return {key: value for key, value in values.items() if value is not None}


class DeliveryTrackerError(Exception):
    """
    Base exception for all delivery tracker errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "REMOTE_001")
        details: Additional context as a dictionary
        recoverable: Whether the tracker can keep going after this error
    """

    default_code = "DT_000"
    default_recoverable = True

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.recoverable = self.default_recoverable if recoverable is None else recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# REMOTE STORE EXCEPTIONS
# =============================================================================

class RemoteUnavailable(DeliveryTrackerError):
    """The remote store cannot be reached (network, auth, timeout). Flips SyncState offline."""

    default_code = "REMOTE_001"

    def __init__(self, message: str, operation: Optional[str] = None, cause: Optional[str] = None, **kwargs):
        details = {**kwargs.pop("details", {}), **_context(operation=operation, cause=cause)}
        super().__init__(message, details=details, **kwargs)


class SchemaMissing(DeliveryTrackerError):
    """A remote table or column does not exist (still missing after one repair if raised)"""

    default_code = "REMOTE_002"

    def __init__(self, message: str, table: Optional[str] = None, remote_code: Optional[str] = None, **kwargs):
        details = {**kwargs.pop("details", {}), **_context(table=table, remote_code=remote_code)}
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# RECORD EXCEPTIONS
# =============================================================================

class RecordNotFound(DeliveryTrackerError):
    """A record is absent locally and remotely, most likely deleted on another device"""

    default_code = "RECORD_001"

    def __init__(self, message: str, record_id: Optional[str] = None, record_type: Optional[str] = None, **kwargs):
        details = {**kwargs.pop("details", {}), **_context(record_id=record_id, record_type=record_type)}
        super().__init__(message, details=details, **kwargs)


class VerificationFailed(DeliveryTrackerError):
    """A delete was acknowledged but the remote still lists the record"""

    default_code = "RECORD_002"
    default_recoverable = False

    def __init__(self, message: str, record_id: Optional[str] = None, date: Optional[str] = None, **kwargs):
        details = {**kwargs.pop("details", {}), **_context(record_id=record_id, date=date)}
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# DATA EXCEPTIONS
# =============================================================================

class DataValidationError(DeliveryTrackerError):
    """A record or input failed validation; nothing was written"""

    default_code = "DATA_001"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        **kwargs,
    ):
        details = {
            **kwargs.pop("details", {}),
            **_context(field=field, expected=expected, actual=actual),
        }
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(DeliveryTrackerError):
    """Configuration is invalid or missing"""

    default_code = "CONFIG_001"
    default_recoverable = False

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = {
            **kwargs.pop("details", {}),
            **_context(config_key=config_key, expected_type=expected_type),
        }
        super().__init__(message, details=details, **kwargs)
