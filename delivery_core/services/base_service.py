# =============================================================================
# delivery_core/services/base_service.py
# Base Service Class with Common Functionality
# =============================================================================

from abc import ABC

from delivery_core.logging import get_logger, LogContext


class BaseService(ABC):
    """
    Abstract base class for services built on the ReconciliationEngine.

    Gives every service a logger named after its class and timed operation
    logging.

    Usage:
        class MyService(BaseService):
            async def purge(self, day):
                with self.log_operation(f"Purging {day}"):
                    ...
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def log_operation(self, operation: str) -> LogContext:
        """
        Create a logging context for an operation.

        Usage:
            with self.log_operation("Automatic cleanup"):
                await self.purge_terminal_records(today)
        """
        return LogContext(self.logger, operation)
