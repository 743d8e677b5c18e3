# =============================================================================
# delivery_core/logging/config.py
# Logging Configuration for the Delivery Tracker
# =============================================================================

import logging
import sys
import time
from pathlib import Path
from datetime import datetime
from typing import Optional


# Log format
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Log directory
LOG_DIR = Path("logs")

# Chatty loggers under the Supabase client
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "supabase", "postgrest")


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
    log_dir: Path = LOG_DIR,
) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (default: INFO)
        log_to_file: Whether to also log to a file
        log_filename: Custom log filename (default: tracker_YYYY-MM-DD.log)
        log_dir: Directory for log files
    """
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_to_file:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_filename = log_filename or f"tracker_{datetime.now():%Y-%m-%d}.log"
        handlers.append(logging.FileHandler(log_dir / log_filename, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("delivery_core").info(f"Logging initialized at {logging.getLevelName(level)}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Usage:
        from delivery_core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Refresh started")
    """
    return logging.getLogger(name)


class LogContext:
    """Log the start, outcome and duration of a block (awaits inside are timed too).

    `elapsed` holds the duration in seconds once the block has exited.
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.elapsed: Optional[float] = None
        self._started: Optional[float] = None

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.log(self.level, f"{self.operation}: begin")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.perf_counter() - self._started

        if exc_type is None:
            self.logger.log(self.level, f"{self.operation}: done in {self.elapsed:.2f}s")
        else:
            self.logger.error(f"{self.operation}: failed after {self.elapsed:.2f}s ({exc_type.__name__}: {exc_val})")

        return False
