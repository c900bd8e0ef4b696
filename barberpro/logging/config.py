# =============================================================================
# barberpro/logging/config.py
# Logging Configuration for BarberPro
# =============================================================================
"""
Library modules only ever call ``logging.getLogger(__name__)``, so every
sync core logger hangs under "barberpro". Handlers are installed once, by the
process entry point (``barberpro.cli.main``), from the ``log_level`` and
``log_to_file`` settings.
"""

import asyncio
import logging
import sys
import time
from pathlib import Path
from datetime import datetime
from typing import Optional, Union


# Log format
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Log directory
LOG_DIR = Path("logs")

# supabase-py and the HTTP stack under it log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "supabase", "realtime")


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> None:
    """
    Configure logging for a BarberPro process.

    Args:
        level: Level for the "barberpro" loggers, as an int or a name from
            settings such as "DEBUG" (unknown names fall back to INFO)
        log_to_file: Also write a dated file, one per day of sync activity
        log_filename: Custom log filename (default: barberpro_YYYY-MM-DD.log)
        log_dir: Directory for the log file (default: ./logs)
    """
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_to_file:
        target_dir = log_dir or LOG_DIR
        target_dir.mkdir(parents=True, exist_ok=True)
        if log_filename is None:
            log_filename = f"barberpro_{datetime.now().strftime('%Y-%m-%d')}.log"
        handlers.append(logging.FileHandler(target_dir / log_filename))

    logging.basicConfig(
        level=_resolve_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("barberpro").info("Logging initialized")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Usage:
        from barberpro.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Queued create customers/1f0c...")
    """
    return logging.getLogger(name)


class LogContext:
    """
    Times one sync phase (a drain or a reconciliation) in the log.

    Usage:
        with LogContext(logger, "Draining sync queue"):
            await self._drain_cycle(report)
        # Logs: "Draining sync queue... started"
        # Logs: "Draining sync queue... completed (0.42s)"

    A phase cancelled by ``SyncCoordinator.stop()`` is logged as cancelled,
    not as a failure.
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time = None

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.info(f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.monotonic() - self.start_time

        if exc_type is None:
            self.logger.info(f"{self.operation}... completed ({elapsed:.2f}s)")
        elif issubclass(exc_type, asyncio.CancelledError):
            self.logger.info(f"{self.operation}... cancelled ({elapsed:.2f}s)")
        else:
            self.logger.error(
                f"{self.operation}... failed ({elapsed:.2f}s): {exc_val}",
                exc_info=True
            )

        return False  # Don't suppress exceptions
