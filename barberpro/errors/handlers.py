# =============================================================================
# barberpro/errors/handlers.py
# Error Handling Utilities for BarberPro
# =============================================================================

from __future__ import annotations
import logging
import traceback
from typing import Any, Dict, Optional

from barberpro.logging import get_logger
from .exceptions import BarberProError

logger = get_logger(__name__)


def handle_error(
    error: BaseException,
    context: Optional[str] = None,
    log_error: bool = True,
    level: int = logging.ERROR,
    log: Optional[logging.Logger] = None,
) -> Dict[str, Any]:
    """
    Centralized error handling function.

    Logs the error with its code and details and returns a serializable
    description that status surfaces can show.

    Args:
        error: The exception to handle
        context: What was being attempted (prefixed to the log message)
        log_error: Whether to log the error
        level: Logging level for the record
        log: Logger to use (defaults to this module's logger)

    Returns:
        Dict with error_type, code, message, details and recoverable
    """
    if isinstance(error, BarberProError):
        info = error.to_dict()
    else:
        info = {
            "error_type": error.__class__.__name__,
            "code": "UNKNOWN",
            "message": str(error),
            "details": {
                "traceback": "".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                )
            },
            "recoverable": True,
        }

    if context:
        info["context"] = context

    if log_error:
        prefix = f"{context}: " if context else ""
        (log or logger).log(
            level,
            f"{prefix}[{info['code']}] {info['message']}",
            extra={"details": info["details"]},
            exc_info=level >= logging.ERROR,
        )

    return info


class ErrorContext:
    """
    Context manager for error handling with automatic logging.

    Usage:
        with ErrorContext("Listing customers", recoverable=False):
            ...

        # On error, logs "Error during: Listing customers" and re-raises
        # unless recoverable=True.
    """

    def __init__(self, operation: str, recoverable: bool = False):
        self.operation = operation
        self.recoverable = recoverable
        self.error: Optional[Dict[str, Any]] = None

    def __enter__(self) -> ErrorContext:
        logger.debug(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.debug(f"Completed: {self.operation}")
            return False

        if not issubclass(exc_type, Exception):
            return False

        self.error = handle_error(exc_val, context=f"Error during: {self.operation}")
        return self.recoverable
