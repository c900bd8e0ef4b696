# =============================================================================
# barberpro/errors/__init__.py
# Centralized Error Handling for BarberPro
# =============================================================================

from .exceptions import (
    BarberProError,
    ConfigurationError,
    StorageError,
    StorageInitError,
    NotInitializedError,
    StorageWriteError,
    RemoteError,
    OfflineError,
    InvalidOperationError,
)

from .handlers import (
    handle_error,
    ErrorContext,
)

__all__ = [
    # Exceptions
    "BarberProError",
    "ConfigurationError",
    "StorageError",
    "StorageInitError",
    "NotInitializedError",
    "StorageWriteError",
    "RemoteError",
    "OfflineError",
    "InvalidOperationError",
    # Handlers
    "handle_error",
    "ErrorContext",
]
