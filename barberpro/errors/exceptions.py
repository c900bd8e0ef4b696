# =============================================================================
# barberpro/errors/exceptions.py
# Custom Exception Hierarchy for BarberPro
# =============================================================================

from typing import Optional, Dict, Any


class BarberProError(Exception):
    """
    Base exception for all BarberPro errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "STORE_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "BP_000"
        self.details = details or {}
        self.recoverable = recoverable

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
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(BarberProError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# LOCAL STORAGE EXCEPTIONS
# =============================================================================

class StorageError(BarberProError):
    """Raised when the local SQLite store fails a read"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        code: str = "STORE_000",
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table

        super().__init__(
            message=message,
            code=code,
            details=details,
            **kwargs,
        )


class StorageInitError(StorageError):
    """Raised when the local database cannot be opened or its schema created"""

    def __init__(self, message: str, db_path: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if db_path:
            details["db_path"] = db_path

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


class NotInitializedError(StorageError):
    """Raised when the local store is used before initialize()"""

    def __init__(self, message: str = "Local store used before initialize()", **kwargs):
        super().__init__(
            message=message,
            code="STORE_002",
            recoverable=False,
            **kwargs,
        )


class StorageWriteError(StorageError):
    """Raised when a local write fails; prior state is left unchanged"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, code="STORE_003", **kwargs)


# =============================================================================
# REMOTE / SYNC EXCEPTIONS
# =============================================================================

class RemoteError(BarberProError):
    """Raised when a Supabase call fails. Wraps the original cause."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if cause is not None:
            details["cause"] = repr(cause)

        super().__init__(
            message=message,
            code="REMOTE_001",
            details=details,
            **kwargs,
        )
        self.cause = cause


class OfflineError(BarberProError):
    """Raised when an operation needs connectivity and none is available"""

    def __init__(self, message: str = "Cannot sync from server while offline", **kwargs):
        super().__init__(message=message, code="SYNC_001", **kwargs)


class InvalidOperationError(BarberProError):
    """Raised when a queued operation names an unknown collection/kind or a bad payload"""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        kind: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection
        if kind:
            details["kind"] = kind

        super().__init__(
            message=message,
            code="SYNC_002",
            details=details,
            recoverable=False,
            **kwargs,
        )
