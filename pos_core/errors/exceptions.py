# =============================================================================
# pos_core/errors/exceptions.py
# Custom Exception Hierarchy for the POS core
# =============================================================================

from typing import Optional, Dict, Any


class PosCoreError(Exception):
    """
    Base exception for all POS core errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "PIN_001")
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
        self.code = code or "POS_000"
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
# CONFIGURATION AND STORAGE
# =============================================================================

class ConfigurationError(PosCoreError):
    """Raised when configuration is invalid or missing"""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
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


class StorageError(PosCoreError):
    """Raised by a key-value storage backend when a read or write fails"""

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key

        super().__init__(message=message, code="STORE_001", details=details, **kwargs)


# =============================================================================
# REMOTE STORE
# =============================================================================

# Remote error codes that mean "try again later"
CONNECTIVITY_CODES = frozenset({"unavailable", "deadline-exceeded"})


class RemoteStoreError(PosCoreError):
    """
    Error raised by a remote document store.

    ``code`` is the store's own error code (``unavailable``,
    ``deadline-exceeded``, ``failed-precondition``, ``not-found`` ...), so
    callers can classify the failure without knowing the backend.
    """

    def __init__(
        self,
        message: str,
        code: str = "unknown",
        collection: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection

        super().__init__(
            message=message,
            code=code,
            details=details,
            recoverable=code in CONNECTIVITY_CODES,
            **kwargs,
        )


class BackendError(PosCoreError):
    """An unexpected remote failure, reported instead of silently masked"""

    def __init__(
        self,
        message: str,
        operation: str,
        collection: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["operation"] = operation
        if collection:
            details["collection"] = collection
        if cause is not None:
            details["cause_code"] = getattr(cause, "code", None)

        super().__init__(message=message, code="BACKEND_001", details=details, **kwargs)
        self.operation = operation
        self.collection = collection
        self.cause = cause


class InvalidOperationError(PosCoreError):
    """Raised when a queued operation is malformed"""

    def __init__(self, message: str, kind: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if kind:
            details["kind"] = kind

        super().__init__(message=message, code="QUEUE_001", details=details, **kwargs)


def is_connectivity_error(error: BaseException) -> bool:
    """True when the error is a transient network problem worth retrying."""
    code = getattr(error, "code", None)
    if code in CONNECTIVITY_CODES:
        return True
    message = getattr(error, "message", None) or str(error)
    return "network" in message.lower()


def is_missing_index_error(error: BaseException) -> bool:
    """True when a query failed because the store lacks a composite index."""
    if getattr(error, "code", None) != "failed-precondition":
        return False
    message = getattr(error, "message", None) or str(error)
    return "index" in message.lower()


def is_not_found_error(error: BaseException) -> bool:
    return getattr(error, "code", None) == "not-found"


# =============================================================================
# SESSION LOCK
# =============================================================================

class PinValidationError(PosCoreError):
    """Raised when a PIN or lock setting fails validation"""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field

        super().__init__(message=message, code="PIN_001", details=details, **kwargs)


class CredentialMismatchError(PosCoreError):
    """Raised when a supplied PIN does not match the stored credential"""

    def __init__(self, message: str = "Incorrect PIN", **kwargs):
        super().__init__(message=message, code="PIN_002", **kwargs)


class PinNotSetError(PosCoreError):
    """Raised when an operation needs a stored PIN and there is none"""

    def __init__(self, message: str = "No PIN is set", **kwargs):
        super().__init__(message=message, code="PIN_003", **kwargs)


# =============================================================================
# ORDERS
# =============================================================================

class DataValidationError(PosCoreError):
    """Raised when a document fails validation checks"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if expected:
            details["expected"] = expected
        if actual:
            details["actual"] = actual

        super().__init__(message=message, code="DATA_001", details=details, **kwargs)
