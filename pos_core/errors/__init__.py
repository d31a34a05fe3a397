# =============================================================================
# pos_core/errors/__init__.py
# Centralized Error Handling for the POS core
# =============================================================================

from .exceptions import (
    PosCoreError,
    ConfigurationError,
    StorageError,
    RemoteStoreError,
    BackendError,
    InvalidOperationError,
    PinValidationError,
    CredentialMismatchError,
    PinNotSetError,
    DataValidationError,
    is_connectivity_error,
    is_missing_index_error,
    is_not_found_error,
)

from .handlers import (
    handle_error,
    error_boundary,
    report_backend_error,
)

__all__ = [
    # Exceptions
    "PosCoreError",
    "ConfigurationError",
    "StorageError",
    "RemoteStoreError",
    "BackendError",
    "InvalidOperationError",
    "PinValidationError",
    "CredentialMismatchError",
    "PinNotSetError",
    "DataValidationError",
    # Classifiers
    "is_connectivity_error",
    "is_missing_index_error",
    "is_not_found_error",
    # Handlers
    "handle_error",
    "error_boundary",
    "report_backend_error",
]
