# =============================================================================
# pos_core/errors/handlers.py
# Error Handling Utilities for the POS core
# =============================================================================

from __future__ import annotations
import copy
import functools
import inspect
import traceback
from typing import TYPE_CHECKING, Optional, Callable, TypeVar, Any

from pos_core.logging import get_logger
from .exceptions import PosCoreError, BackendError

if TYPE_CHECKING:
    from pos_core.events import EventBus

logger = get_logger(__name__)

T = TypeVar("T")


def handle_error(
    error: Exception,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> PosCoreError:
    """
    Centralized error handling function.

    Logs the error and returns it as a PosCoreError so callers can turn it
    into a result object for the UI.

    Args:
        error: The exception to handle
        log_error: Whether to log the error
        user_message: Custom message to use instead of the error's own
    """
    if isinstance(error, PosCoreError):
        handled = error
        if user_message:
            handled = PosCoreError(
                user_message,
                code=error.code,
                details=error.details,
                recoverable=error.recoverable,
            )
    else:
        handled = PosCoreError(
            user_message or str(error),
            code="UNKNOWN",
            details={"traceback": traceback.format_exc()},
        )

    if log_error:
        logger.error(
            f"[{handled.code}] {handled.message}",
            extra={"details": handled.details},
            exc_info=error,
        )

    return handled


def report_backend_error(
    bus: Optional[EventBus],
    operation: str,
    collection: Optional[str],
    error: BaseException,
) -> BackendError:
    """
    Wrap an unexpected remote failure as a BackendError, log it and publish
    it on the error-reporting channel.
    """
    from pos_core.events import BackendErrorReported

    if isinstance(error, BackendError):
        backend_error = error
    else:
        backend_error = BackendError(
            f"{operation} failed on '{collection}': {getattr(error, 'message', None) or error}",
            operation=operation,
            collection=collection,
            cause=error,
        )

    logger.error(str(backend_error))
    if bus is not None:
        bus.publish(BackendErrorReported(error=backend_error))
    return backend_error


def error_boundary(
    default_return: Any = None,
    error_message: Optional[str] = None,
    log: bool = True,
):
    """
    Decorator to wrap functions with error handling.

    Works on plain and ``async`` functions. Mutable defaults are copied so
    callers never share the same list or dict.

    Usage:
        @error_boundary(default_return=[], error_message="Queue read failed")
        async def load_queue(self) -> List[dict]:
            ...
    """
    def on_error(func: Callable, e: Exception) -> Any:
        if log:
            prefix = error_message or f"Error in {func.__name__}"
            logger.error(f"{prefix}: {e}", exc_info=True)
        return copy.copy(default_return)

    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    return on_error(func, e)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                return on_error(func, e)

        return wrapper

    return decorator
