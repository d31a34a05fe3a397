# =============================================================================
# pos_core/services/base_service.py
# Base Service Class with Common Functionality
# =============================================================================

from __future__ import annotations
from abc import ABC
from typing import Optional, Dict, Any, Awaitable, Callable
from dataclasses import dataclass

from pos_core.logging import get_logger, LogContext
from pos_core.errors import handle_error, PosCoreError, StorageError


@dataclass
class ServiceResult:
    """
    Standard result container for service operations.

    ``queued`` marks a write that was saved to the offline queue instead of
    reaching the remote store; it still counts as success.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    queued: bool = False
    metadata: Optional[Dict[str, Any]] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None, metadata: Dict[str, Any] = None) -> ServiceResult:
        """Create a successful result"""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def pending(cls, data: Any = None, metadata: Dict[str, Any] = None) -> ServiceResult:
        """Create a result for a write deferred to the offline queue"""
        return cls(success=True, data=data, queued=True, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "UNKNOWN",
        metadata: Dict[str, Any] = None
    ) -> ServiceResult:
        """Create a failed result"""
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            metadata=metadata,
        )

    @classmethod
    def from_exception(cls, e: Exception) -> ServiceResult:
        """Create a failed result from an exception"""
        if isinstance(e, PosCoreError):
            return cls(
                success=False,
                error=e.message,
                error_code=e.code,
                metadata=e.details,
            )
        return cls(
            success=False,
            error=str(e),
            error_code="EXCEPTION",
        )


class BaseService(ABC):
    """
    Abstract base class for services.

    Provides common functionality:
    - Logging
    - Error handling
    - Result standardization

    Usage:
        class MyService(BaseService):
            async def do_something(self) -> ServiceResult:
                return await self.run_guarded("Doing something", self._do_it)
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def log_operation(self, operation: str) -> LogContext:
        """
        Create a logging context for an operation.

        Usage:
            with self.log_operation("Placing order"):
                ...
        """
        return LogContext(self.logger, operation)

    async def run_guarded(
        self,
        operation: str,
        func: Callable[..., Awaitable[Any]],
        *args,
        failure_message: Optional[str] = None,
        **kwargs
    ) -> ServiceResult:
        """
        Await a coroutine function and wrap the outcome in a ServiceResult.

        Domain errors keep their message and code. Storage and unexpected
        errors become ``failure_message`` (default "Failed to <operation>").

        Args:
            operation: Short description, e.g. "unlock"
            func: Coroutine function to run
            failure_message: Message for non-domain failures
        """
        try:
            result = await func(*args, **kwargs)
        except PosCoreError as e:
            if isinstance(e, StorageError):
                handle_error(e)
                return ServiceResult.fail(failure_message or f"Failed to {operation}", e.code)
            self.logger.info(f"{operation} rejected: [{e.code}] {e.message}")
            return ServiceResult.from_exception(e)
        except Exception as e:
            self.logger.error(f"{operation} failed: {e}", exc_info=True)
            return ServiceResult.fail(failure_message or f"Failed to {operation}", "EXCEPTION")

        if isinstance(result, ServiceResult):
            return result
        return ServiceResult.ok(result)
