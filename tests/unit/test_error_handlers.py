# =============================================================================
# tests/unit/test_error_handlers.py
# Unit Tests for the error hierarchy and handlers
# =============================================================================

import pytest

from pos_core.errors import (
    BackendError,
    PosCoreError,
    RemoteStoreError,
    error_boundary,
    handle_error,
    is_connectivity_error,
    is_missing_index_error,
    is_not_found_error,
    report_backend_error,
)
from pos_core.events import BackendErrorReported
from pos_core.services import BaseService, ServiceResult
from tests.conftest import run

pytestmark = pytest.mark.unit


class TestClassifiers:
    @pytest.mark.parametrize("error,expected", [
        (RemoteStoreError("offline", code="unavailable"), True),
        (RemoteStoreError("slow", code="deadline-exceeded"), True),
        (RuntimeError("Network request failed"), True),
        (RuntimeError("NETWORK down"), True),
        (RemoteStoreError("denied", code="permission-denied"), False),
        (ValueError("bad value"), False),
    ])
    def test_connectivity(self, error, expected):
        assert is_connectivity_error(error) is expected

    def test_connectivity_errors_are_recoverable(self):
        assert RemoteStoreError("offline", code="unavailable").recoverable
        assert not RemoteStoreError("denied", code="permission-denied").recoverable

    def test_missing_index(self):
        assert is_missing_index_error(RemoteStoreError("The query requires an index", code="failed-precondition"))
        assert not is_missing_index_error(RemoteStoreError("Precondition failed", code="failed-precondition"))
        assert not is_missing_index_error(RemoteStoreError("index", code="unknown"))

    def test_not_found(self):
        assert is_not_found_error(RemoteStoreError("gone", code="not-found"))


class TestHandlers:
    def test_handle_error_wraps_plain_exceptions(self):
        handled = handle_error(ValueError("boom"), log_error=False)
        assert isinstance(handled, PosCoreError)
        assert handled.code == "UNKNOWN"

    def test_handle_error_custom_message(self):
        handled = handle_error(RemoteStoreError("raw", code="unknown"), log_error=False, user_message="Try again")
        assert handled.message == "Try again"

    def test_report_backend_error_publishes(self, bus):
        cause = RemoteStoreError("denied", code="permission-denied")
        reported = report_backend_error(bus, "add", "orders", cause)
        assert isinstance(reported, BackendError)
        assert reported.details == {"operation": "add", "collection": "orders", "cause_code": "permission-denied"}
        assert bus.history(BackendErrorReported)[0].error is reported

    def test_to_dict(self):
        data = BackendError("failed", operation="add").to_dict()
        assert data["error_type"] == "BackendError"
        assert data["code"] == "BACKEND_001"


class TestErrorBoundary:
    def test_sync_function(self):
        @error_boundary(default_return=[], log=False)
        def explode():
            raise RuntimeError("x")

        first, second = explode(), explode()
        assert first == [] and first is not second

    def test_async_function(self):
        @error_boundary(default_return="fallback", log=False)
        async def explode():
            raise RuntimeError("x")

        assert run(explode()) == "fallback"


class TestRunGuarded:
    class Service(BaseService):
        pass

    def test_passes_through_results(self):
        async def ok():
            return ServiceResult.pending({"id": "temp_1"})

        result = run(self.Service().run_guarded("save", ok))
        assert result.queued

    def test_wraps_plain_return(self):
        async def ok():
            return 3

        assert run(self.Service().run_guarded("count", ok)).data == 3

    def test_unexpected_error_is_generic(self):
        async def explode():
            raise KeyError("secret detail")

        result = run(self.Service().run_guarded("unlock", explode))
        assert result.error == "Failed to unlock"
        assert result.error_code == "EXCEPTION"
