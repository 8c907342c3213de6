"""Tests for error payloads, structured logging and health checks."""

import asyncio
import json
import logging
import sys
import time

import pytest

from tracker.core.error_recovery import HealthChecker
from tracker.core.exceptions import (
    ConfigurationError,
    EmptyShapeError,
    InvalidOrdinalError,
    MalformedRecordError,
    RateLimitExceededError,
    RecordNotFoundError,
    RecordSourceError,
    UnknownWorkflowSelectorError,
    create_error_response,
)
from tracker.core.logging import (
    RequestContextFilter,
    StructuredFormatter,
    bind_request_context,
    current_request_context,
    reset_request_context,
)
from tracker.core.middleware import get_status_code_for_error


class TestErrorResponses:
    """Test cases for mapping errors onto HTTP responses."""

    @pytest.mark.parametrize("error, status_code", [
        (UnknownWorkflowSelectorError("overnight"), 400),
        (InvalidOrdinalError("bad", ordinal=0), 400),
        (RecordNotFoundError("TM1", "T1"), 404),
        (MalformedRecordError("gap", missing_fields=["Processing"]), 422),
        (RateLimitExceededError("1.2.3.4", limit=60, retry_after=10), 429),
        (RecordSourceError("down"), 502),
        (EmptyShapeError("empty"), 500),
        (ConfigurationError("broken"), 500),
    ])
    def test_status_codes(self, error, status_code):
        """Test each error kind maps to its status code."""
        assert get_status_code_for_error(error) == status_code

    def test_error_payload(self):
        """Test the standard payload layout."""
        error = MalformedRecordError("gap", missing_fields=["Processing"], workflow="fullTrack")
        payload = create_error_response(error)

        assert payload["error"] == "MalformedRecord"
        assert payload["message"] == "gap"
        assert payload["details"]["missing_fields"] == ["Processing"]
        assert payload["details"]["category"] == "data"
        assert payload["details"]["recoverable"] is False
        assert payload["context"] == {"workflow": "fullTrack"}

    def test_to_dict(self):
        """Test the logging representation."""
        data = RecordSourceError("down", source="database", operation="fetch").to_dict()
        assert data["error_code"] == "RecordSourceError"
        assert data["recoverable"] is True
        assert data["retry_after"] == 3
        assert data["context"] == {"source": "database", "operation": "fetch"}
        assert data["exception_type"] == "RecordSourceError"


class TestStructuredFormatter:
    """Test cases for JSON log lines."""

    def test_format_with_extra_fields(self):
        """Test extra fields are merged into the JSON object."""
        record = logging.LogRecord("tracker.core.resolver", logging.WARNING, __file__, 10, "malformed", None, None)
        record.extra_fields = {"request_id": "abc", "workflow": "domestic"}

        entry = json.loads(StructuredFormatter().format(record))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "tracker.core.resolver"
        assert entry["message"] == "malformed"
        assert entry["request_id"] == "abc"
        assert entry["workflow"] == "domestic"

    def test_format_exception(self):
        """Test exceptions are serialized."""
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()

        record = logging.LogRecord("tracker", logging.ERROR, __file__, 1, "failed", None, exc_info)
        entry = json.loads(StructuredFormatter().format(record))
        assert entry["exception"]["type"] == "ValueError"
        assert entry["exception"]["message"] == "boom"


class TestRequestContext:
    """Test cases for the per-request log context."""

    @pytest.fixture
    def captured(self):
        """Records passed through the context filter."""
        records = []

        class ListHandler(logging.Handler):
            def emit(self, record):
                records.append(record)

        handler = ListHandler()
        handler.addFilter(RequestContextFilter())
        log = logging.getLogger("tracker.tests.context")
        log.addHandler(handler)
        log.setLevel(logging.INFO)
        log.propagate = False
        yield log, records
        log.removeHandler(handler)

    def test_bind_and_reset(self):
        """Test binding merges fields and reset restores the previous context."""
        outer = bind_request_context(request_id="abc", path="/api/tracking")
        inner = bind_request_context(order_no="TM111002", tracking_no=None)
        assert current_request_context() == {
            "request_id": "abc",
            "path": "/api/tracking",
            "order_no": "TM111002",
        }

        reset_request_context(inner)
        assert current_request_context() == {"request_id": "abc", "path": "/api/tracking"}
        reset_request_context(outer)
        assert current_request_context() == {}

    def test_records_without_context(self, captured):
        """Test records outside a request get a placeholder request id."""
        log, records = captured
        log.info("idle")
        assert records[0].request_id == "-"
        assert records[0].extra_fields == {}

    def test_explicit_fields_win(self, captured):
        """Test fields passed with the call override bound ones."""
        log, records = captured
        token = bind_request_context(request_id="abc", workflow="domestic")
        try:
            log.info("resolved", extra={"extra_fields": {"workflow": "fullTrack"}})
        finally:
            reset_request_context(token)
        assert records[0].extra_fields == {"request_id": "abc", "workflow": "fullTrack"}

    @pytest.mark.asyncio
    async def test_concurrent_requests_keep_their_own_context(self, captured):
        """Test interleaved requests never see each other's fields."""
        log, records = captured
        first_bound = asyncio.Event()
        second_done = asyncio.Event()

        async def first():
            token = bind_request_context(request_id="first", order_no="TM1")
            try:
                first_bound.set()
                await second_done.wait()
                log.info("first finished")
            finally:
                reset_request_context(token)

        async def second():
            await first_bound.wait()
            token = bind_request_context(request_id="second")
            try:
                log.info("second finished")
            finally:
                reset_request_context(token)
                second_done.set()

        await asyncio.gather(first(), second())

        by_message = {record.getMessage(): record for record in records}
        assert by_message["second finished"].extra_fields == {"request_id": "second"}
        assert by_message["first finished"].extra_fields == {"request_id": "first", "order_no": "TM1"}
        assert current_request_context() == {}


class TestHealthChecker:
    """Test cases for component health checks."""

    @pytest.mark.asyncio
    async def test_all_healthy(self):
        """Test passing checks report healthy with their details."""
        checker = HealthChecker()
        checker.register_check("catalog", lambda: {"workflows": 4})

        results = await checker.run_all_checks()
        assert results["overall_status"] == "healthy"
        assert results["checks"]["catalog"]["workflows"] == 4
        assert results["checks"]["catalog"]["critical"] is True

    @pytest.mark.asyncio
    async def test_critical_failure(self):
        """Test a failing critical check marks the service unhealthy."""
        def broken():
            raise RecordSourceError("database unavailable")

        checker = HealthChecker()
        checker.register_check("catalog", lambda: {"workflows": 4})
        checker.register_check("record_source", broken)

        results = await checker.run_all_checks()
        assert results["overall_status"] == "unhealthy"
        assert results["checks"]["record_source"]["status"] == "unhealthy"
        assert results["checks"]["record_source"]["error_type"] == "RecordSourceError"
        assert results["checks"]["catalog"]["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_non_critical_failure(self):
        """Test a failing optional check only degrades the service."""
        def broken():
            raise RuntimeError("collector gone")

        checker = HealthChecker()
        checker.register_check("catalog", lambda: {"workflows": 4})
        checker.register_check("metrics", broken, critical=False)

        results = await checker.run_all_checks()
        assert results["overall_status"] == "degraded"
        assert results["checks"]["metrics"]["critical"] is False

    @pytest.mark.asyncio
    async def test_slow_check_times_out(self):
        """Test a blocking check is abandoned after its timeout."""
        checker = HealthChecker()
        checker.register_check("record_source", lambda: time.sleep(0.2), timeout=0.01)

        result = await checker.run_check("record_source")
        assert result["status"] == "timeout"

    @pytest.mark.asyncio
    async def test_unknown_check(self):
        """Test running an unregistered check."""
        with pytest.raises(KeyError):
            await HealthChecker().run_check("missing")
