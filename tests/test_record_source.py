"""Tests for record sources and retry of record-source I/O."""

import logging

import pytest

from tracker.config import AppConfig
from tracker.core.error_recovery import RetryConfig, with_retry
from tracker.core.exceptions import RecordSourceError, MalformedRecordError
from tracker.models.core import ShipmentRecord
from tracker.storage.database import create_database_engine
from tracker.storage.record_source import (
    MOCK_SHIPMENTS,
    InMemoryRecordSource,
    SQLRecordSource,
    build_record_source,
)


class TestInMemoryRecordSource:
    """Test cases for the mock-data source."""

    def test_seeded_with_mock_shipments(self):
        """Test the default source holds the sample shipments."""
        source = InMemoryRecordSource()
        record = source.fetch("TM111001", "ABC123456789")

        assert record is not None
        assert record.shipment_type == "Full Track"
        assert source.describe() == {"source": "memory", "using_mock_data": True, "records": len(MOCK_SHIPMENTS)}

    def test_lookup_normalises_identifiers(self):
        """Test lookups ignore case and surrounding whitespace."""
        source = InMemoryRecordSource()
        assert source.fetch(" tm111002 ", "dom000000002") is not None

    def test_missing_record(self):
        """Test unknown pairs return None."""
        source = InMemoryRecordSource()
        assert source.fetch("TM111001", "WRONG") is None

    def test_custom_records(self):
        """Test a source built from explicit records."""
        source = InMemoryRecordSource([])
        assert source.fetch("TM111001", "ABC123456789") is None

        source.add(ShipmentRecord(order_no="a1", tracking_no="b2", shipment_type="Domestic"))
        assert source.fetch("A1", "B2").shipment_type == "Domestic"


class TestSQLRecordSource:
    """Test cases for the database-backed source."""

    def test_seed_and_fetch(self, temp_db_url):
        """Test seeded shipments can be read back."""
        source = SQLRecordSource.from_url(temp_db_url)
        assert source.seed() == len(MOCK_SHIPMENTS)
        assert source.count() == len(MOCK_SHIPMENTS)

        record = source.fetch("tm111003", "ie0000000003")
        assert record.shipment_type == "Import/Export"
        assert record.current_step == 8
        assert record.milestones["Dry Ice Refilled?"] is True
        assert record.milestones["Order Created"] == "10/01/2024 08:00"

    def test_save_is_upsert(self, temp_db_url):
        """Test saving an existing shipment updates it in place."""
        source = SQLRecordSource.from_url(temp_db_url)
        record = ShipmentRecord(
            order_no="TM2", tracking_no="T2", shipment_type="Domestic",
            current_step=1, milestones={"Order Created": "x"},
        )
        source.save(record)
        source.save(record.model_copy(update={"current_step": 2, "milestones": {"Order Created": "x", "Shipment Collected": "y"}}))

        assert source.count() == 1
        stored = source.fetch("TM2", "T2")
        assert stored.current_step == 2
        assert stored.milestones == {"Order Created": "x", "Shipment Collected": "y"}

    def test_missing_record(self, temp_db_url):
        """Test unknown pairs return None."""
        source = SQLRecordSource.from_url(temp_db_url)
        assert source.fetch("TM0", "NONE") is None

    def test_database_failure(self, temp_db_url):
        """Test database errors surface as RecordSourceError."""
        source = SQLRecordSource(create_database_engine(temp_db_url), create_schema=False)

        with pytest.raises(RecordSourceError) as exc_info:
            source.fetch("TM111001", "ABC123456789")
        assert exc_info.value.recoverable is True
        assert exc_info.value.context["operation"] == "fetch"

    def test_describe(self, temp_db_url):
        """Test the description names the database without mock data."""
        description = SQLRecordSource.from_url(temp_db_url).describe()
        assert description["source"] == "database"
        assert description["using_mock_data"] is False


class TestBuildRecordSource:
    """Test cases for choosing a source from configuration."""

    def test_memory(self):
        """Test the memory source is the default."""
        assert isinstance(build_record_source(AppConfig()), InMemoryRecordSource)

    def test_database(self, temp_db_url):
        """Test the database source is built from the URL."""
        config = AppConfig(record_source="database", database_url=temp_db_url)
        assert isinstance(build_record_source(config), SQLRecordSource)


class TestRetry:
    """Test cases for retrying record-source reads."""

    def test_recovers_after_transient_errors(self):
        """Test a read succeeds once the transient errors stop."""
        calls = []

        @with_retry(RetryConfig(max_attempts=3, base_delay=0, jitter=False))
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise RecordSourceError("connection reset")
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_gives_up_after_max_attempts(self):
        """Test the last error is raised when attempts run out."""
        calls = []

        @with_retry(RetryConfig(max_attempts=2, base_delay=0, jitter=False))
        def broken():
            calls.append(1)
            raise RecordSourceError("down")

        with pytest.raises(RecordSourceError):
            broken()
        assert len(calls) == 2

    def test_non_recoverable_errors_not_retried(self):
        """Test data errors fail immediately."""
        calls = []

        @with_retry(RetryConfig(max_attempts=3, base_delay=0))
        def malformed():
            calls.append(1)
            raise MalformedRecordError("bad record")

        with pytest.raises(MalformedRecordError):
            malformed()
        assert len(calls) == 1

    def test_retries_are_logged(self, caplog):
        """Test each retry is logged with the attempt number."""
        calls = []

        @with_retry(RetryConfig(max_attempts=2, base_delay=0, jitter=False))
        def fetch_shipment():
            calls.append(1)
            if len(calls) < 2:
                raise RecordSourceError("connection reset")
            return "ok"

        with caplog.at_level(logging.WARNING, logger="tracker.core.error_recovery"):
            assert fetch_shipment() == "ok"

        warnings = [record for record in caplog.records if record.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert warnings[0].extra_fields["attempt"] == 1
        assert warnings[0].extra_fields["error_type"] == "RecordSourceError"
