"""Record store adapters and database layer."""

from .database import Base, create_database_engine, create_session_factory, create_tables, drop_tables
from .models import ShipmentModel
from .record_source import RecordSource, InMemoryRecordSource, SQLRecordSource, build_record_source

__all__ = [
    "Base",
    "create_database_engine",
    "create_session_factory",
    "create_tables",
    "drop_tables",
    "ShipmentModel",
    "RecordSource",
    "InMemoryRecordSource",
    "SQLRecordSource",
    "build_record_source",
]
