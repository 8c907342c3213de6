"""Record sources supplying shipment milestone data to the timeline engine."""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..core.error_recovery import with_retry, RetryConfig
from ..core.exceptions import ConfigurationError, RecordSourceError
from ..core.logging import get_logger
from ..models.core import ShipmentRecord
from .database import create_database_engine, create_session_factory, create_tables
from .models import ShipmentModel

logger = get_logger(__name__)


MOCK_SHIPMENTS: Tuple[ShipmentRecord, ...] = (
    ShipmentRecord(
        order_no="TM111001",
        tracking_no="ABC123456789",
        shipment_type="Full Track",
        status="In Transit",
        last_update="2024/10/07 08:30",
        current_step=5,
        milestones={
            "Order Placed": "10/01/2024 09:00",
            "Processing": "10/02/2024 10:30",
            "Origin Customs": "10/05/2024 14:20",
            "Export Clearance": "10/06/2024 11:15",
            "In Transit": "10/07/2024 08:30",
        },
    ),
    ShipmentRecord(
        order_no="TM111002",
        tracking_no="DOM000000002",
        shipment_type="Domestic",
        status="Shipment Collected",
        last_update="2024/10/03 16:45",
        current_step=2,
        milestones={
            "Order Created": "10/03/2024 09:10",
            "Shipment Collected": "10/03/2024 16:45",
        },
    ),
    ShipmentRecord(
        order_no="TM111003",
        tracking_no="IE0000000003",
        shipment_type="Import/Export",
        status="Import Released",
        last_update="2024/10/12 13:05",
        current_step=8,
        milestones={
            "Order Created": "10/01/2024 08:00",
            "Shipment Collected": "10/02/2024 11:20",
            "Origin Customs Process": "10/03/2024 09:40",
            "Export Released": "10/04/2024 15:00",
            "In Transit": "10/05/2024 22:10",
            "Destination Customs Process": "10/09/2024 10:30",
            "Import Released": "10/12/2024 13:05",
            "Dry Ice Refilled?": True,
        },
    ),
    ShipmentRecord(
        order_no="TM111004",
        tracking_no="CT0000000004",
        shipment_type="Cross Trade",
        status="Customs Process",
        last_update="2024/10/06 17:25",
        current_step=3,
        milestones={
            "Order Created": "10/02/2024 10:00",
            "Shipment Collected": "10/04/2024 09:15",
            "Destination Customs Process": "10/06/2024 17:25",
        },
    ),
)


def _serialize_milestones(milestones: Dict[str, Any]) -> Dict[str, Any]:
    return {
        name: value.isoformat() if isinstance(value, (date, datetime)) else value
        for name, value in milestones.items()
    }


class RecordSource(ABC):
    """Supplies shipment records keyed by order and tracking number."""

    name = "abstract"

    @abstractmethod
    def fetch(self, order_no: str, tracking_no: str) -> Optional[ShipmentRecord]:
        """Return the matching record, or None when there is none."""

    def describe(self) -> Dict[str, Any]:
        """Short description for health checks."""
        return {"source": self.name}

    @staticmethod
    def _key(order_no: str, tracking_no: str) -> Tuple[str, str]:
        return order_no.strip().upper(), tracking_no.strip().upper()


class InMemoryRecordSource(RecordSource):
    """Dictionary-backed source, seeded with mock shipments by default."""

    name = "memory"

    def __init__(self, records: Optional[Iterable[ShipmentRecord]] = None):
        records = MOCK_SHIPMENTS if records is None else records
        self._records: Dict[Tuple[str, str], ShipmentRecord] = {
            self._key(record.order_no, record.tracking_no): record for record in records
        }

    def fetch(self, order_no: str, tracking_no: str) -> Optional[ShipmentRecord]:
        return self._records.get(self._key(order_no, tracking_no))

    def add(self, record: ShipmentRecord) -> None:
        self._records[self._key(record.order_no, record.tracking_no)] = record

    def describe(self) -> Dict[str, Any]:
        return {"source": self.name, "using_mock_data": True, "records": len(self._records)}


class SQLRecordSource(RecordSource):
    """Source reading the ``shipments`` table through SQLAlchemy."""

    name = "database"

    def __init__(self, engine: Engine, create_schema: bool = True):
        self.engine = engine
        self._session_factory = create_session_factory(engine)
        if create_schema:
            create_tables(engine)

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SQLRecordSource":
        return cls(create_database_engine(database_url, echo=echo))

    @with_retry(RetryConfig(max_attempts=3))
    def fetch(self, order_no: str, tracking_no: str) -> Optional[ShipmentRecord]:
        """
        Fetch a shipment by order and tracking number.

        Raises:
            RecordSourceError: If the database cannot be queried
        """
        order_no, tracking_no = self._key(order_no, tracking_no)
        logger.debug(f"Querying shipment {order_no}/{tracking_no}")

        try:
            with self._session_factory() as session:
                row = (
                    session.query(ShipmentModel)
                    .filter(ShipmentModel.order_no == order_no, ShipmentModel.tracking_no == tracking_no)
                    .first()
                )
                if row is None:
                    return None
                return self._to_record(row)
        except SQLAlchemyError as e:
            logger.error(f"Database error while fetching shipment: {str(e)}")
            raise RecordSourceError(
                f"Failed to read shipment: {str(e)}", source=self.name, operation="fetch"
            )

    def save(self, record: ShipmentRecord) -> None:
        """Insert or update a shipment row."""
        order_no, tracking_no = self._key(record.order_no, record.tracking_no)
        try:
            with self._session_factory() as session:
                row = (
                    session.query(ShipmentModel)
                    .filter(ShipmentModel.order_no == order_no, ShipmentModel.tracking_no == tracking_no)
                    .first()
                )
                if row is None:
                    row = ShipmentModel(order_no=order_no, tracking_no=tracking_no)
                    session.add(row)
                row.shipment_type = record.shipment_type
                row.status = record.status
                row.last_update = record.last_update
                row.current_step = record.current_step
                row.milestones = _serialize_milestones(record.milestones)
                session.commit()
                logger.info(f"Saved shipment {order_no}/{tracking_no}")
        except SQLAlchemyError as e:
            logger.error(f"Database error while saving shipment: {str(e)}")
            raise RecordSourceError(
                f"Failed to save shipment: {str(e)}", source=self.name, operation="save"
            )

    def seed(self, records: Iterable[ShipmentRecord] = MOCK_SHIPMENTS) -> int:
        count = 0
        for record in records:
            self.save(record)
            count += 1
        return count

    def count(self) -> int:
        with self._session_factory() as session:
            return session.query(ShipmentModel).count()

    def describe(self) -> Dict[str, Any]:
        return {
            "source": self.name,
            "using_mock_data": False,
            "database": self.engine.url.render_as_string(hide_password=True),
        }

    @staticmethod
    def _to_record(row: ShipmentModel) -> ShipmentRecord:
        return ShipmentRecord(
            order_no=row.order_no,
            tracking_no=row.tracking_no,
            shipment_type=row.shipment_type,
            status=row.status,
            last_update=row.last_update,
            current_step=row.current_step,
            milestones=dict(row.milestones or {}),
        )


def build_record_source(config) -> RecordSource:
    """Create the record source selected by configuration."""
    if config.record_source == "memory":
        logger.info("Using in-memory record source with mock shipments")
        return InMemoryRecordSource()
    if config.record_source == "database":
        logger.info("Using database record source")
        return SQLRecordSource.from_url(config.database_url, echo=config.database_echo)
    raise ConfigurationError(
        f"Unknown record source '{config.record_source}'", config_key="record_source"
    )
