"""SQLAlchemy database models for the record store."""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, JSON, UniqueConstraint
from .database import Base


class ShipmentModel(Base):
    """A shipment row with its milestone fields."""
    __tablename__ = "shipments"
    __table_args__ = (
        UniqueConstraint("order_no", "tracking_no", name="uq_shipments_order_tracking"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_no = Column(String, nullable=False, index=True)
    tracking_no = Column(String, nullable=False, index=True)
    shipment_type = Column(String)
    status = Column(String)
    last_update = Column(String)
    current_step = Column(Integer)
    milestones = Column(JSON, nullable=False, default=dict)  # field name -> value
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
