"""
SQLAlchemy model for Heartbeat entity.

Represents one accepted liveness contact and the telemetry it carried.
"""
from sqlalchemy import Column, ForeignKey, Integer, String, TIMESTAMP, UUID
from sqlalchemy.orm import relationship
import uuid

from ..database import Base, utcnow


class Heartbeat(Base):
    """Heartbeat model representing a device health check."""

    __tablename__ = "device_heartbeats"

    # Columns
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    device_id = Column(UUID(as_uuid=True), ForeignKey("devices.id", ondelete="CASCADE"), nullable=False)
    received_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    firmware_version = Column(String(20), nullable=True)
    rssi = Column(Integer, nullable=True)
    ip_address = Column(String(45), nullable=True)

    # Relationships
    device = relationship("Device", back_populates="heartbeats")

    def __repr__(self):
        return f"<Heartbeat(id={self.id}, device_id={self.device_id}, received_at={self.received_at})>"
