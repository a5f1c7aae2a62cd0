"""
SQLAlchemy model for SensorReading entity.

Represents a single measurement pushed by a device.
"""
from sqlalchemy import Column, Float, ForeignKey, String, TIMESTAMP, UUID
from sqlalchemy.orm import relationship
import uuid

from ..database import Base, utcnow


class SensorReading(Base):
    """Reading model attached to an auto-discovered sensor."""

    __tablename__ = "sensor_readings"

    # Columns
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sensor_id = Column(UUID(as_uuid=True), ForeignKey("sensors.id", ondelete="CASCADE"), nullable=False)
    device_id = Column(UUID(as_uuid=True), ForeignKey("devices.id", ondelete="CASCADE"), nullable=False)
    value = Column(Float, nullable=False)
    unit = Column(String(20), nullable=True)
    recorded_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    # Relationships
    sensor = relationship("Sensor", back_populates="readings")
    device = relationship("Device", back_populates="readings")

    def __repr__(self):
        return f"<SensorReading(sensor_id={self.sensor_id}, value={self.value})>"
