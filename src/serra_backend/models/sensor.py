"""
SQLAlchemy model for Sensor entity.

Represents a sensor announced by a device and registered by auto-discovery.
"""
from sqlalchemy import Boolean, Column, ForeignKey, String, TIMESTAMP, UUID, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid

from ..database import Base, utcnow


class Sensor(Base):
    """Sensor model keyed by (device, locally-assigned sensor id)."""

    __tablename__ = "sensors"

    # Columns
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    device_id = Column(UUID(as_uuid=True), ForeignKey("devices.id", ondelete="CASCADE"), nullable=False)
    local_id = Column(String(64), nullable=False)
    sensor_type = Column(String(50), nullable=False)
    unit = Column(String(20), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    discovered_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    last_seen_at = Column(TIMESTAMP(timezone=True), nullable=True)

    # Constraints
    __table_args__ = (
        UniqueConstraint('device_id', 'local_id', name='uq_sensor_local_id_per_device'),
    )

    # Relationships
    device = relationship("Device", back_populates="sensors")
    readings = relationship("SensorReading", back_populates="sensor", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Sensor(id={self.id}, local_id={self.local_id}, type={self.sensor_type})>"
