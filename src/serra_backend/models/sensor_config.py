"""
SQLAlchemy model for SensorConfig entity.

Represents one row of the authoritative port map a device mirrors locally.
Every insert, update, or delete bumps the owning device's config_version.
"""
from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    String,
    TIMESTAMP,
    UUID,
    UniqueConstraint,
    event,
    inspect,
    update,
)
from sqlalchemy.orm import relationship
import uuid

from ..database import Base, utcnow
from .device import Device


class SensorConfig(Base):
    """Port assignment served to the device in full-replace snapshots."""

    __tablename__ = "device_sensor_configs"

    # Columns
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    device_id = Column(UUID(as_uuid=True), ForeignKey("devices.id", ondelete="CASCADE"), nullable=False)
    sensor_type = Column(String(50), nullable=False)
    port_id = Column(String(20), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    configured_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    # Constraints
    __table_args__ = (
        UniqueConstraint('device_id', 'port_id', name='uq_sensor_config_port_per_device'),
    )

    # Relationships
    device = relationship("Device", back_populates="sensor_configs")

    def __repr__(self):
        return f"<SensorConfig(device_id={self.device_id}, type={self.sensor_type}, port={self.port_id})>"


def _bump_config_version(connection, device_id) -> None:
    devices = Device.__table__
    connection.execute(
        update(devices)
        .where(devices.c.id == device_id)
        .values(config_version=devices.c.config_version + 1)
    )


@event.listens_for(SensorConfig, "after_insert")
@event.listens_for(SensorConfig, "after_delete")
def _config_row_added_or_removed(mapper, connection, target):
    _bump_config_version(connection, target.device_id)


@event.listens_for(SensorConfig, "after_update")
def _config_row_changed(mapper, connection, target):
    state = inspect(target)
    if any(attr.history.has_changes() for attr in state.attrs):
        _bump_config_version(connection, target.device_id)
