"""
SQLAlchemy model for Device entity.

Represents a microcontroller pre-provisioned by an operator under a project slot.
"""
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Integer,
    String,
    TIMESTAMP,
    UUID,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import relationship
import uuid

from ..database import Base, utcnow


class ConnectionStatus(str, Enum):
    OFFLINE = "offline"
    ONLINE = "online"
    CONNECTION_FAILED = "connection_failed"


class Device(Base):
    """Device model holding identity, secret verifier, and liveness state."""

    __tablename__ = "devices"

    # Columns
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    composite_device_id = Column(String(20), nullable=False, unique=True)
    project_id = Column(String(5), nullable=False)
    slot_number = Column(Integer, nullable=False)
    name = Column(String(100), nullable=False)
    secret_hash = Column(String(64), nullable=True)
    revoked = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=ConnectionStatus.OFFLINE.value)
    last_contact_at = Column(TIMESTAMP(timezone=True), nullable=True)
    registered_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    firmware_version = Column(String(20), nullable=True)
    config_version = Column(Integer, nullable=False, default=1)
    hostname = Column(String(255), nullable=True)

    # Constraints
    __table_args__ = (
        UniqueConstraint('project_id', 'slot_number', name='uq_device_slot_per_project'),
        CheckConstraint(
            "status IN ('offline', 'online', 'connection_failed')",
            name='check_valid_connection_status'
        ),
        CheckConstraint(
            "status != 'online' OR last_contact_at IS NOT NULL",
            name='check_online_has_last_contact'
        ),
        CheckConstraint('config_version >= 0', name='check_config_version_non_negative'),
    )

    # Relationships
    sensor_configs = relationship("SensorConfig", back_populates="device", cascade="all, delete-orphan")
    sensors = relationship("Sensor", back_populates="device", cascade="all, delete-orphan")
    actuators = relationship("Actuator", back_populates="device", cascade="all, delete-orphan")
    readings = relationship("SensorReading", back_populates="device", cascade="all, delete-orphan")
    heartbeats = relationship("Heartbeat", back_populates="device", cascade="all, delete-orphan")

    @property
    def is_bound(self) -> bool:
        return self.secret_hash is not None

    def __repr__(self):
        return f"<Device(id={self.id}, composite_id={self.composite_device_id}, status={self.status})>"


@event.listens_for(Device, "before_insert")
@event.listens_for(Device, "before_update")
def _default_last_contact(mapper, connection, target):
    """An online device always carries a last-contact timestamp."""
    if target.status == ConnectionStatus.ONLINE.value and target.last_contact_at is None:
        target.last_contact_at = utcnow()
