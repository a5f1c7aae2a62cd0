"""
SQLAlchemy model for Actuator entity.

Represents an output (relay, PWM channel) announced by a device. The state
columns only ever change when the device confirms a command.
"""
from sqlalchemy import Boolean, CheckConstraint, Column, Float, ForeignKey, String, TIMESTAMP, UUID, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid

from ..database import Base, utcnow


class Actuator(Base):
    """Actuator model keyed by (device, locally-assigned actuator id)."""

    __tablename__ = "actuators"

    # Columns
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    device_id = Column(UUID(as_uuid=True), ForeignKey("devices.id", ondelete="CASCADE"), nullable=False)
    local_id = Column(String(64), nullable=False)
    actuator_type = Column(String(50), nullable=False)
    supports_pwm = Column(Boolean, nullable=False, default=False)
    current_state = Column(String(10), nullable=False, default="off")
    current_value = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    discovered_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    # Constraints
    __table_args__ = (
        UniqueConstraint('device_id', 'local_id', name='uq_actuator_local_id_per_device'),
        CheckConstraint("current_state IN ('on', 'off')", name='check_actuator_state'),
    )

    # Relationships
    device = relationship("Device", back_populates="actuators")
    commands = relationship("Command", back_populates="actuator", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Actuator(id={self.id}, local_id={self.local_id}, state={self.current_state})>"
