"""
SQLAlchemy model for Command entity.

Represents an operator-issued actuator command moving through
pending -> retrieved -> confirmed/failed, or pending -> expired.
"""
from enum import Enum

from sqlalchemy import CheckConstraint, Column, Float, ForeignKey, String, TIMESTAMP, UUID
from sqlalchemy.orm import relationship
import uuid

from ..database import Base, utcnow


class CommandKind(str, Enum):
    ON = "on"
    OFF = "off"
    SET_VALUE = "set_value"


class CommandStatus(str, Enum):
    PENDING = "pending"
    RETRIEVED = "retrieved"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    EXPIRED = "expired"


class Command(Base):
    """Command model targeting one actuator."""

    __tablename__ = "commands"

    # Columns
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actuator_id = Column(UUID(as_uuid=True), ForeignKey("actuators.id", ondelete="CASCADE"), nullable=False)
    command_type = Column(String(20), nullable=False)
    value = Column(Float, nullable=True)
    status = Column(String(20), nullable=False, default=CommandStatus.PENDING.value)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    retrieved_at = Column(TIMESTAMP(timezone=True), nullable=True)
    confirmed_at = Column(TIMESTAMP(timezone=True), nullable=True)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=False)
    error_message = Column(String(255), nullable=True)

    # Constraints
    __table_args__ = (
        CheckConstraint(
            "command_type IN ('on', 'off', 'set_value')",
            name='check_command_type'
        ),
        CheckConstraint(
            "status IN ('pending', 'retrieved', 'confirmed', 'failed', 'expired')",
            name='check_command_status'
        ),
        CheckConstraint(
            "(command_type = 'set_value' AND value IS NOT NULL AND value >= 0 AND value <= 100) "
            "OR (command_type != 'set_value' AND value IS NULL)",
            name='check_command_value'
        ),
    )

    # Relationships
    actuator = relationship("Actuator", back_populates="commands")

    def __repr__(self):
        return f"<Command(id={self.id}, type={self.command_type}, status={self.status})>"
