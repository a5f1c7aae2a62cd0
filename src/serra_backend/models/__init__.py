"""SQLAlchemy ORM models."""
from .device import ConnectionStatus, Device
from .sensor_config import SensorConfig
from .sensor import Sensor
from .actuator import Actuator
from .command import Command, CommandKind, CommandStatus
from .reading import SensorReading
from .heartbeat import Heartbeat

__all__ = [
    "Actuator",
    "Command",
    "CommandKind",
    "CommandStatus",
    "ConnectionStatus",
    "Device",
    "Heartbeat",
    "Sensor",
    "SensorConfig",
    "SensorReading",
]
