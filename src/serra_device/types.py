"""Shared dataclasses and enums used across the agent, storage, and cloud client."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

CONFIG_VERSION_MAX = 10000


class AgentMode(str, Enum):
    PROVISIONING = "provisioning"
    RUNNING = "running"


class ResetLevel(str, Enum):
    NONE = "none"
    NETWORK = "network"
    FULL = "full"


class CommandKind(str, Enum):
    ON = "on"
    OFF = "off"
    SET_VALUE = "set_value"


class CommandOutcome(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"


class SensorKind(str, Enum):
    DHT22 = "dht22"
    SOIL_MOISTURE = "soil_moisture"
    WATER_LEVEL = "water_level"


@dataclass(frozen=True)
class PortAssignment:
    """One configured sensor slot: server type name, port label, resolved pin."""

    sensor_type: str
    port_id: str
    pin: int
    kind: SensorKind


@dataclass(frozen=True)
class DeviceIdentity:
    composite_id: str
    secret: str


@dataclass(frozen=True)
class DeviceRecord:
    """Everything the agent persists between boots."""

    identity: DeviceIdentity
    wifi_ssid: str
    wifi_password: str = ""
    ports: Tuple[PortAssignment, ...] = field(default_factory=tuple)
    config_version: int = 0

    @property
    def has_network(self) -> bool:
        return bool(self.wifi_ssid)

    def with_ports(self, ports: Tuple[PortAssignment, ...], config_version: int) -> "DeviceRecord":
        return replace(self, ports=tuple(ports), config_version=config_version)


@dataclass(frozen=True)
class HeartbeatAck:
    composite_id: str
    status: str
    config_version: int


@dataclass(frozen=True)
class ConfigEntry:
    sensor_type: str
    port_id: str


@dataclass(frozen=True)
class Reading:
    sensor_id: str
    sensor_type: str
    value: float
    unit: Optional[str] = None


@dataclass(frozen=True)
class SensorDescriptor:
    sensor_id: str
    sensor_type: str
    unit: Optional[str] = None


@dataclass(frozen=True)
class ActuatorDescriptor:
    actuator_id: str
    actuator_type: str
    supports_pwm: bool


@dataclass(frozen=True)
class PendingCommand:
    command_id: str
    actuator_id: str
    kind: CommandKind
    value: Optional[float] = None


@dataclass(frozen=True)
class Confirmation:
    """Outcome awaiting delivery to the server."""

    command_id: str
    outcome: CommandOutcome
    error_message: Optional[str] = None


__all__ = [
    "CONFIG_VERSION_MAX",
    "ActuatorDescriptor",
    "AgentMode",
    "CommandKind",
    "CommandOutcome",
    "ConfigEntry",
    "Confirmation",
    "DeviceIdentity",
    "DeviceRecord",
    "HeartbeatAck",
    "PendingCommand",
    "PortAssignment",
    "Reading",
    "ResetLevel",
    "SensorDescriptor",
    "SensorKind",
]
