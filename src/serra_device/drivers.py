"""Sensor and actuator banks driven by the persisted port map.

Hardware access goes through injectable callables so the same banks run on a
board, in simulation, and in tests.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from serra_device.config.loader import ActuatorSpec
from serra_device.errors import ActuatorError
from serra_device.types import (
    ActuatorDescriptor,
    CommandKind,
    PendingCommand,
    PortAssignment,
    Reading,
    SensorDescriptor,
    SensorKind,
)

LOGGER = logging.getLogger(__name__)

# Wemos D1 mini silkscreen labels D0..D10 to ESP8266 GPIO numbers
WEMOS_PIN_MAP = (16, 5, 4, 0, 2, 14, 12, 13, 15, 3, 1)
ANALOG_PIN = 17

UNCONFIGURED = "unconfigured"

# channel name -> (reported sensor_type, unit)
_CHANNELS: Dict[SensorKind, Tuple[Tuple[str, str, str], ...]] = {
    SensorKind.DHT22: (("temperature", "temperature", "°C"), ("humidity", "humidity", "%")),
    SensorKind.SOIL_MOISTURE: (("moisture", "soil_moisture", "%"),),
    SensorKind.WATER_LEVEL: (("level", "water_level", "%"),),
}

ValueSource = Callable[[PortAssignment, str], Optional[float]]
PinWriter = Callable[[ActuatorSpec, bool, Optional[float]], None]


def parse_port_id(port_id: str) -> int:
    """Resolve a port label (GPIO4, D2, A0 or a bare number) to a pin number."""
    label = (port_id or "").strip().upper()
    if not label:
        raise ValueError("Port id must be a non-empty string")
    if label.startswith("GPIO") and label[4:].isdigit():
        return int(label[4:])
    if label == "A0":
        return ANALOG_PIN
    if label.startswith("D") and label[1:].isdigit():
        index = int(label[1:])
        if index >= len(WEMOS_PIN_MAP):
            raise ValueError(f"Unknown Wemos pin: {port_id}")
        return WEMOS_PIN_MAP[index]
    if label.isdigit():
        return int(label)
    raise ValueError(f"Unrecognised port id: {port_id}")


def map_sensor_type(sensor_type: str) -> Optional[SensorKind]:
    """Map a server-side sensor type name onto a driver, or None if unsupported."""
    name = (sensor_type or "").strip().lower()
    if not name or name == UNCONFIGURED:
        return None
    if "temp" in name or "humidity" in name:
        return SensorKind.DHT22
    if "soil_moisture" in name:
        return SensorKind.SOIL_MOISTURE
    if name == "water_level":
        return SensorKind.WATER_LEVEL
    return None


def sensor_id_for(assignment: PortAssignment, channel: str) -> str:
    return f"{assignment.kind.value}_{assignment.port_id.lower()}_{channel}"


class SimulatedValueSource:
    """Bounded random walk per channel, for boards without wired sensors."""

    _RANGES = {
        "temperature": (10.0, 35.0),
        "humidity": (30.0, 90.0),
        "moisture": (0.0, 100.0),
        "level": (0.0, 100.0),
    }

    def __init__(self, seed: Optional[int] = None) -> None:
        self._rng = random.Random(seed)
        self._last: Dict[Tuple[int, str], float] = {}

    def __call__(self, assignment: PortAssignment, channel: str) -> Optional[float]:
        low, high = self._RANGES.get(channel, (0.0, 100.0))
        key = (assignment.pin, channel)
        previous = self._last.get(key, (low + high) / 2.0)
        value = min(high, max(low, previous + self._rng.uniform(-1.0, 1.0)))
        self._last[key] = value
        return round(value, 1)


class SensorBank:
    """Reads every configured port and reports one reading per channel."""

    def __init__(self, source: Optional[ValueSource] = None) -> None:
        self._source = source or SimulatedValueSource()
        self._ports: Tuple[PortAssignment, ...] = ()

    @property
    def ports(self) -> Tuple[PortAssignment, ...]:
        return self._ports

    def reinitialize(self, ports: Iterable[PortAssignment]) -> None:
        self._ports = tuple(ports)
        LOGGER.info(
            "Sensor bank initialised with %d ports: %s",
            len(self._ports),
            ", ".join(f"{port.sensor_type}@{port.port_id}" for port in self._ports) or "<none>",
        )

    def descriptors(self) -> List[SensorDescriptor]:
        return [
            SensorDescriptor(sensor_id=sensor_id_for(port, channel), sensor_type=reported_type, unit=unit)
            for port in self._ports
            for channel, reported_type, unit in _CHANNELS[port.kind]
        ]

    def read_all(self) -> List[Reading]:
        readings: List[Reading] = []
        for port in self._ports:
            for channel, reported_type, unit in _CHANNELS[port.kind]:
                value = self._source(port, channel)
                if value is None or value != value:
                    LOGGER.warning("Read failed for %s on %s (%s)", port.kind.value, port.port_id, channel)
                    continue
                readings.append(
                    Reading(
                        sensor_id=sensor_id_for(port, channel),
                        sensor_type=reported_type,
                        value=float(value),
                        unit=unit,
                    )
                )
        return readings


@dataclass
class ActuatorState:
    spec: ActuatorSpec
    pin: int
    is_on: bool = False
    value: Optional[float] = None


def _log_pin_write(spec: ActuatorSpec, is_on: bool, value: Optional[float]) -> None:
    LOGGER.info(
        "Actuator %s (%s on %s) -> %s%s",
        spec.actuator_id,
        spec.actuator_type,
        spec.port_id,
        "on" if is_on else "off",
        f" @ {value:g}%" if value is not None else "",
    )


class ActuatorBank:
    """Applies commands to locally declared relays and PWM outputs."""

    def __init__(self, writer: Optional[PinWriter] = None) -> None:
        self._writer = writer or _log_pin_write
        self._states: Dict[str, ActuatorState] = {}

    def reinitialize(self, specs: Sequence[ActuatorSpec]) -> None:
        states: Dict[str, ActuatorState] = {}
        for spec in specs:
            try:
                pin = parse_port_id(spec.port_id)
            except ValueError as exc:
                LOGGER.warning("Skipping actuator %s: %s", spec.actuator_id, exc)
                continue
            states[spec.actuator_id] = ActuatorState(spec=spec, pin=pin)
        self._states = states
        for state in self._states.values():
            self._writer(state.spec, False, None)

    def state(self, actuator_id: str) -> Optional[ActuatorState]:
        return self._states.get(actuator_id)

    def descriptors(self) -> List[ActuatorDescriptor]:
        return [
            ActuatorDescriptor(
                actuator_id=state.spec.actuator_id,
                actuator_type=state.spec.actuator_type,
                supports_pwm=state.spec.supports_pwm,
            )
            for state in self._states.values()
        ]

    def apply(self, command: PendingCommand) -> None:
        """Execute one command. Raises ActuatorError when it cannot be applied."""
        state = self._states.get(command.actuator_id)
        if state is None:
            raise ActuatorError(f"Unknown actuator: {command.actuator_id}")

        if command.kind is CommandKind.ON:
            is_on, value = True, state.value
        elif command.kind is CommandKind.OFF:
            is_on, value = False, state.value
        else:
            if not state.spec.supports_pwm:
                raise ActuatorError(f"Actuator {command.actuator_id} does not support set_value")
            if command.value is None or not 0.0 <= command.value <= 100.0:
                raise ActuatorError(f"Invalid value for {command.actuator_id}: {command.value}")
            is_on, value = command.value > 0, float(command.value)

        self._writer(state.spec, is_on, value)
        state.is_on = is_on
        state.value = value


__all__ = [
    "ANALOG_PIN",
    "ActuatorBank",
    "ActuatorState",
    "SensorBank",
    "SimulatedValueSource",
    "UNCONFIGURED",
    "WEMOS_PIN_MAP",
    "map_sensor_type",
    "parse_port_id",
    "sensor_id_for",
]
