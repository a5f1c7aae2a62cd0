"""Shared fixtures for device agent unit tests."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from serra_device.config.loader import (
    ActuatorSpec,
    AgentConfig,
    ButtonConfig,
    ServerConfig,
    TimingConfig,
)
from serra_device.errors import CloudError
from serra_device.types import (
    CommandOutcome,
    ConfigEntry,
    DeviceIdentity,
    HeartbeatAck,
    PendingCommand,
)


class FakeCloud:
    """In-memory stand-in for CloudClient that records every call."""

    def __init__(self) -> None:
        self.server_version = 1
        self.snapshot: List[ConfigEntry] = []
        self.pending: List[PendingCommand] = []
        self.calls: List[str] = []
        self.readings: List[list] = []
        self.confirmations: List[tuple] = []
        self.announced_actuators: List[list] = []
        self.failures: Dict[str, List[CloudError]] = {}

    def fail_next(self, call: str, error: CloudError) -> None:
        self.failures.setdefault(call, []).append(error)

    def _record(self, call: str) -> None:
        self.calls.append(call)
        queued = self.failures.get(call)
        if queued:
            raise queued.pop(0)

    def heartbeat(self, identity: DeviceIdentity, firmware_version: str, **kwargs) -> HeartbeatAck:
        self._record("heartbeat")
        return HeartbeatAck(composite_id=identity.composite_id, status="online", config_version=self.server_version)

    def fetch_config(self, identity: DeviceIdentity, *, sensors=(), actuators=()) -> List[ConfigEntry]:
        self._record("fetch_config")
        self.announced_actuators.append(list(actuators))
        return list(self.snapshot)

    def send_readings(self, identity: DeviceIdentity, readings) -> int:
        self._record("send_readings")
        batch = list(readings)
        self.readings.append(batch)
        return len(batch)

    def poll_commands(self, identity: DeviceIdentity) -> List[PendingCommand]:
        self._record("poll_commands")
        claimed, self.pending = self.pending, []
        return claimed

    def confirm(
        self,
        identity: DeviceIdentity,
        command_id: str,
        outcome: CommandOutcome,
        *,
        error_message: Optional[str] = None,
    ) -> str:
        self._record("confirm")
        self.confirmations.append((command_id, outcome, error_message))
        return outcome.value


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def build_agent_config(tmp_path: Path, **overrides) -> AgentConfig:
    values = dict(
        source=tmp_path / "agent.yaml",
        server=ServerConfig(base_url="http://127.0.0.1:9", timeout_ms=200),
        firmware_version="3.2.0",
        storage_path=tmp_path / "device.json",
        hostname=None,
        timing=TimingConfig(heartbeat_interval_s=60.0, sensor_interval_s=30.0, command_interval_s=10.0, loop_sleep_ms=1),
        button=ButtonConfig(enabled=True, network_reset_s=5.0, full_reset_s=10.0, poll_ms=50),
        max_ports=4,
        actuators=(
            ActuatorSpec(actuator_id="relay_1", actuator_type="relay", port_id="D5"),
            ActuatorSpec(actuator_id="fan_pwm", actuator_type="pwm", port_id="GPIO12"),
        ),
    )
    values.update(overrides)
    return AgentConfig(**values)


@pytest.fixture
def fake_cloud() -> FakeCloud:
    return FakeCloud()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def agent_config(tmp_path: Path) -> AgentConfig:
    return build_agent_config(tmp_path)
