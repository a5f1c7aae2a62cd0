"""Cooperative device agent loop.

One thread runs everything: the reset button is checked first on every tick,
then the heartbeat, sensor and command timers fire in turn. All network
calls are initiated here and a failed call is simply retried on the next
cycle. State lives on an explicit ``AgentContext`` so tests can swap the
clock, storage, transport, and hardware.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from serra_device.button import ButtonMonitor, never_pressed
from serra_device.cloud import CloudClient
from serra_device.config.loader import AgentConfig
from serra_device.drivers import ActuatorBank, SensorBank
from serra_device.errors import (
    ActuatorError,
    AuthenticationFailed,
    CloudError,
    DeviceTimeout,
    StorageCorruption,
    Unreachable,
)
from serra_device.storage import RecordStore, generate_secret
from serra_device.sync import ConfigSynchronizer
from serra_device.types import (
    AgentMode,
    CommandOutcome,
    Confirmation,
    DeviceIdentity,
    DeviceRecord,
    ResetLevel,
)

LOGGER = logging.getLogger(__name__)

COMPOSITE_ID_PATTERN = re.compile(r"^[A-Z0-9]{4,5}-ESP[1-9][0-9]*$")

NetworkInfo = Tuple[Optional[int], Optional[str]]


def _no_network_info() -> NetworkInfo:
    return None, None


@dataclass
class AgentContext:
    config: AgentConfig
    store: RecordStore
    client: CloudClient
    sensors: SensorBank = field(default_factory=SensorBank)
    actuators: ActuatorBank = field(default_factory=ActuatorBank)
    button: Optional[ButtonMonitor] = None
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    reboot: Optional[Callable[[], None]] = None
    network_info: Callable[[], NetworkInfo] = _no_network_info

    @classmethod
    def from_config(cls, config: AgentConfig, **overrides) -> "AgentContext":
        store = overrides.pop("store", None) or RecordStore(config.storage_path)
        client = overrides.pop("client", None) or CloudClient(config.server)
        button = overrides.pop("button", None) or ButtonMonitor(config.button, never_pressed)
        return cls(config=config, store=store, client=client, button=button, **overrides)


class DeviceAgent:
    """Runs provisioning, heartbeat, config sync, telemetry, and commands."""

    def __init__(self, context: AgentContext) -> None:
        self._ctx = context
        self._mode = AgentMode.PROVISIONING
        self._record: Optional[DeviceRecord] = None
        self._last_heartbeat: Optional[float] = None
        self._last_sensor: Optional[float] = None
        self._last_command: Optional[float] = None
        self._unconfirmed: List[Confirmation] = []
        self._running = False
        self._booted = False
        self._synchronizer = ConfigSynchronizer(
            context.client,
            context.store,
            max_ports=context.config.max_ports,
            on_applied=self._apply_record,
            announce_sensors=context.sensors.descriptors,
            announce_actuators=context.actuators.descriptors,
        )

    @property
    def mode(self) -> AgentMode:
        return self._mode

    @property
    def record(self) -> Optional[DeviceRecord]:
        return self._record

    @property
    def unconfirmed(self) -> Tuple[Confirmation, ...]:
        return tuple(self._unconfirmed)

    def boot(self) -> AgentMode:
        """Load the persisted record and pick the starting mode."""
        try:
            record = self._ctx.store.load()
        except StorageCorruption as exc:
            LOGGER.error("Stored record rejected (%s); erasing and entering provisioning", exc)
            self._ctx.store.clear()
            record = None

        self._booted = True
        self._record = record
        self._last_heartbeat = self._last_sensor = self._last_command = None
        self._unconfirmed.clear()
        self._ctx.actuators.reinitialize(self._ctx.config.actuators)

        if record is None:
            LOGGER.info("No device record; waiting for provisioning")
            self._mode = AgentMode.PROVISIONING
        elif not record.has_network:
            LOGGER.info("Device %s has no WiFi credentials; waiting for provisioning", record.identity.composite_id)
            self._mode = AgentMode.PROVISIONING
        else:
            self._apply_record(record)
            self._mode = AgentMode.RUNNING
            LOGGER.info(
                "Booted as %s (config v%d, %d ports)",
                record.identity.composite_id,
                record.config_version,
                len(record.ports),
            )
        return self._mode

    def provision(self, composite_id: str, wifi_ssid: str, wifi_password: str = "") -> DeviceRecord:
        """Store identity and network credentials, then start running.

        Re-provisioning the same composite id keeps the existing secret so the
        server-side binding stays valid.
        """
        composite_id = (composite_id or "").strip().upper()
        if not COMPOSITE_ID_PATTERN.match(composite_id):
            raise ValueError("Composite device id must look like PROJ1-ESP5")
        if not wifi_ssid or not wifi_ssid.strip():
            raise ValueError("WiFi SSID is required")

        previous = self._record
        if previous is not None and previous.identity.composite_id == composite_id:
            record = DeviceRecord(
                identity=previous.identity,
                wifi_ssid=wifi_ssid.strip(),
                wifi_password=wifi_password,
                ports=previous.ports,
                config_version=previous.config_version,
            )
        else:
            record = DeviceRecord(
                identity=DeviceIdentity(composite_id=composite_id, secret=generate_secret()),
                wifi_ssid=wifi_ssid.strip(),
                wifi_password=wifi_password,
            )
        self._ctx.store.save(record)
        self._record = record
        self._apply_record(record)
        self._mode = AgentMode.RUNNING
        LOGGER.info("Provisioned as %s on network %s", composite_id, record.wifi_ssid)
        return record

    def tick(self) -> None:
        """One pass of the cooperative loop."""
        if self._ctx.button is not None:
            level = self._ctx.button.check()
            if level is not ResetLevel.NONE:
                self.handle_reset(level)
                return

        if self._mode is not AgentMode.RUNNING or self._record is None:
            return

        timing = self._ctx.config.timing
        now = self._ctx.clock()
        if self._due(self._last_heartbeat, timing.heartbeat_interval_s, now):
            self._last_heartbeat = now
            self._heartbeat_cycle()
            # a heartbeat cycle polls commands itself
            self._last_command = now
        if self._due(self._last_sensor, timing.sensor_interval_s, now):
            self._last_sensor = now
            self._sensor_cycle()
        if self._due(self._last_command, timing.command_interval_s, now):
            self._last_command = now
            self._command_cycle()

    def run(self, max_ticks: Optional[int] = None) -> None:
        if not self._booted:
            self.boot()
        self._running = True
        ticks = 0
        delay_s = self._ctx.config.timing.loop_sleep_ms / 1000.0
        while self._running:
            self.tick()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            self._ctx.sleep(delay_s)
        self._running = False

    def stop(self) -> None:
        self._running = False

    def handle_reset(self, level: ResetLevel) -> None:
        """Level 1 forgets WiFi; level 2 erases everything. Either way, reboot."""
        if level is ResetLevel.NETWORK:
            try:
                self._ctx.store.clear_network()
            except StorageCorruption as exc:
                LOGGER.error("Record unreadable during network reset (%s); erasing", exc)
                self._ctx.store.clear()
        elif level is ResetLevel.FULL:
            self._ctx.store.clear()
        else:
            return
        LOGGER.warning("Reset (%s) complete; rebooting", level.value)
        if self._ctx.reboot is not None:
            self._ctx.reboot()
        else:
            self.boot()

    def _apply_record(self, record: DeviceRecord) -> None:
        self._record = record
        self._ctx.sensors.reinitialize(record.ports)

    @staticmethod
    def _due(last: Optional[float], interval: float, now: float) -> bool:
        return last is None or now - last >= interval

    def _hostname(self) -> str:
        if self._ctx.config.hostname:
            return self._ctx.config.hostname
        return f"serra-{self._record.identity.composite_id.lower()}"

    def _heartbeat_cycle(self) -> None:
        record = self._record
        rssi, ip_address = self._ctx.network_info()
        try:
            ack = self._ctx.client.heartbeat(
                record.identity,
                self._ctx.config.firmware_version,
                hostname=self._hostname(),
                rssi=rssi,
                ip_address=ip_address,
            )
        except AuthenticationFailed as exc:
            LOGGER.error("Heartbeat rejected; identity may be revoked or bound to another key: %s", exc)
            return
        except CloudError as exc:
            LOGGER.warning("Heartbeat failed: %s", exc)
            return
        LOGGER.debug("Heartbeat ok (status=%s, server config v%d)", ack.status, ack.config_version)

        try:
            self._record = self._synchronizer.reconcile(record, ack.config_version)
        except CloudError as exc:
            LOGGER.warning("Config fetch failed, retrying next heartbeat: %s", exc)

        self._command_cycle()

    def _sensor_cycle(self) -> None:
        readings = self._ctx.sensors.read_all()
        if not readings:
            return
        try:
            inserted = self._ctx.client.send_readings(self._record.identity, readings)
        except CloudError as exc:
            LOGGER.warning("Sending %d readings failed: %s", len(readings), exc)
            return
        LOGGER.debug("Server stored %d readings", inserted)

    def _command_cycle(self) -> None:
        if not self._flush_confirmations():
            return
        try:
            commands = self._ctx.client.poll_commands(self._record.identity)
        except CloudError as exc:
            LOGGER.warning("Command poll failed: %s", exc)
            return

        for command in commands:
            try:
                self._ctx.actuators.apply(command)
            except ActuatorError as exc:
                LOGGER.warning("Command %s failed: %s", command.command_id, exc)
                self._unconfirmed.append(Confirmation(command.command_id, CommandOutcome.FAILED, str(exc)))
            else:
                self._unconfirmed.append(Confirmation(command.command_id, CommandOutcome.CONFIRMED))
        self._flush_confirmations()

    def _flush_confirmations(self) -> bool:
        """Deliver queued outcomes. Returns False if the server was unreachable."""
        while self._unconfirmed:
            confirmation = self._unconfirmed[0]
            try:
                self._ctx.client.confirm(
                    self._record.identity,
                    confirmation.command_id,
                    confirmation.outcome,
                    error_message=confirmation.error_message,
                )
            except (DeviceTimeout, Unreachable) as exc:
                LOGGER.warning("Confirmation for %s deferred: %s", confirmation.command_id, exc)
                return False
            except CloudError as exc:
                LOGGER.error("Server refused confirmation for %s: %s", confirmation.command_id, exc)
            self._unconfirmed.pop(0)
        return True


__all__ = ["AgentContext", "COMPOSITE_ID_PATTERN", "DeviceAgent"]
