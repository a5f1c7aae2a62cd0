"""Full-replace config synchronisation.

The server's port map is authoritative. When a heartbeat reports a version
ahead of the cached one the agent fetches the whole active snapshot, builds a
fresh port map, and persists map and version together in one record write.
Drivers are only reinitialised after that write succeeds, so a failed write
leaves both the cached version and the running drivers on the old map and
the next heartbeat tries again.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Sequence, Tuple

from serra_device.cloud import CloudClient
from serra_device.drivers import UNCONFIGURED, map_sensor_type, parse_port_id
from serra_device.errors import StorageWriteError
from serra_device.storage import RecordStore
from serra_device.types import (
    ActuatorDescriptor,
    ConfigEntry,
    DeviceRecord,
    PortAssignment,
    SensorDescriptor,
)

LOGGER = logging.getLogger(__name__)


def build_port_map(entries: Sequence[ConfigEntry], max_ports: int) -> Tuple[PortAssignment, ...]:
    """Translate a server snapshot into at most ``max_ports`` usable slots."""
    ports: List[PortAssignment] = []
    for entry in entries:
        if entry.sensor_type.strip().lower() == UNCONFIGURED:
            continue
        kind = map_sensor_type(entry.sensor_type)
        if kind is None:
            LOGGER.warning("Ignoring unsupported sensor type %s on %s", entry.sensor_type, entry.port_id)
            continue
        try:
            pin = parse_port_id(entry.port_id)
        except ValueError as exc:
            LOGGER.warning("Ignoring config entry: %s", exc)
            continue
        if len(ports) >= max_ports:
            LOGGER.warning("Port map truncated to %d entries; dropping %s on %s", max_ports, entry.sensor_type, entry.port_id)
            break
        ports.append(PortAssignment(sensor_type=entry.sensor_type, port_id=entry.port_id, pin=pin, kind=kind))
    return tuple(ports)


class ConfigSynchronizer:
    def __init__(
        self,
        client: CloudClient,
        store: RecordStore,
        *,
        max_ports: int,
        on_applied: Callable[[DeviceRecord], None],
        announce_sensors: Callable[[], Sequence[SensorDescriptor]] = lambda: (),
        announce_actuators: Callable[[], Sequence[ActuatorDescriptor]] = lambda: (),
    ) -> None:
        self._client = client
        self._store = store
        self._max_ports = max_ports
        self._on_applied = on_applied
        self._announce_sensors = announce_sensors
        self._announce_actuators = announce_actuators

    def reconcile(self, record: DeviceRecord, server_version: int) -> DeviceRecord:
        """Bring ``record`` up to ``server_version`` if the server is ahead.

        Returns the record now in effect. Transport errors propagate; a
        persistence failure returns the old record unchanged.
        """
        if server_version <= record.config_version:
            return record

        LOGGER.info("Config version changed: local v%d, server v%d; fetching", record.config_version, server_version)
        entries = self._client.fetch_config(
            record.identity,
            sensors=self._announce_sensors(),
            actuators=self._announce_actuators(),
        )
        ports = build_port_map(entries, self._max_ports)
        updated = record.with_ports(ports, server_version)
        try:
            self._store.save(updated)
        except StorageWriteError as exc:
            LOGGER.error("Could not persist config v%d, keeping v%d: %s", server_version, record.config_version, exc)
            return record

        self._on_applied(updated)
        LOGGER.info("Applied config v%d with %d ports", server_version, len(ports))
        return updated


__all__ = ["ConfigSynchronizer", "build_port_map"]
