"""Checksum-validated persisted device record.

The record is a JSON document ``{"payload": {...}, "crc32": n}`` where the
checksum covers the canonical encoding of the payload. A record that fails
the checksum or cannot be decoded is never partially trusted: ``load`` raises
``StorageCorruption`` and the agent falls back to provisioning.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import zlib
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from serra_device.drivers import map_sensor_type, parse_port_id
from serra_device.errors import StorageCorruption, StorageWriteError
from serra_device.types import CONFIG_VERSION_MAX, DeviceIdentity, DeviceRecord, PortAssignment

LOGGER = logging.getLogger(__name__)

RECORD_FORMAT = 1
SECRET_BYTES = 32


def generate_secret() -> str:
    """64 hex characters from the OS CSPRNG."""
    return secrets.token_hex(SECRET_BYTES)


def _canonical(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def checksum(payload: Dict[str, Any]) -> int:
    return zlib.crc32(_canonical(payload)) & 0xFFFFFFFF


def _encode(record: DeviceRecord) -> Dict[str, Any]:
    return {
        "format": RECORD_FORMAT,
        "composite_id": record.identity.composite_id,
        "secret": record.identity.secret,
        "wifi_ssid": record.wifi_ssid,
        "wifi_password": record.wifi_password,
        "ports": [{"sensor_type": port.sensor_type, "port_id": port.port_id} for port in record.ports],
        "config_version": record.config_version,
    }


def build_ports(entries: List[Dict[str, Any]]) -> Tuple[PortAssignment, ...]:
    ports: List[PortAssignment] = []
    for entry in entries:
        kind = map_sensor_type(entry.get("sensor_type", ""))
        if kind is None:
            continue
        try:
            pin = parse_port_id(entry.get("port_id", ""))
        except ValueError:
            LOGGER.warning("Dropping stored port with bad id: %s", entry.get("port_id"))
            continue
        ports.append(PortAssignment(sensor_type=entry["sensor_type"], port_id=entry["port_id"], pin=pin, kind=kind))
    return tuple(ports)


def _decode(payload: Dict[str, Any]) -> DeviceRecord:
    composite_id = payload.get("composite_id")
    secret = payload.get("secret")
    if not isinstance(composite_id, str) or not composite_id:
        raise StorageCorruption("Stored record has no device identity")
    if not isinstance(secret, str) or not secret:
        raise StorageCorruption("Stored record has no device secret")

    ports = payload.get("ports", [])
    if not isinstance(ports, list) or not all(isinstance(entry, dict) for entry in ports):
        raise StorageCorruption("Stored port map is malformed")

    version = payload.get("config_version", 0)
    if isinstance(version, bool) or not isinstance(version, int) or not 0 <= version <= CONFIG_VERSION_MAX:
        LOGGER.warning("Stored config version %r out of range; resetting to 0", version)
        version = 0

    return DeviceRecord(
        identity=DeviceIdentity(composite_id=composite_id, secret=secret),
        wifi_ssid=str(payload.get("wifi_ssid") or ""),
        wifi_password=str(payload.get("wifi_password") or ""),
        ports=build_ports(ports),
        config_version=version,
    )


class RecordStore:
    """Owns the on-disk device record."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[DeviceRecord]:
        """Return the stored record, or None if nothing has been provisioned."""
        if not self.path.exists():
            return None
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StorageCorruption(f"Stored record unreadable: {exc}") from exc

        if not isinstance(document, dict) or not isinstance(document.get("payload"), dict):
            raise StorageCorruption("Stored record has no payload")
        payload = document["payload"]
        stored_crc = document.get("crc32")
        if not isinstance(stored_crc, int) or stored_crc != checksum(payload):
            raise StorageCorruption("Stored record failed CRC32 check")
        return _decode(payload)

    def save(self, record: DeviceRecord) -> None:
        """Write atomically: a crash leaves either the old or the new record."""
        payload = _encode(record)
        document = {"payload": payload, "crc32": checksum(payload)}
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                handle.write(json.dumps(document, indent=2))
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if tmp_path.exists():
                tmp_path.unlink()
            raise StorageWriteError(f"Could not write {self.path}: {exc}") from exc
        LOGGER.debug("Saved device record (config v%d, %d ports)", record.config_version, len(record.ports))

    def clear(self) -> None:
        """Erase everything (factory reset)."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageWriteError(f"Could not remove {self.path}: {exc}") from exc
        LOGGER.info("Device record erased")

    def clear_network(self) -> Optional[DeviceRecord]:
        """Forget WiFi credentials, keeping identity, secret and port map."""
        record = self.load()
        if record is None:
            return None
        cleared = replace(record, wifi_ssid="", wifi_password="")
        self.save(cleared)
        LOGGER.info("Network credentials erased")
        return cleared


__all__ = ["RecordStore", "build_ports", "checksum", "generate_secret"]
