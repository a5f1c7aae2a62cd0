"""HTTP client for the device protocol."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List, Optional

import requests

from serra_device.config.loader import ServerConfig
from serra_device.errors import (
    AuthenticationFailed,
    CloudError,
    DeviceTimeout,
    IdentityNotFound,
    Unreachable,
    ValidationFailed,
)
from serra_device.types import (
    ActuatorDescriptor,
    CommandKind,
    CommandOutcome,
    ConfigEntry,
    DeviceIdentity,
    HeartbeatAck,
    PendingCommand,
    Reading,
    SensorDescriptor,
)

LOGGER = logging.getLogger(__name__)

API_PREFIX = "/api/v1/device"
COMPOSITE_ID_HEADER = "x-composite-device-id"
DEVICE_KEY_HEADER = "x-device-key"


class CloudClient:
    """Issues the five device calls and maps failures onto the agent error types."""

    def __init__(self, config: ServerConfig, *, session: Optional[requests.Session] = None) -> None:
        self._base_url = f"{config.base_url.rstrip('/')}{API_PREFIX}"
        self._timeout_s = max(config.timeout_ms, 1) / 1000.0
        self._session = session or requests.Session()

    def heartbeat(
        self,
        identity: DeviceIdentity,
        firmware_version: str,
        *,
        hostname: Optional[str] = None,
        rssi: Optional[int] = None,
        ip_address: Optional[str] = None,
    ) -> HeartbeatAck:
        payload: Dict[str, Any] = {"firmware_version": firmware_version}
        if hostname:
            payload["device_hostname"] = hostname
        if rssi is not None:
            payload["rssi"] = rssi
        if ip_address:
            payload["ip_address"] = ip_address
        body = self._post("/heartbeat", identity, payload)
        try:
            return HeartbeatAck(
                composite_id=body["composite_device_id"],
                status=body["status"],
                config_version=int(body["config_version"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CloudError(f"Malformed heartbeat response: {exc}") from exc

    def fetch_config(
        self,
        identity: DeviceIdentity,
        *,
        sensors: Iterable[SensorDescriptor] = (),
        actuators: Iterable[ActuatorDescriptor] = (),
    ) -> List[ConfigEntry]:
        payload = {
            "sensors": [
                {"sensor_id": sensor.sensor_id, "sensor_type": sensor.sensor_type, "unit": sensor.unit}
                for sensor in sensors
            ],
            "actuators": [
                {
                    "actuator_id": actuator.actuator_id,
                    "actuator_type": actuator.actuator_type,
                    "supports_pwm": actuator.supports_pwm,
                }
                for actuator in actuators
            ],
        }
        body = self._post("/config", identity, payload)
        if not isinstance(body, list):
            raise CloudError("Config response must be a list")
        entries: List[ConfigEntry] = []
        for item in body:
            if not isinstance(item, dict) or not item.get("sensor_type") or not item.get("port_id"):
                LOGGER.warning("Skipping malformed config entry: %r", item)
                continue
            entries.append(ConfigEntry(sensor_type=str(item["sensor_type"]), port_id=str(item["port_id"])))
        return entries

    def send_readings(self, identity: DeviceIdentity, readings: Iterable[Reading]) -> int:
        payload = {
            "readings": [
                {
                    "sensor_id": reading.sensor_id,
                    "sensor_type": reading.sensor_type,
                    "value": reading.value,
                    "unit": reading.unit,
                }
                for reading in readings
            ]
        }
        body = self._post("/readings", identity, payload)
        return int(body.get("inserted", 0)) if isinstance(body, dict) else 0

    def poll_commands(self, identity: DeviceIdentity) -> List[PendingCommand]:
        body = self._post("/commands/poll", identity, None)
        if not isinstance(body, list):
            raise CloudError("Command poll response must be a list")
        commands: List[PendingCommand] = []
        for item in body:
            try:
                commands.append(
                    PendingCommand(
                        command_id=str(item["command_id"]),
                        actuator_id=str(item["actuator_id"]),
                        kind=CommandKind(item["command_type"]),
                        value=float(item["value"]) if item.get("value") is not None else None,
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise CloudError(f"Malformed command in poll response: {item!r}") from exc
        return commands

    def confirm(
        self,
        identity: DeviceIdentity,
        command_id: str,
        outcome: CommandOutcome,
        *,
        error_message: Optional[str] = None,
    ) -> str:
        payload: Dict[str, Any] = {"outcome": outcome.value}
        if error_message:
            payload["error_message"] = error_message[:255]
        body = self._post(f"/commands/{command_id}/confirm", identity, payload)
        return str(body.get("status", outcome.value)) if isinstance(body, dict) else outcome.value

    def _post(self, path: str, identity: DeviceIdentity, payload: Optional[Dict[str, Any]]) -> Any:
        url = f"{self._base_url}{path}"
        headers = {
            COMPOSITE_ID_HEADER: identity.composite_id,
            DEVICE_KEY_HEADER: identity.secret,
        }
        start = time.perf_counter()
        try:
            response = self._session.post(url, json=payload, headers=headers, timeout=self._timeout_s)
        except requests.Timeout as exc:
            raise DeviceTimeout(f"POST {path} timed out after {self._timeout_s:.1f}s") from exc
        except requests.RequestException as exc:
            raise Unreachable(f"POST {path} failed: {exc.__class__.__name__}: {exc}") from exc
        latency_ms = (time.perf_counter() - start) * 1000.0
        LOGGER.debug("POST %s -> %s in %.1fms", path, response.status_code, latency_ms)

        if response.status_code >= 400:
            raise _error_for(path, response)
        try:
            return response.json()
        except ValueError as exc:
            raise CloudError(f"POST {path} returned invalid JSON", status_code=response.status_code) from exc


def _error_for(path: str, response: requests.Response) -> CloudError:
    detail = _detail(response)
    message = f"POST {path} -> {response.status_code}: {detail}"
    status = response.status_code
    if status == 401:
        return AuthenticationFailed(message, status_code=status)
    if status == 404:
        return IdentityNotFound(message, status_code=status)
    if status >= 500:
        return Unreachable(message, status_code=status)
    return ValidationFailed(message, status_code=status)


def _detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


__all__ = ["API_PREFIX", "COMPOSITE_ID_HEADER", "CloudClient", "DEVICE_KEY_HEADER"]
