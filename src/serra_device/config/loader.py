"""Agent config loader with schema validation."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

VALID_ACTUATOR_TYPES = ("relay", "pwm")
MAX_PORT_SLOTS = 16


class ConfigError(ValueError):
    """Raised when a configuration file fails validation."""


@dataclass(frozen=True)
class ServerConfig:
    base_url: str
    timeout_ms: int = 5000


@dataclass(frozen=True)
class TimingConfig:
    heartbeat_interval_s: float = 60.0
    sensor_interval_s: float = 30.0
    command_interval_s: float = 10.0
    loop_sleep_ms: int = 100


@dataclass(frozen=True)
class ButtonConfig:
    enabled: bool = False
    network_reset_s: float = 5.0
    full_reset_s: float = 10.0
    poll_ms: int = 50


@dataclass(frozen=True)
class ActuatorSpec:
    actuator_id: str
    actuator_type: str
    port_id: str

    @property
    def supports_pwm(self) -> bool:
        return self.actuator_type == "pwm"


@dataclass(frozen=True)
class AgentConfig:
    source: Path
    server: ServerConfig
    firmware_version: str
    storage_path: Path
    hostname: Optional[str]
    timing: TimingConfig
    button: ButtonConfig
    max_ports: int
    actuators: Tuple[ActuatorSpec, ...]


def load_config(path: str | Path) -> AgentConfig:
    """Load and validate a YAML/JSON agent config file."""
    source = Path(path)
    if not source.exists():
        raise ConfigError(f"Config file not found: {source}")

    data = _deserialize(source)
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping")
    return _parse_config(data, source)


def _deserialize(source: Path) -> Any:
    text = source.read_text(encoding="utf-8")
    suffix = source.suffix.lower()
    try:
        if suffix == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Config file could not be parsed: {exc}") from exc


def _parse_config(data: Dict[str, Any], source: Path) -> AgentConfig:
    server_section = _require_dict(data, "server")
    base_url = _require_str(server_section, "base_url").rstrip("/")
    if not base_url.startswith(("http://", "https://")):
        raise ConfigError("server.base_url must start with http:// or https://")
    server = ServerConfig(
        base_url=base_url,
        timeout_ms=_coerce_int(server_section.get("timeout_ms", 5000), "server.timeout_ms", minimum=1),
    )

    firmware_version = _require_str(data, "firmware_version")
    storage_path = _optional_path(data.get("storage_path"))
    if storage_path is None:
        raise ConfigError("'storage_path' must be a non-empty string")

    hostname = data.get("hostname")
    if hostname is not None and (not isinstance(hostname, str) or not hostname.strip()):
        raise ConfigError("'hostname' must be a non-empty string when provided")

    timing_section = _optional_dict(data, "timing")
    timing = TimingConfig(
        heartbeat_interval_s=_coerce_float(timing_section.get("heartbeat_interval_s", 60.0), "timing.heartbeat_interval_s"),
        sensor_interval_s=_coerce_float(timing_section.get("sensor_interval_s", 30.0), "timing.sensor_interval_s"),
        command_interval_s=_coerce_float(timing_section.get("command_interval_s", 10.0), "timing.command_interval_s"),
        loop_sleep_ms=_coerce_int(timing_section.get("loop_sleep_ms", 100), "timing.loop_sleep_ms", minimum=1),
    )

    button_section = _optional_dict(data, "button")
    button = ButtonConfig(
        enabled=bool(button_section.get("enabled", False)),
        network_reset_s=_coerce_float(button_section.get("network_reset_s", 5.0), "button.network_reset_s"),
        full_reset_s=_coerce_float(button_section.get("full_reset_s", 10.0), "button.full_reset_s"),
        poll_ms=_coerce_int(button_section.get("poll_ms", 50), "button.poll_ms", minimum=1),
    )
    if button.full_reset_s <= button.network_reset_s:
        raise ConfigError("button.full_reset_s must be longer than button.network_reset_s")

    max_ports = _coerce_int(data.get("max_ports", 4), "max_ports", minimum=1)
    if max_ports > MAX_PORT_SLOTS:
        raise ConfigError(f"'max_ports' must be <= {MAX_PORT_SLOTS}")

    actuators = _parse_actuators(data.get("actuators", []))

    return AgentConfig(
        source=source,
        server=server,
        firmware_version=firmware_version,
        storage_path=storage_path,
        hostname=hostname.strip() if hostname else None,
        timing=timing,
        button=button,
        max_ports=max_ports,
        actuators=actuators,
    )


def _parse_actuators(section: Any) -> Tuple[ActuatorSpec, ...]:
    if section is None:
        return ()
    if not isinstance(section, list):
        raise ConfigError("actuators block must be a list if provided")
    specs = []
    seen = set()
    for index, entry in enumerate(section):
        if not isinstance(entry, dict):
            raise ConfigError(f"actuators[{index}] must be a mapping")
        actuator_id = _require_str(entry, "id")
        actuator_type = _require_str(entry, "type")
        if actuator_type not in VALID_ACTUATOR_TYPES:
            raise ConfigError(
                f"actuators[{index}].type must be one of: {', '.join(VALID_ACTUATOR_TYPES)}"
            )
        if actuator_id in seen:
            raise ConfigError(f"Duplicate actuator id: {actuator_id}")
        seen.add(actuator_id)
        specs.append(ActuatorSpec(actuator_id=actuator_id, actuator_type=actuator_type, port_id=_require_str(entry, "port")))
    return tuple(specs)


def _require_dict(obj: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = obj.get(key)
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _optional_dict(obj: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = obj.get(key, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{key} block must be a mapping if provided")
    return value


def _require_str(obj: Dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{key}' must be a non-empty string")
    return value.strip()


def _coerce_int(value: Any, field: str, minimum: Optional[int] = None) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"'{field}' must be an integer, not boolean")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"'{field}' must be an integer") from exc
    if minimum is not None and parsed < minimum:
        raise ConfigError(f"'{field}' must be >= {minimum}")
    return parsed


def _coerce_float(value: Any, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{field}' must be a number")
    result = float(value)
    if result <= 0:
        raise ConfigError(f"'{field}' must be greater than 0")
    return result


def _optional_path(value: Any) -> Optional[Path]:
    if not value:
        return None
    if not isinstance(value, str):
        raise ConfigError("Path fields must be strings when provided")
    return Path(value)


__all__ = [
    "ActuatorSpec",
    "AgentConfig",
    "ButtonConfig",
    "ConfigError",
    "ServerConfig",
    "TimingConfig",
    "VALID_ACTUATOR_TYPES",
    "load_config",
]
