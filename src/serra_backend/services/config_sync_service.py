"""
Config sync service.

The server owns each device's port map behind ``devices.config_version``.
The counter moves through mapper events on ``SensorConfig`` rows, so every
operator edit bumps it without a client-visible change log. Devices compare
the version returned by their heartbeat with their cached copy and, when the
server is ahead, fetch the whole active snapshot and replace their local map.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..database import utcnow
from ..errors import ValidationFailed
from ..models.device import Device
from ..models.sensor_config import SensorConfig
from . import discovery_service, identity_service
from .discovery_service import ActuatorAnnouncement, SensorAnnouncement
from .liveness_service import mark_online

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigEntryInput:
    sensor_type: str
    port_id: str
    is_active: bool = True


def snapshot(db: Session, device: Device) -> List[SensorConfig]:
    """Active port map rows in a stable order."""
    return (
        db.query(SensorConfig)
        .filter(SensorConfig.device_id == device.id, SensorConfig.is_active.is_(True))
        .order_by(SensorConfig.sensor_type, SensorConfig.port_id)
        .all()
    )


def fetch_config(
    db: Session,
    composite_id: Optional[str],
    secret: Optional[str],
    *,
    sensors: Sequence[SensorAnnouncement] = (),
    actuators: Sequence[ActuatorAnnouncement] = (),
    now: Optional[datetime] = None,
) -> List[SensorConfig]:
    """Serve the full active snapshot, registering anything announced inline."""
    now = now or utcnow()
    device = identity_service.authenticate(db, composite_id, secret)
    if sensors:
        discovery_service.register_sensors(db, device, sensors, now=now)
    if actuators:
        discovery_service.register_actuators(db, device, actuators, now=now)
    entries = snapshot(db, device)
    mark_online(device, now)
    db.commit()
    LOGGER.debug(
        "Served config v%d (%d entries) to %s",
        device.config_version,
        len(entries),
        device.composite_device_id,
    )
    return entries


def _normalize_entries(entries: Sequence[ConfigEntryInput]) -> Dict[str, Tuple[str, bool]]:
    by_port: Dict[str, Tuple[str, bool]] = {}
    for entry in entries:
        sensor_type = (entry.sensor_type or "").strip()
        port_id = (entry.port_id or "").strip().upper()
        if not sensor_type:
            raise ValidationFailed("sensor_type must be a non-empty string")
        if not port_id:
            raise ValidationFailed("port_id must be a non-empty string")
        if port_id in by_port:
            raise ValidationFailed(f"Port {port_id} is assigned more than once")
        by_port[port_id] = (sensor_type, bool(entry.is_active))
    return by_port


def replace_config(
    db: Session,
    composite_id: str,
    entries: Sequence[ConfigEntryInput],
    *,
    now: Optional[datetime] = None,
) -> Device:
    """Operator edit: make the stored port map equal ``entries``.

    Only rows that actually differ are written, so re-submitting the same map
    leaves the version untouched.
    """
    now = now or utcnow()
    device = identity_service.get_device(db, composite_id)
    desired = _normalize_entries(entries)

    existing = {row.port_id: row for row in db.query(SensorConfig).filter(SensorConfig.device_id == device.id)}
    changed = 0
    for port_id, row in existing.items():
        if port_id not in desired:
            db.delete(row)
            changed += 1
    # Deletes must land before inserts can reuse a port
    db.flush()
    for port_id, (sensor_type, is_active) in desired.items():
        row = existing.get(port_id)
        if row is None:
            db.add(
                SensorConfig(
                    device_id=device.id,
                    sensor_type=sensor_type,
                    port_id=port_id,
                    is_active=is_active,
                    configured_at=now,
                )
            )
            changed += 1
        elif row.sensor_type != sensor_type or row.is_active != is_active:
            row.sensor_type = sensor_type
            row.is_active = is_active
            row.configured_at = now
            changed += 1

    db.commit()
    db.refresh(device)
    if changed:
        LOGGER.info(
            "Config for %s changed (%d rows), now version %d",
            composite_id,
            changed,
            device.config_version,
        )
    return device


__all__ = [
    "ConfigEntryInput",
    "fetch_config",
    "replace_config",
    "snapshot",
]
