"""
Auto-discovery registrar and reading ingestion.

Devices re-announce their sensors with every reading batch and their
actuators with every config fetch. Registration is an upsert keyed by
(device, local id), so repeated announcements update instead of duplicating.
Nothing on this path deactivates a sensor that stops being reported.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..database import utcnow
from ..errors import ValidationFailed
from ..models.actuator import Actuator
from ..models.device import Device
from ..models.reading import SensorReading
from ..models.sensor import Sensor
from . import identity_service
from .liveness_service import mark_online

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SensorAnnouncement:
    local_id: str
    sensor_type: str
    unit: Optional[str] = None


@dataclass(frozen=True)
class ActuatorAnnouncement:
    local_id: str
    actuator_type: str
    supports_pwm: bool = False


@dataclass(frozen=True)
class ReadingInput:
    local_sensor_id: str
    sensor_type: str
    value: float
    unit: Optional[str] = None


@dataclass
class DiscoveryResult:
    registered: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)


def _require_local_id(local_id: str, kind: str) -> str:
    if not isinstance(local_id, str) or not local_id.strip():
        raise ValidationFailed(f"{kind} id must be a non-empty string")
    return local_id.strip()


def _upsert_sensor(
    db: Session,
    device: Device,
    announcement: SensorAnnouncement,
    now: datetime,
    result: DiscoveryResult,
    known: Dict[str, Sensor],
) -> Sensor:
    local_id = _require_local_id(announcement.local_id, "Sensor")
    sensor = known.get(local_id)
    if sensor is None:
        sensor = (
            db.query(Sensor)
            .filter(Sensor.device_id == device.id, Sensor.local_id == local_id)
            .first()
        )
    if sensor is None:
        sensor = Sensor(
            device_id=device.id,
            local_id=local_id,
            sensor_type=announcement.sensor_type,
            unit=announcement.unit,
            is_active=True,
            discovered_at=now,
            last_seen_at=now,
        )
        db.add(sensor)
        result.registered.append(local_id)
    else:
        sensor.sensor_type = announcement.sensor_type
        sensor.unit = announcement.unit
        sensor.is_active = True
        sensor.last_seen_at = now
        if local_id not in result.registered and local_id not in result.updated:
            result.updated.append(local_id)
    known[local_id] = sensor
    return sensor


def register_sensors(
    db: Session,
    device: Device,
    announcements: Iterable[SensorAnnouncement],
    *,
    now: Optional[datetime] = None,
) -> DiscoveryResult:
    """Upsert announced sensors. Does not commit."""
    now = now or utcnow()
    result = DiscoveryResult()
    known: Dict[str, Sensor] = {}
    for announcement in announcements:
        _upsert_sensor(db, device, announcement, now, result, known)
    db.flush()
    return result


def register_actuators(
    db: Session,
    device: Device,
    announcements: Iterable[ActuatorAnnouncement],
    *,
    now: Optional[datetime] = None,
) -> DiscoveryResult:
    """Upsert announced actuators. Does not commit.

    Only type, PWM support and the activity flag are refreshed; the state
    columns belong to command confirmation.
    """
    now = now or utcnow()
    result = DiscoveryResult()
    known: Dict[str, Actuator] = {}
    for announcement in announcements:
        local_id = _require_local_id(announcement.local_id, "Actuator")
        actuator = known.get(local_id)
        if actuator is None:
            actuator = (
                db.query(Actuator)
                .filter(Actuator.device_id == device.id, Actuator.local_id == local_id)
                .first()
            )
        if actuator is None:
            actuator = Actuator(
                device_id=device.id,
                local_id=local_id,
                actuator_type=announcement.actuator_type,
                supports_pwm=bool(announcement.supports_pwm),
                current_state="off",
                is_active=True,
                discovered_at=now,
            )
            db.add(actuator)
            result.registered.append(local_id)
        else:
            actuator.actuator_type = announcement.actuator_type
            actuator.supports_pwm = bool(announcement.supports_pwm)
            actuator.is_active = True
            if local_id not in result.registered and local_id not in result.updated:
                result.updated.append(local_id)
        known[local_id] = actuator
    db.flush()
    return result


def _validate_readings(readings: Sequence[ReadingInput]) -> None:
    for reading in readings:
        _require_local_id(reading.local_sensor_id, "Sensor")
        if not reading.sensor_type or not reading.sensor_type.strip():
            raise ValidationFailed(f"Reading for {reading.local_sensor_id} is missing sensor_type")
        value = reading.value
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValidationFailed(f"Reading for {reading.local_sensor_id} must be a finite number")


def ingest_readings(
    db: Session,
    composite_id: Optional[str],
    secret: Optional[str],
    readings: Sequence[ReadingInput],
    *,
    now: Optional[datetime] = None,
) -> int:
    """Store a reading batch, registering any sensors it mentions."""
    now = now or utcnow()
    device = identity_service.authenticate(db, composite_id, secret)
    _validate_readings(readings)

    result = DiscoveryResult()
    known: Dict[str, Sensor] = {}
    inserted = 0
    for reading in readings:
        sensor = _upsert_sensor(
            db,
            device,
            SensorAnnouncement(
                local_id=reading.local_sensor_id,
                sensor_type=reading.sensor_type,
                unit=reading.unit,
            ),
            now,
            result,
            known,
        )
        db.add(
            SensorReading(
                sensor=sensor,
                device_id=device.id,
                value=float(reading.value),
                unit=reading.unit,
                recorded_at=now,
            )
        )
        inserted += 1

    mark_online(device, now)
    db.commit()
    if result.registered:
        LOGGER.info("Auto-registered sensors for %s: %s", device.composite_device_id, ", ".join(result.registered))
    LOGGER.debug("Stored %d readings for %s", inserted, device.composite_device_id)
    return inserted


__all__ = [
    "ActuatorAnnouncement",
    "DiscoveryResult",
    "ReadingInput",
    "SensorAnnouncement",
    "ingest_readings",
    "register_actuators",
    "register_sensors",
]
