from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from serra_backend.database import as_utc
from serra_backend.errors import ValidationFailed
from serra_backend.models.actuator import Actuator
from serra_backend.models.reading import SensorReading
from serra_backend.models.sensor import Sensor
from serra_backend.services import command_service, discovery_service
from serra_backend.services.discovery_service import ActuatorAnnouncement, ReadingInput, SensorAnnouncement

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

BATCH = [
    ReadingInput(local_sensor_id="dht22_gpio4_temperature", sensor_type="temperature", value=21.4, unit="°C"),
    ReadingInput(local_sensor_id="dht22_gpio4_humidity", sensor_type="humidity", value=63.0, unit="%"),
]


def _ingest(db_session, seeded_device, readings, now=T0) -> int:
    return discovery_service.ingest_readings(
        db_session, seeded_device.composite_id, seeded_device.secret, readings, now=now
    )


def test_first_batch_registers_sensors(db_session, seeded_device) -> None:
    inserted = _ingest(db_session, seeded_device, BATCH)

    assert inserted == 2
    sensors = {s.local_id: s for s in db_session.query(Sensor)}
    assert set(sensors) == {"dht22_gpio4_temperature", "dht22_gpio4_humidity"}
    assert sensors["dht22_gpio4_temperature"].unit == "°C"
    assert db_session.query(SensorReading).count() == 2


def test_repeated_batches_upsert_instead_of_duplicating(db_session, seeded_device) -> None:
    _ingest(db_session, seeded_device, BATCH)
    later = T0 + timedelta(seconds=30)

    _ingest(
        db_session,
        seeded_device,
        [ReadingInput(local_sensor_id="dht22_gpio4_temperature", sensor_type="temperature", value=22.0, unit="C")],
        now=later,
    )

    assert db_session.query(Sensor).count() == 2
    assert db_session.query(SensorReading).count() == 3
    sensor = db_session.query(Sensor).filter(Sensor.local_id == "dht22_gpio4_temperature").one()
    assert sensor.unit == "C"
    assert as_utc(sensor.last_seen_at) == later
    # a sensor missing from a batch stays active
    humidity = db_session.query(Sensor).filter(Sensor.local_id == "dht22_gpio4_humidity").one()
    assert humidity.is_active


def test_duplicate_ids_within_one_batch_share_a_sensor(db_session, seeded_device) -> None:
    inserted = _ingest(db_session, seeded_device, BATCH[:1] * 3)

    assert inserted == 3
    assert db_session.query(Sensor).count() == 1


@pytest.mark.parametrize(
    "reading",
    [
        ReadingInput(local_sensor_id="soil_moisture_a0_moisture", sensor_type="soil_moisture", value=float("nan")),
        ReadingInput(local_sensor_id="soil_moisture_a0_moisture", sensor_type="soil_moisture", value=float("inf")),
        ReadingInput(local_sensor_id=" ", sensor_type="soil_moisture", value=1.0),
        ReadingInput(local_sensor_id="soil_moisture_a0_moisture", sensor_type="", value=1.0),
    ],
)
def test_invalid_reading_rejects_whole_batch(db_session, seeded_device, reading) -> None:
    with pytest.raises(ValidationFailed):
        _ingest(db_session, seeded_device, BATCH + [reading])

    assert db_session.query(Sensor).count() == 0
    assert db_session.query(SensorReading).count() == 0


def test_actuator_reannouncement_keeps_confirmed_state(db_session, seeded_device) -> None:
    command = command_service.enqueue(db_session, seeded_device.relay.id, "on", now=T0)
    command_service.claim_pending(db_session, seeded_device.composite_id, seeded_device.secret, now=T0)
    command_service.confirm(db_session, seeded_device.composite_id, seeded_device.secret, command.id, "confirmed", now=T0)

    result = discovery_service.register_actuators(
        db_session,
        seeded_device.device,
        [
            ActuatorAnnouncement(local_id="relay_1", actuator_type="relay"),
            ActuatorAnnouncement(local_id="valve_2", actuator_type="relay"),
        ],
        now=T0,
    )
    db_session.commit()

    assert result.registered == ["valve_2"]
    assert result.updated == ["relay_1"]
    assert db_session.query(Actuator).count() == 3
    db_session.refresh(seeded_device.relay)
    assert seeded_device.relay.current_state == "on"


def test_register_sensors_reports_new_and_updated(db_session, seeded_device) -> None:
    announcements = [SensorAnnouncement(local_id="water_level_d6_level", sensor_type="water_level", unit="%")]

    first = discovery_service.register_sensors(db_session, seeded_device.device, announcements, now=T0)
    second = discovery_service.register_sensors(db_session, seeded_device.device, announcements, now=T0)
    db_session.commit()

    assert first.registered == ["water_level_d6_level"]
    assert second.updated == ["water_level_d6_level"]
    with pytest.raises(ValidationFailed):
        discovery_service.register_sensors(
            db_session, seeded_device.device, [SensorAnnouncement(local_id="", sensor_type="x")]
        )
