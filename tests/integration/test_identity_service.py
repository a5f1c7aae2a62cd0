from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from serra_backend.errors import AuthenticationFailed, IdentityConflict, IdentityNotFound, ValidationFailed
from serra_backend.models.command import Command
from serra_backend.models.device import Device
from serra_backend.models.sensor import Sensor
from serra_backend.services import command_service, discovery_service, identity_service, liveness_service
from serra_backend.services.discovery_service import ReadingInput

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
SECRET = "ab" * 32
OTHER_SECRET = "cd" * 32


def test_issue_identity_starts_unbound_and_offline(register_device) -> None:
    device = register_device(project_id="proj1", slot_number=3)

    assert device.composite_device_id == "PROJ1-ESP3"
    assert device.project_id == "PROJ1"
    assert device.secret_hash is None
    assert not device.is_bound
    assert device.status == "offline"
    assert device.last_contact_at is None
    assert device.config_version == 1


@pytest.mark.parametrize(
    "project_id, slot_number, name",
    [("PR", 1, "x"), ("PROJ-1", 1, "x"), ("PROJ1", 0, "x"), ("PROJ1", 21, "x"), ("PROJ1", 1, "  ")],
)
def test_issue_identity_rejects_bad_input(db_session, project_id, slot_number, name) -> None:
    with pytest.raises(ValidationFailed):
        identity_service.issue_identity(db_session, project_id, slot_number, name)
    assert db_session.query(Device).count() == 0


def test_duplicate_slot_is_a_conflict(register_device) -> None:
    register_device(slot_number=3)
    with pytest.raises(IdentityConflict):
        register_device(slot_number=3, name="Another")
    register_device(project_id="PROJ2", slot_number=3)


def test_first_heartbeat_binds_key(db_session, register_device) -> None:
    device = register_device()

    liveness_service.record_heartbeat(db_session, "PROJ1-ESP3", SECRET, now=T0)

    assert device.is_bound
    assert device.secret_hash == identity_service.hash_secret(SECRET)
    assert device.secret_hash != SECRET
    assert identity_service.authenticate(db_session, "PROJ1-ESP3", SECRET) is device


def test_only_heartbeat_binds(db_session, register_device) -> None:
    device = register_device()

    with pytest.raises(AuthenticationFailed):
        identity_service.authenticate(db_session, "PROJ1-ESP3", SECRET)
    with pytest.raises(AuthenticationFailed):
        command_service.claim_pending(db_session, "PROJ1-ESP3", SECRET, now=T0)

    db_session.refresh(device)
    assert device.secret_hash is None
    assert device.status == "offline"


def test_wrong_key_is_rejected_without_side_effects(db_session, register_device) -> None:
    device = register_device()
    liveness_service.record_heartbeat(db_session, "PROJ1-ESP3", SECRET, now=T0)

    with pytest.raises(AuthenticationFailed):
        liveness_service.record_heartbeat(db_session, "PROJ1-ESP3", OTHER_SECRET, now=T0.replace(hour=13))
    with pytest.raises(AuthenticationFailed):
        discovery_service.ingest_readings(
            db_session,
            "PROJ1-ESP3",
            OTHER_SECRET,
            [ReadingInput(local_sensor_id="dht22_gpio4_temperature", sensor_type="temperature", value=21.0)],
        )

    db_session.refresh(device)
    assert device.secret_hash == identity_service.hash_secret(SECRET)
    assert device.last_contact_at.replace(tzinfo=timezone.utc) == T0
    assert db_session.query(Sensor).count() == 0


def test_rejected_contact_leaves_connection_failed_status(db_session, register_device) -> None:
    device = register_device(now=T0)
    liveness_service.sweep(db_session, now=T0 + timedelta(minutes=1))
    db_session.refresh(device)
    assert device.status == "connection_failed"

    # unbound: only a heartbeat may bind, so a poll is refused
    with pytest.raises(AuthenticationFailed):
        command_service.claim_pending(db_session, "PROJ1-ESP3", SECRET, now=T0 + timedelta(minutes=2))
    db_session.refresh(device)
    assert device.status == "connection_failed"

    liveness_service.record_heartbeat(db_session, "PROJ1-ESP3", SECRET, now=T0 + timedelta(minutes=3))
    device.status = "connection_failed"
    db_session.commit()

    with pytest.raises(AuthenticationFailed):
        liveness_service.record_heartbeat(db_session, "PROJ1-ESP3", OTHER_SECRET, now=T0 + timedelta(minutes=4))
    with pytest.raises(AuthenticationFailed):
        command_service.claim_pending(db_session, "PROJ1-ESP3", OTHER_SECRET, now=T0 + timedelta(minutes=4))
    db_session.refresh(device)
    assert device.status == "connection_failed"
    assert device.last_contact_at.replace(tzinfo=timezone.utc) == T0 + timedelta(minutes=3)


@pytest.mark.parametrize("secret", [None, "", "   "])
def test_missing_key_is_authentication_failure(db_session, register_device, secret) -> None:
    register_device()
    with pytest.raises(AuthenticationFailed):
        identity_service.authenticate(db_session, "PROJ1-ESP3", secret, allow_binding=True)


def test_unknown_and_malformed_ids(db_session, register_device) -> None:
    register_device()
    with pytest.raises(IdentityNotFound):
        identity_service.authenticate(db_session, "PROJ1-ESP9", SECRET)
    with pytest.raises(ValidationFailed):
        identity_service.authenticate(db_session, "proj1-esp3", SECRET)
    with pytest.raises(ValidationFailed):
        identity_service.authenticate(db_session, None, SECRET)


def test_revoked_identity_refuses_every_key(db_session, register_device) -> None:
    register_device()
    liveness_service.record_heartbeat(db_session, "PROJ1-ESP3", SECRET, now=T0)

    device = identity_service.revoke(db_session, "PROJ1-ESP3")

    assert device.revoked
    assert device.secret_hash is None
    for secret in (SECRET, OTHER_SECRET):
        with pytest.raises(AuthenticationFailed):
            liveness_service.record_heartbeat(db_session, "PROJ1-ESP3", secret, now=T0)


def test_reprovision_allows_a_new_key(db_session, register_device) -> None:
    register_device()
    liveness_service.record_heartbeat(db_session, "PROJ1-ESP3", SECRET, now=T0)
    identity_service.revoke(db_session, "PROJ1-ESP3")

    device = identity_service.reprovision(db_session, "PROJ1-ESP3", now=T0)
    assert not device.revoked
    assert device.status == "offline"
    assert device.last_contact_at is None

    liveness_service.record_heartbeat(db_session, "PROJ1-ESP3", OTHER_SECRET, now=T0)
    with pytest.raises(AuthenticationFailed):
        identity_service.authenticate(db_session, "PROJ1-ESP3", SECRET)


def test_delete_identity_removes_owned_rows(db_session, seeded_device) -> None:
    command_service.enqueue(db_session, seeded_device.relay.id, "on", now=T0)
    discovery_service.ingest_readings(
        db_session,
        seeded_device.composite_id,
        seeded_device.secret,
        [ReadingInput(local_sensor_id="soil_moisture_a0_moisture", sensor_type="soil_moisture", value=40.0)],
        now=T0,
    )

    identity_service.delete_identity(db_session, seeded_device.composite_id)

    assert db_session.query(Device).count() == 0
    assert db_session.query(Command).count() == 0
    assert db_session.query(Sensor).count() == 0
    with pytest.raises(IdentityNotFound):
        identity_service.get_device(db_session, seeded_device.composite_id)


def test_available_slots_excludes_registered(db_session, register_device) -> None:
    register_device(slot_number=1)
    register_device(slot_number=20)
    register_device(project_id="GRN2", slot_number=2)

    assert identity_service.available_slots(db_session, "proj1") == list(range(2, 20))
    assert identity_service.available_slots(db_session, "GRN2") == [1] + list(range(3, 21))
    with pytest.raises(ValidationFailed):
        identity_service.available_slots(db_session, "P-1")
