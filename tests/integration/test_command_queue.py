from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from serra_backend.errors import CommandNotFound, CommandStateConflict, IdentityNotFound, ValidationFailed
from serra_backend.models.command import CommandKind, CommandStatus
from serra_backend.services import command_service, liveness_service

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "kind, value",
    [("on", None), ("off", None), ("set_value", 0), ("set_value", 100), ("set_value", 42.5)],
)
def test_valid_commands(kind, value) -> None:
    assert command_service.validate_command(kind, value) is CommandKind(kind)


@pytest.mark.parametrize(
    "kind, value",
    [
        ("toggle", None),
        ("on", 10),
        ("set_value", None),
        ("set_value", -1),
        ("set_value", 100.5),
        ("set_value", float("nan")),
        ("set_value", True),
    ],
)
def test_invalid_commands(kind, value) -> None:
    with pytest.raises(ValidationFailed):
        command_service.validate_command(kind, value)


def test_enqueue_unknown_actuator(db_session) -> None:
    with pytest.raises(IdentityNotFound):
        command_service.enqueue(db_session, uuid.uuid4(), "on")


def test_enqueue_leaves_actuator_untouched(db_session, seeded_device) -> None:
    command = command_service.enqueue(db_session, seeded_device.fan.id, "set_value", 60, now=T0)

    assert command.status == "pending"
    assert command.value == 60
    assert command.expires_at.replace(tzinfo=timezone.utc) == T0 + timedelta(seconds=300)
    db_session.refresh(seeded_device.fan)
    assert seeded_device.fan.current_state == "off"
    assert seeded_device.fan.current_value is None


def test_poll_claims_oldest_first_and_only_once(db_session, seeded_device) -> None:
    ids = [
        command_service.enqueue(db_session, seeded_device.relay.id, kind, now=T0 + timedelta(seconds=offset)).id
        for offset, kind in ((0, "on"), (1, "off"), (2, "on"))
    ]

    first = command_service.claim_pending(
        db_session, seeded_device.composite_id, seeded_device.secret, now=T0 + timedelta(seconds=5), batch_size=2
    )
    second = command_service.claim_pending(
        db_session, seeded_device.composite_id, seeded_device.secret, now=T0 + timedelta(seconds=6), batch_size=2
    )
    third = command_service.claim_pending(
        db_session, seeded_device.composite_id, seeded_device.secret, now=T0 + timedelta(seconds=7), batch_size=2
    )

    assert [c.id for c in first] == ids[:2]
    assert [c.id for c in second] == ids[2:]
    assert third == []
    assert all(c.status == "retrieved" for c in first + second)
    assert first[0].actuator.local_id == "relay_1"


def test_poll_only_returns_own_commands(db_session, seeded_device, register_device) -> None:
    register_device(slot_number=4)
    liveness_service.record_heartbeat(db_session, "PROJ1-ESP4", "ef" * 32, now=T0)
    command_service.enqueue(db_session, seeded_device.relay.id, "on", now=T0)

    assert command_service.claim_pending(db_session, "PROJ1-ESP4", "ef" * 32, now=T0) == []


def test_expired_commands_are_never_delivered(db_session, seeded_device) -> None:
    retrieved = command_service.enqueue(db_session, seeded_device.relay.id, "on", now=T0)
    long_lived = command_service.enqueue(db_session, seeded_device.relay.id, "off", now=T0, expiry_window=timedelta(hours=1))
    command_service.claim_pending(db_session, seeded_device.composite_id, seeded_device.secret, now=T0)
    late = command_service.enqueue(db_session, seeded_device.relay.id, "on", now=T0 + timedelta(minutes=1))

    later = T0 + timedelta(minutes=10)
    assert command_service.claim_pending(db_session, seeded_device.composite_id, seeded_device.secret, now=later) == []
    assert command_service.expire_stale(db_session, now=later) == 1

    for command in (retrieved, long_lived, late):
        db_session.refresh(command)
    assert late.status == "expired"
    assert retrieved.status == "retrieved"
    assert long_lived.status == "retrieved"
    assert command_service.expire_stale(db_session, now=later) == 0


def _claim_one(db_session, seeded_device, actuator, kind, value=None):
    command = command_service.enqueue(db_session, actuator.id, kind, value, now=T0)
    (claimed,) = command_service.claim_pending(db_session, seeded_device.composite_id, seeded_device.secret, now=T0)
    assert claimed.id == command.id
    return command


def test_confirm_updates_actuator_state(db_session, seeded_device) -> None:
    command = _claim_one(db_session, seeded_device, seeded_device.fan, "set_value", 55)

    result = command_service.confirm(
        db_session, seeded_device.composite_id, seeded_device.secret, command.id, "confirmed", now=T0
    )

    assert result.status == "confirmed"
    assert result.confirmed_at is not None
    db_session.refresh(seeded_device.fan)
    assert seeded_device.fan.current_state == "on"
    assert seeded_device.fan.current_value == 55

    zero = _claim_one(db_session, seeded_device, seeded_device.fan, "set_value", 0)
    command_service.confirm(db_session, seeded_device.composite_id, seeded_device.secret, zero.id, "confirmed")
    db_session.refresh(seeded_device.fan)
    assert seeded_device.fan.current_state == "off"
    assert seeded_device.fan.current_value == 0


def test_failed_outcome_records_error_and_keeps_state(db_session, seeded_device) -> None:
    command = _claim_one(db_session, seeded_device, seeded_device.relay, "on")

    result = command_service.confirm(
        db_session,
        seeded_device.composite_id,
        seeded_device.secret,
        command.id,
        CommandStatus.FAILED,
        error_message="relay stuck",
    )

    assert result.status == "failed"
    assert result.error_message == "relay stuck"
    db_session.refresh(seeded_device.relay)
    assert seeded_device.relay.current_state == "off"


def test_repeated_confirmation_is_idempotent(db_session, seeded_device) -> None:
    command = _claim_one(db_session, seeded_device, seeded_device.relay, "on")
    args = (db_session, seeded_device.composite_id, seeded_device.secret, command.id)

    command_service.confirm(*args, "confirmed")
    again = command_service.confirm(*args, "confirmed")

    assert again.status == "confirmed"
    with pytest.raises(CommandStateConflict):
        command_service.confirm(*args, "failed")


def test_confirming_unclaimed_command_is_a_conflict(db_session, seeded_device) -> None:
    command = command_service.enqueue(db_session, seeded_device.relay.id, "on", now=T0)

    with pytest.raises(CommandStateConflict):
        command_service.confirm(db_session, seeded_device.composite_id, seeded_device.secret, command.id, "confirmed")
    db_session.refresh(command)
    assert command.status == "pending"


def test_confirm_rejects_bad_outcome_and_foreign_commands(db_session, seeded_device, register_device) -> None:
    command = _claim_one(db_session, seeded_device, seeded_device.relay, "on")
    register_device(slot_number=4)
    liveness_service.record_heartbeat(db_session, "PROJ1-ESP4", "ef" * 32, now=T0)

    with pytest.raises(ValidationFailed):
        command_service.confirm(db_session, seeded_device.composite_id, seeded_device.secret, command.id, "expired")
    with pytest.raises(CommandNotFound):
        command_service.confirm(db_session, "PROJ1-ESP4", "ef" * 32, command.id, "confirmed")
    with pytest.raises(CommandNotFound):
        command_service.confirm(db_session, seeded_device.composite_id, seeded_device.secret, uuid.uuid4(), "confirmed")


def test_list_for_device_is_newest_first(db_session, seeded_device) -> None:
    older = command_service.enqueue(db_session, seeded_device.relay.id, "on", now=T0)
    newer = command_service.enqueue(db_session, seeded_device.fan.id, "set_value", 10, now=T0 + timedelta(seconds=1))

    listed = command_service.list_for_device(db_session, seeded_device.composite_id)

    assert [c.id for c in listed] == [newer.id, older.id]
    assert command_service.get_command(db_session, older.id) is older
    with pytest.raises(CommandNotFound):
        command_service.get_command(db_session, uuid.uuid4())
