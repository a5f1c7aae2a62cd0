"""
Command queue service.

Lifecycle: pending -> retrieved -> confirmed | failed, or pending -> expired.

Polling claims work with one conditional UPDATE that selects eligible rows
and moves them to ``retrieved`` in the same statement, returning what it
claimed. A duplicate or retried poll racing the first one finds the rows no
longer pending and gets an empty batch, so each command is delivered at most
once. On PostgreSQL the inner select also takes ``FOR UPDATE SKIP LOCKED``
so concurrent claimers skip rows another transaction is already claiming.
"""
from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta
from typing import List, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.orm import Session, joinedload

from ..config import settings
from ..database import utcnow
from ..errors import CommandNotFound, CommandStateConflict, IdentityNotFound, ValidationFailed
from ..models.actuator import Actuator
from ..models.command import Command, CommandKind, CommandStatus
from ..models.device import Device
from . import identity_service
from .liveness_service import mark_online

LOGGER = logging.getLogger(__name__)

VALUE_MIN = 0.0
VALUE_MAX = 100.0

_TERMINAL_OUTCOMES = (CommandStatus.CONFIRMED, CommandStatus.FAILED)


def validate_command(kind: Union[str, CommandKind], value: Optional[float]) -> CommandKind:
    """Value is present iff the kind is set_value, and then within 0..100."""
    try:
        kind = CommandKind(kind)
    except ValueError as exc:
        raise ValidationFailed(f"Unknown command type: {kind}") from exc

    if kind is CommandKind.SET_VALUE:
        if value is None:
            raise ValidationFailed("set_value commands require a value")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValidationFailed("Command value must be a finite number")
        if value < VALUE_MIN or value > VALUE_MAX:
            raise ValidationFailed(f"Command value must be between {VALUE_MIN:g} and {VALUE_MAX:g}")
    elif value is not None:
        raise ValidationFailed(f"{kind.value} commands must not carry a value")
    return kind


def enqueue(
    db: Session,
    actuator_id: uuid.UUID,
    kind: Union[str, CommandKind],
    value: Optional[float] = None,
    *,
    now: Optional[datetime] = None,
    expiry_window: Optional[timedelta] = None,
) -> Command:
    """Operator issues a command. Actuator state is untouched until confirmation."""
    kind = validate_command(kind, value)
    now = now or utcnow()
    expiry_window = expiry_window or timedelta(seconds=settings.COMMAND_EXPIRY_SECONDS)

    actuator = db.query(Actuator).filter(Actuator.id == actuator_id).first()
    if actuator is None:
        raise IdentityNotFound(f"Actuator {actuator_id} not found")

    command = Command(
        actuator_id=actuator.id,
        command_type=kind.value,
        value=float(value) if value is not None else None,
        status=CommandStatus.PENDING.value,
        created_at=now,
        expires_at=now + expiry_window,
    )
    db.add(command)
    db.commit()
    db.refresh(command)
    LOGGER.info(
        "Queued %s command %s for actuator %s (expires %s)",
        kind.value,
        command.id,
        actuator.local_id,
        command.expires_at,
    )
    return command


def claim_for_device(
    db: Session,
    device: Device,
    *,
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
) -> List[Command]:
    """Atomically move up to ``batch_size`` pending commands to retrieved.

    Does not commit; the caller commits the claim with the rest of the call.
    """
    now = now or utcnow()
    batch_size = batch_size or settings.COMMAND_BATCH_SIZE

    eligible = (
        select(Command.id)
        .join(Actuator, Actuator.id == Command.actuator_id)
        .where(Actuator.device_id == device.id)
        .where(Command.status == CommandStatus.PENDING.value)
        .where(Command.expires_at > now)
        .order_by(Command.created_at.asc())
        .limit(batch_size)
        .with_for_update(skip_locked=True)
    )
    claimed_ids = db.execute(
        update(Command)
        .where(Command.id.in_(eligible))
        .where(Command.status == CommandStatus.PENDING.value)
        .values(status=CommandStatus.RETRIEVED.value, retrieved_at=now)
        .returning(Command.id)
        .execution_options(synchronize_session=False)
    ).scalars().all()

    if not claimed_ids:
        return []
    commands = (
        db.query(Command)
        .options(joinedload(Command.actuator))
        .filter(Command.id.in_(claimed_ids))
        .order_by(Command.created_at.asc())
        .populate_existing()
        .all()
    )
    LOGGER.info("Device %s claimed %d commands", device.composite_device_id, len(commands))
    return commands


def claim_pending(
    db: Session,
    composite_id: Optional[str],
    secret: Optional[str],
    *,
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
) -> List[Command]:
    """Device poll: authenticate, claim a batch, mark online, commit."""
    now = now or utcnow()
    device = identity_service.authenticate(db, composite_id, secret)
    commands = claim_for_device(db, device, now=now, batch_size=batch_size)
    mark_online(device, now)
    db.commit()
    return commands


def _apply_to_actuator(actuator: Actuator, command: Command) -> None:
    kind = CommandKind(command.command_type)
    if kind is CommandKind.ON:
        actuator.current_state = "on"
    elif kind is CommandKind.OFF:
        actuator.current_state = "off"
    else:
        actuator.current_value = command.value
        actuator.current_state = "on" if command.value and command.value > 0 else "off"


def confirm(
    db: Session,
    composite_id: Optional[str],
    secret: Optional[str],
    command_id: uuid.UUID,
    outcome: Union[str, CommandStatus],
    *,
    error_message: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Command:
    """Device reports execution: retrieved -> confirmed or failed.

    Repeating the same outcome is acknowledged again without side effects,
    so a device may retry a confirmation whose response it never received.
    """
    now = now or utcnow()
    try:
        outcome = CommandStatus(outcome)
    except ValueError as exc:
        raise ValidationFailed(f"Unknown outcome: {outcome}") from exc
    if outcome not in _TERMINAL_OUTCOMES:
        raise ValidationFailed("Outcome must be 'confirmed' or 'failed'")

    device = identity_service.authenticate(db, composite_id, secret)
    command = (
        db.query(Command)
        .join(Actuator, Actuator.id == Command.actuator_id)
        .filter(Command.id == command_id, Actuator.device_id == device.id)
        .first()
    )
    if command is None:
        raise CommandNotFound(f"Command {command_id} not found for {device.composite_device_id}")

    if command.status == outcome.value:
        LOGGER.debug("Repeated %s confirmation for command %s", outcome.value, command.id)
        mark_online(device, now)
        db.commit()
        return command
    if command.status != CommandStatus.RETRIEVED.value:
        raise CommandStateConflict(
            f"Command {command_id} is {command.status}; only retrieved commands can be confirmed"
        )

    # Conditional transition so two racing confirmations cannot both apply
    result = db.execute(
        update(Command)
        .where(Command.id == command.id)
        .where(Command.status == CommandStatus.RETRIEVED.value)
        .values(
            status=outcome.value,
            confirmed_at=now,
            error_message=(error_message or None) if outcome is CommandStatus.FAILED else None,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise CommandStateConflict(f"Command {command_id} was confirmed concurrently")

    db.refresh(command)
    if outcome is CommandStatus.CONFIRMED:
        _apply_to_actuator(command.actuator, command)
    mark_online(device, now)
    db.commit()
    db.refresh(command)
    LOGGER.info(
        "Command %s %s by %s%s",
        command.id,
        outcome.value,
        device.composite_device_id,
        f" ({error_message})" if error_message and outcome is CommandStatus.FAILED else "",
    )
    return command


def expire_stale(db: Session, *, now: Optional[datetime] = None, commit: bool = True) -> int:
    """pending commands past their expiry become expired. retrieved ones are left alone."""
    now = now or utcnow()
    result = db.execute(
        update(Command)
        .where(Command.status == CommandStatus.PENDING.value)
        .where(Command.expires_at <= now)
        .values(status=CommandStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    if commit:
        db.commit()
    if result.rowcount:
        LOGGER.info("Expired %d pending commands", result.rowcount)
    return result.rowcount


def get_command(db: Session, command_id: uuid.UUID) -> Command:
    command = db.query(Command).filter(Command.id == command_id).first()
    if command is None:
        raise CommandNotFound(f"Command {command_id} not found")
    return command


def list_for_device(db: Session, composite_id: str, *, limit: int = 50) -> List[Command]:
    device = identity_service.get_device(db, composite_id)
    return (
        db.query(Command)
        .join(Actuator, Actuator.id == Command.actuator_id)
        .filter(Actuator.device_id == device.id)
        .order_by(Command.created_at.desc())
        .limit(limit)
        .all()
    )


__all__ = [
    "claim_for_device",
    "claim_pending",
    "confirm",
    "enqueue",
    "expire_stale",
    "get_command",
    "list_for_device",
    "validate_command",
]
