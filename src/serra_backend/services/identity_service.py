"""
Identity & key service.

Devices are pre-provisioned by an operator with a NULL secret hash. The device
generates its own secret and the first successful heartbeat binds its SHA-256
hash (trust on first contact). Later calls must present a secret with the same
hash. Binding is a first-contact race: if two boards share a composite id the
first one to reach the server wins and the other stays locked out until an
operator revokes or reprovisions the identity. Nothing here defends against an
attacker who observes the composite id and contacts the server first.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import re
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..database import utcnow
from ..errors import AuthenticationFailed, IdentityConflict, IdentityNotFound, ValidationFailed
from ..models.device import ConnectionStatus, Device

LOGGER = logging.getLogger(__name__)

PROJECT_ID_PATTERN = re.compile(r"^[A-Z0-9]{4,5}$")
COMPOSITE_ID_PATTERN = re.compile(r"^(?P<project>[A-Z0-9]{4,5})-ESP(?P<slot>[1-9][0-9]*)$")


def build_composite_id(project_id: str, slot_number: int) -> str:
    return f"{project_id}-ESP{slot_number}"


def hash_secret(secret: str) -> str:
    """One-way verifier stored in place of the device secret."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def _secret_matches(secret: str, stored_hash: str) -> bool:
    return hmac.compare_digest(hash_secret(secret), stored_hash)


def validate_composite_id(composite_id: Optional[str]) -> str:
    if not composite_id or not COMPOSITE_ID_PATTERN.match(composite_id):
        raise ValidationFailed(
            "Invalid composite device ID format; expected PROJ1-ESP5 (project ID + device number)"
        )
    return composite_id


def issue_identity(
    db: Session,
    project_id: str,
    slot_number: int,
    name: str,
    *,
    now: Optional[datetime] = None,
) -> Device:
    """Register a device slot under a project. The secret hash starts NULL."""
    project_id = (project_id or "").strip().upper()
    if not PROJECT_ID_PATTERN.match(project_id):
        raise ValidationFailed("Project ID must be 4-5 uppercase letters or digits")
    if isinstance(slot_number, bool) or not isinstance(slot_number, int):
        raise ValidationFailed("Device number must be an integer")
    if slot_number < 1 or slot_number > settings.MAX_SLOT_NUMBER:
        raise ValidationFailed(f"Device number must be between 1 and {settings.MAX_SLOT_NUMBER}")
    if not name or not name.strip():
        raise ValidationFailed("Device name cannot be empty")

    composite_id = build_composite_id(project_id, slot_number)
    existing = db.query(Device).filter(Device.composite_device_id == composite_id).first()
    if existing is not None:
        raise IdentityConflict(f"Device ESP{slot_number} is already registered in project {project_id}")

    device = Device(
        composite_device_id=composite_id,
        project_id=project_id,
        slot_number=slot_number,
        name=name.strip(),
        secret_hash=None,
        revoked=False,
        status=ConnectionStatus.OFFLINE.value,
        registered_at=now or utcnow(),
    )
    db.add(device)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise IdentityConflict(
            f"Device ESP{slot_number} is already registered in project {project_id}"
        ) from exc
    db.refresh(device)
    LOGGER.info("Issued identity %s (%s)", composite_id, device.name)
    return device


def get_device(db: Session, composite_id: str) -> Device:
    validate_composite_id(composite_id)
    device = db.query(Device).filter(Device.composite_device_id == composite_id).first()
    if device is None:
        raise IdentityNotFound(f"Device {composite_id} is not registered")
    return device


def available_slots(db: Session, project_id: str) -> List[int]:
    """Slot numbers in 1..MAX_SLOT_NUMBER not yet registered under the project."""
    project_id = (project_id or "").strip().upper()
    if not PROJECT_ID_PATTERN.match(project_id):
        raise ValidationFailed("Project ID must be 4-5 uppercase letters or digits")
    taken = {slot for (slot,) in db.query(Device.slot_number).filter(Device.project_id == project_id)}
    return [slot for slot in range(1, settings.MAX_SLOT_NUMBER + 1) if slot not in taken]


def authenticate(
    db: Session,
    composite_id: Optional[str],
    secret: Optional[str],
    *,
    allow_binding: bool = False,
) -> Device:
    """Resolve and verify a device. Raises before mutating anything on failure.

    With ``allow_binding`` an unbound identity binds the presented secret using
    a conditional update, so concurrent first contacts cannot both win.
    The binding is flushed but not committed; the caller commits it together
    with the rest of the call.
    """
    if not secret or not secret.strip():
        raise AuthenticationFailed("x-device-key header is required")
    device = get_device(db, composite_id)

    if device.revoked:
        LOGGER.warning("Rejected contact from revoked identity %s", composite_id)
        raise AuthenticationFailed(f"Device {composite_id} has been revoked")

    if device.secret_hash is None:
        if not allow_binding:
            raise AuthenticationFailed(
                f"Device {composite_id} has no bound key; send a heartbeat first"
            )
        _bind_secret(db, device, secret)
        return device

    if not _secret_matches(secret, device.secret_hash):
        LOGGER.warning("Device key mismatch for %s", composite_id)
        raise AuthenticationFailed("Device key does not match stored hash")
    return device


def _bind_secret(db: Session, device: Device, secret: str) -> None:
    presented_hash = hash_secret(secret)
    result = db.execute(
        update(Device)
        .where(Device.id == device.id)
        .where(Device.secret_hash.is_(None))
        .where(Device.revoked.is_(False))
        .values(secret_hash=presented_hash)
        .execution_options(synchronize_session=False)
    )
    db.refresh(device)
    if result.rowcount == 1:
        LOGGER.info("First contact from %s, device key bound", device.composite_device_id)
        return
    # Another contact bound (or revoked) first; verify against the winner.
    if device.revoked or device.secret_hash is None or not _secret_matches(secret, device.secret_hash):
        LOGGER.warning("Lost first-contact binding race for %s", device.composite_device_id)
        raise AuthenticationFailed("Device key does not match stored hash")


def revoke(db: Session, composite_id: str) -> Device:
    """Clear the verifier and refuse all future authentication."""
    device = get_device(db, composite_id)
    device.secret_hash = None
    device.revoked = True
    db.commit()
    db.refresh(device)
    LOGGER.info("Revoked identity %s", composite_id)
    return device


def reprovision(db: Session, composite_id: str, *, now: Optional[datetime] = None) -> Device:
    """Reopen an identity for a fresh first-contact binding."""
    device = get_device(db, composite_id)
    device.secret_hash = None
    device.revoked = False
    device.status = ConnectionStatus.OFFLINE.value
    device.last_contact_at = None
    device.registered_at = now or utcnow()
    db.commit()
    db.refresh(device)
    LOGGER.info("Reprovisioned identity %s; awaiting first contact", composite_id)
    return device


def delete_identity(db: Session, composite_id: str) -> None:
    """Revoke and delete a device together with everything it owns."""
    device = get_device(db, composite_id)
    device.secret_hash = None
    device.revoked = True
    db.delete(device)
    db.commit()
    LOGGER.info("Deleted identity %s", composite_id)


__all__ = [
    "authenticate",
    "available_slots",
    "build_composite_id",
    "delete_identity",
    "get_device",
    "hash_secret",
    "issue_identity",
    "reprovision",
    "revoke",
    "validate_composite_id",
]
