"""
Liveness tracker: connection-status state machine.

States are offline (initial), online and connection_failed.

- offline/connection_failed -> online: any successful authenticated contact.
- online -> offline: sweep finds last contact older than the liveness window.
- offline -> connection_failed: sweep finds a device registered within the
  new-device window that never made contact, once the grace period passed.

The sweep is two conditional bulk updates. Re-running it is a no-op for rows
already transitioned, so it can run redundantly or concurrently without locks,
and a skipped run is corrected by the next one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..config import settings
from ..database import utcnow
from ..models.device import ConnectionStatus, Device
from ..models.heartbeat import Heartbeat
from . import identity_service

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LivenessSweepResult:
    marked_offline: int
    marked_failed: int


def mark_online(device: Device, now: Optional[datetime] = None) -> None:
    """Record a successful contact. Always the last mutation of a device call."""
    previous = device.status
    device.status = ConnectionStatus.ONLINE.value
    device.last_contact_at = now or utcnow()
    if previous != ConnectionStatus.ONLINE.value:
        LOGGER.info("Device %s status changed: %s -> online", device.composite_device_id, previous)


def record_heartbeat(
    db: Session,
    composite_id: Optional[str],
    secret: Optional[str],
    *,
    firmware_version: Optional[str] = None,
    hostname: Optional[str] = None,
    rssi: Optional[int] = None,
    ip_address: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Device:
    """Authenticate (binding on first contact), store telemetry, mark online."""
    now = now or utcnow()
    device = identity_service.authenticate(db, composite_id, secret, allow_binding=True)

    db.add(
        Heartbeat(
            device_id=device.id,
            received_at=now,
            firmware_version=firmware_version,
            rssi=rssi,
            ip_address=ip_address,
        )
    )
    if firmware_version:
        device.firmware_version = firmware_version
    if hostname:
        device.hostname = hostname
    mark_online(device, now)
    db.commit()
    db.refresh(device)
    return device


def sweep(
    db: Session,
    *,
    now: Optional[datetime] = None,
    liveness_window: Optional[timedelta] = None,
    grace_period: Optional[timedelta] = None,
    new_device_window: Optional[timedelta] = None,
    commit: bool = True,
) -> LivenessSweepResult:
    """Demote stale devices and flag new devices that never joined."""
    now = now or utcnow()
    liveness_window = liveness_window or timedelta(seconds=settings.LIVENESS_WINDOW_SECONDS)
    grace_period = grace_period or timedelta(seconds=settings.CONNECTION_FAILED_GRACE_SECONDS)
    new_device_window = new_device_window or timedelta(seconds=settings.NEW_DEVICE_WINDOW_SECONDS)

    offline = db.execute(
        update(Device)
        .where(Device.status == ConnectionStatus.ONLINE.value)
        .where(Device.last_contact_at.is_not(None))
        .where(Device.last_contact_at < now - liveness_window)
        .values(status=ConnectionStatus.OFFLINE.value)
        .execution_options(synchronize_session=False)
    )

    failed = db.execute(
        update(Device)
        .where(Device.status == ConnectionStatus.OFFLINE.value)
        .where(Device.last_contact_at.is_(None))
        .where(Device.registered_at > now - new_device_window)
        .where(Device.registered_at < now - grace_period)
        .values(status=ConnectionStatus.CONNECTION_FAILED.value)
        .execution_options(synchronize_session=False)
    )

    if commit:
        db.commit()
    result = LivenessSweepResult(marked_offline=offline.rowcount, marked_failed=failed.rowcount)
    if result.marked_offline or result.marked_failed:
        LOGGER.info(
            "Liveness sweep: %d devices marked offline, %d marked connection_failed",
            result.marked_offline,
            result.marked_failed,
        )
    return result


__all__ = ["LivenessSweepResult", "mark_online", "record_heartbeat", "sweep"]
