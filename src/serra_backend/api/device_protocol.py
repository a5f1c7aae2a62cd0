"""
Device protocol router.

Every call is initiated by the device and identified by the
``x-composite-device-id`` and ``x-device-key`` headers. Heartbeat is the
only call that may bind a key on first contact.
"""
from typing import List, Optional
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import DeviceCredentials, get_device_credentials
from ..schemas.command import (
    CommandConfirmRequest,
    CommandConfirmResponse,
    PendingCommandItem,
)
from ..schemas.config import ConfigEntry, ConfigFetchRequest
from ..schemas.device import HeartbeatRequest, HeartbeatResponse
from ..schemas.reading import ReadingsRequest, ReadingsResponse
from ..services import command_service, config_sync_service, discovery_service, liveness_service
from ..services.discovery_service import ActuatorAnnouncement, ReadingInput, SensorAnnouncement


router = APIRouter(tags=["device-protocol"])


@router.post("/heartbeat", response_model=HeartbeatResponse)
def heartbeat(
    payload: HeartbeatRequest,
    device: DeviceCredentials = Depends(get_device_credentials),
    db: Session = Depends(get_db),
):
    """
    Record a heartbeat and return the current config version.

    The first heartbeat from an unbound identity binds the presented key.
    Devices compare **config_version** with their cached copy and call
    `/config` when the server is ahead.
    """
    record = liveness_service.record_heartbeat(
        db,
        device.composite_id,
        device.secret,
        firmware_version=payload.firmware_version,
        hostname=payload.device_hostname,
        rssi=payload.rssi,
        ip_address=payload.ip_address,
    )
    return HeartbeatResponse(
        composite_device_id=record.composite_device_id,
        status=record.status,
        config_version=record.config_version,
        timestamp=record.last_contact_at,
    )


@router.post("/config", response_model=List[ConfigEntry])
def fetch_config(
    payload: Optional[ConfigFetchRequest] = None,
    device: DeviceCredentials = Depends(get_device_credentials),
    db: Session = Depends(get_db),
):
    """Return the full active port map, registering any announced components."""
    payload = payload or ConfigFetchRequest()
    entries = config_sync_service.fetch_config(
        db,
        device.composite_id,
        device.secret,
        sensors=[
            SensorAnnouncement(local_id=item.sensor_id, sensor_type=item.sensor_type, unit=item.unit)
            for item in payload.sensors
        ],
        actuators=[
            ActuatorAnnouncement(
                local_id=item.actuator_id,
                actuator_type=item.actuator_type,
                supports_pwm=item.supports_pwm,
            )
            for item in payload.actuators
        ],
    )
    return [ConfigEntry.model_validate(entry) for entry in entries]


@router.post("/readings", response_model=ReadingsResponse)
def submit_readings(
    payload: ReadingsRequest,
    device: DeviceCredentials = Depends(get_device_credentials),
    db: Session = Depends(get_db),
):
    """Store a reading batch. Sensors are registered on first report."""
    inserted = discovery_service.ingest_readings(
        db,
        device.composite_id,
        device.secret,
        [
            ReadingInput(
                local_sensor_id=item.sensor_id,
                sensor_type=item.sensor_type,
                value=item.value,
                unit=item.unit,
            )
            for item in payload.readings
        ],
    )
    return ReadingsResponse(inserted=inserted)


@router.post("/commands/poll", response_model=List[PendingCommandItem])
def poll_commands(
    device: DeviceCredentials = Depends(get_device_credentials),
    db: Session = Depends(get_db),
):
    """
    Claim pending commands, oldest first.

    Claimed commands move to `retrieved` and are never delivered again.
    """
    commands = command_service.claim_pending(db, device.composite_id, device.secret)
    return [
        PendingCommandItem(
            command_id=str(command.id),
            actuator_id=command.actuator.local_id,
            command_type=command.command_type,
            value=command.value,
        )
        for command in commands
    ]


@router.post("/commands/{command_id}/confirm", response_model=CommandConfirmResponse)
def confirm_command(
    command_id: uuid.UUID,
    payload: CommandConfirmRequest,
    device: DeviceCredentials = Depends(get_device_credentials),
    db: Session = Depends(get_db),
):
    """Report the outcome of a retrieved command."""
    command = command_service.confirm(
        db,
        device.composite_id,
        device.secret,
        command_id,
        payload.outcome,
        error_message=payload.error_message,
    )
    return CommandConfirmResponse(command_id=str(command.id), status=command.status)
