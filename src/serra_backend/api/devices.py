"""
Devices API router.

Operator endpoints for registering device slots, inspecting them, managing
their keys, and editing their port maps.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_operator
from ..models.actuator import Actuator
from ..models.device import ConnectionStatus, Device
from ..models.sensor import Sensor
from ..schemas.command import CommandResponse
from ..schemas.config import ConfigEntry, ConfigReplaceRequest, ConfigSnapshot
from ..schemas.device import (
    ActuatorItem,
    AvailableSlot,
    DeviceComponents,
    DeviceDetail,
    DeviceListItem,
    DeviceRegisterRequest,
    SensorItem,
)
from ..services import command_service, config_sync_service, identity_service
from ..services.config_sync_service import ConfigEntryInput


router = APIRouter(tags=["devices"], dependencies=[Depends(require_operator)])


def _list_item(device: Device) -> DeviceListItem:
    return DeviceListItem(
        composite_device_id=device.composite_device_id,
        project_id=device.project_id,
        slot_number=device.slot_number,
        name=device.name,
        status=device.status,
        last_contact_at=device.last_contact_at,
        firmware_version=device.firmware_version,
        is_bound=device.is_bound,
        revoked=device.revoked,
    )


def _detail(db: Session, device: Device) -> DeviceDetail:
    sensor_count = db.query(func.count(Sensor.id)).filter(Sensor.device_id == device.id).scalar() or 0
    actuator_count = db.query(func.count(Actuator.id)).filter(Actuator.device_id == device.id).scalar() or 0
    return DeviceDetail(
        **_list_item(device).model_dump(),
        id=str(device.id),
        registered_at=device.registered_at,
        config_version=device.config_version,
        hostname=device.hostname,
        sensor_count=sensor_count,
        actuator_count=actuator_count,
    )


@router.post("/", response_model=DeviceDetail, status_code=status.HTTP_201_CREATED)
def register_device(
    payload: DeviceRegisterRequest,
    db: Session = Depends(get_db),
):
    """
    Pre-provision a device slot.

    The device key stays unbound until the device sends its first heartbeat.
    Returns the composite id to flash onto the device.
    """
    device = identity_service.issue_identity(db, payload.project_id, payload.device_number, payload.name)
    return _detail(db, device)


@router.get("/", response_model=List[DeviceListItem])
def list_devices(
    project_id: Optional[str] = Query(None, description="Filter by project identifier"),
    status_filter: Optional[ConnectionStatus] = Query(None, alias="status", description="Filter by connection status"),
    db: Session = Depends(get_db),
):
    """List devices with their connection status."""
    query = db.query(Device)
    if project_id:
        query = query.filter(Device.project_id == project_id.upper())
    if status_filter:
        query = query.filter(Device.status == status_filter.value)
    devices = query.order_by(Device.project_id, Device.slot_number).all()
    return [_list_item(device) for device in devices]


# before the detail route so "available" is not read as a composite id
@router.get("/available", response_model=List[AvailableSlot])
def list_available_slots(
    project_id: str = Query(..., description="Project identifier"),
    db: Session = Depends(get_db),
):
    """Free device slots for a project, lowest first."""
    project = project_id.strip().upper()
    return [
        AvailableSlot(device_number=slot, composite_device_id=identity_service.build_composite_id(project, slot))
        for slot in identity_service.available_slots(db, project)
    ]


@router.get("/{composite_id}", response_model=DeviceDetail)
def get_device_detail(
    composite_id: str,
    db: Session = Depends(get_db),
):
    """Get detailed information for a specific device."""
    device = identity_service.get_device(db, composite_id)
    return _detail(db, device)


@router.delete("/{composite_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_device(
    composite_id: str,
    db: Session = Depends(get_db),
):
    """Revoke and delete a device with its sensors, actuators, commands and readings."""
    identity_service.delete_identity(db, composite_id)


@router.post("/{composite_id}/revoke", response_model=DeviceDetail)
def revoke_device(
    composite_id: str,
    db: Session = Depends(get_db),
):
    """Clear the bound key and refuse all further calls from this identity."""
    device = identity_service.revoke(db, composite_id)
    return _detail(db, device)


@router.post("/{composite_id}/reprovision", response_model=DeviceDetail)
def reprovision_device(
    composite_id: str,
    db: Session = Depends(get_db),
):
    """Reopen a revoked or reset identity for a fresh first-contact binding."""
    device = identity_service.reprovision(db, composite_id)
    return _detail(db, device)


@router.get("/{composite_id}/config", response_model=ConfigSnapshot)
def get_config(
    composite_id: str,
    db: Session = Depends(get_db),
):
    """Active port map and its version."""
    device = identity_service.get_device(db, composite_id)
    entries = config_sync_service.snapshot(db, device)
    return ConfigSnapshot(
        composite_device_id=device.composite_device_id,
        config_version=device.config_version,
        entries=[ConfigEntry.model_validate(entry) for entry in entries],
    )


@router.put("/{composite_id}/config", response_model=ConfigSnapshot)
def replace_config(
    composite_id: str,
    payload: ConfigReplaceRequest,
    db: Session = Depends(get_db),
):
    """
    Replace the whole port map.

    The version only moves when a row actually changes; the device picks the
    new map up after its next heartbeat.
    """
    device = config_sync_service.replace_config(
        db,
        composite_id,
        [
            ConfigEntryInput(sensor_type=entry.sensor_type, port_id=entry.port_id, is_active=entry.is_active)
            for entry in payload.entries
        ],
    )
    entries = config_sync_service.snapshot(db, device)
    return ConfigSnapshot(
        composite_device_id=device.composite_device_id,
        config_version=device.config_version,
        entries=[ConfigEntry.model_validate(entry) for entry in entries],
    )


@router.get("/{composite_id}/components", response_model=DeviceComponents)
def list_components(
    composite_id: str,
    db: Session = Depends(get_db),
):
    """Sensors and actuators registered by auto-discovery."""
    device = identity_service.get_device(db, composite_id)
    sensors = db.query(Sensor).filter(Sensor.device_id == device.id).order_by(Sensor.local_id).all()
    actuators = db.query(Actuator).filter(Actuator.device_id == device.id).order_by(Actuator.local_id).all()
    return DeviceComponents(
        sensors=[SensorItem.model_validate(sensor) for sensor in sensors],
        actuators=[
            ActuatorItem(
                id=str(actuator.id),
                local_id=actuator.local_id,
                actuator_type=actuator.actuator_type,
                supports_pwm=actuator.supports_pwm,
                current_state=actuator.current_state,
                current_value=actuator.current_value,
                is_active=actuator.is_active,
                discovered_at=actuator.discovered_at,
            )
            for actuator in actuators
        ],
    )


@router.get("/{composite_id}/commands", response_model=List[CommandResponse])
def list_device_commands(
    composite_id: str,
    limit: int = Query(50, ge=1, le=500, description="Maximum commands to return, newest first"),
    db: Session = Depends(get_db),
):
    """Recent commands targeting this device's actuators."""
    return command_service.list_for_device(db, composite_id, limit=limit)
