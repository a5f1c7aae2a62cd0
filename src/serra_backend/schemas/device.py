"""
Pydantic schemas for device identity and heartbeat endpoints.

Defines request/response models for operator registration, listing, detail,
and the device heartbeat call.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class DeviceRegisterRequest(BaseModel):
    """Operator request to pre-provision a device slot."""
    project_id: str = Field(description="4-5 character project identifier", min_length=4, max_length=5)
    device_number: int = Field(description="Slot number within the project")
    name: str = Field(description="Human-readable device name", min_length=1, max_length=100)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "project_id": "PROJ1",
                "device_number": 3,
                "name": "Greenhouse North",
            }
        }
    )


class AvailableSlot(BaseModel):
    """Unregistered slot an operator can issue next."""
    device_number: int
    composite_device_id: str = Field(description="Id the device would receive, e.g. PROJ1-ESP4")


class DeviceListItem(BaseModel):
    """Device list item with identity and connection status."""
    composite_device_id: str = Field(description="Project-scoped device id, e.g. PROJ1-ESP3")
    project_id: str = Field(description="Project identifier")
    slot_number: int = Field(description="Slot number within the project")
    name: str = Field(description="Human-readable device name")
    status: str = Field(description="offline, online or connection_failed")
    last_contact_at: Optional[datetime] = Field(None, description="Timestamp of last successful device call")
    firmware_version: Optional[str] = Field(None, description="Firmware version from the last heartbeat")
    is_bound: bool = Field(description="True once the device key has been bound")
    revoked: bool = Field(description="True if the identity has been revoked")

    model_config = ConfigDict(from_attributes=True)


class DeviceDetail(DeviceListItem):
    """Detailed device information."""
    id: str = Field(description="Device UUID")
    registered_at: datetime = Field(description="When the slot was registered or last reprovisioned")
    config_version: int = Field(ge=0, description="Current port map version")
    hostname: Optional[str] = Field(None, description="Hostname reported by the device")
    sensor_count: int = Field(ge=0, description="Sensors registered by auto-discovery")
    actuator_count: int = Field(ge=0, description="Actuators registered by auto-discovery")


class HeartbeatRequest(BaseModel):
    """Periodic device heartbeat. Binds the device key on first contact."""
    firmware_version: str = Field(description="Running firmware version", max_length=20)
    device_hostname: Optional[str] = Field(None, description="Network hostname", max_length=255)
    rssi: Optional[int] = Field(None, description="WiFi signal strength in dBm")
    ip_address: Optional[str] = Field(None, description="Device IP address", max_length=45)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "firmware_version": "3.2.0",
                "device_hostname": "serra-proj1-esp3",
                "rssi": -61,
                "ip_address": "192.168.1.42",
            }
        }
    )


class HeartbeatResponse(BaseModel):
    """Heartbeat acknowledgement carrying the current config version."""
    success: bool = True
    composite_device_id: str = Field(description="Device that sent the heartbeat")
    status: str = Field(description="Connection status after the heartbeat")
    config_version: int = Field(ge=0, description="Server-side port map version")
    timestamp: datetime = Field(description="Server time of the heartbeat")


class SensorItem(BaseModel):
    """Sensor registered by auto-discovery."""
    local_id: str
    sensor_type: str
    unit: Optional[str] = None
    is_active: bool
    discovered_at: datetime
    last_seen_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ActuatorItem(BaseModel):
    """Actuator registered by auto-discovery with its last confirmed state."""
    id: str = Field(description="Actuator UUID, used when enqueueing commands")
    local_id: str
    actuator_type: str
    supports_pwm: bool
    current_state: str
    current_value: Optional[float] = None
    is_active: bool
    discovered_at: datetime


class DeviceComponents(BaseModel):
    sensors: List[SensorItem]
    actuators: List[ActuatorItem]
