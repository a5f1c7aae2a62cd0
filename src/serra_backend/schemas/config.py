"""
Pydantic schemas for port map sync.
"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class SensorAnnouncementItem(BaseModel):
    sensor_id: str = Field(description="Sensor id assigned by the device, e.g. dht22_gpio4", max_length=64)
    sensor_type: str = Field(max_length=50)
    unit: Optional[str] = Field(None, max_length=20)


class ActuatorAnnouncementItem(BaseModel):
    actuator_id: str = Field(description="Actuator id assigned by the device, e.g. relay_1", max_length=64)
    actuator_type: str = Field(max_length=50)
    supports_pwm: bool = False


class ConfigFetchRequest(BaseModel):
    """Device config fetch; may announce its sensors and actuators inline."""
    sensors: List[SensorAnnouncementItem] = Field(default_factory=list)
    actuators: List[ActuatorAnnouncementItem] = Field(default_factory=list)


class ConfigEntry(BaseModel):
    """One active port map row as served to devices."""
    sensor_type: str = Field(description="Sensor kind, e.g. air_temp_humidity or soil_moisture")
    port_id: str = Field(description="Physical port, e.g. GPIO4, D2 or A0")

    model_config = ConfigDict(from_attributes=True)


class ConfigEntryRequest(BaseModel):
    sensor_type: str = Field(min_length=1, max_length=50)
    port_id: str = Field(min_length=1, max_length=20)
    is_active: bool = True


class ConfigReplaceRequest(BaseModel):
    """Operator request replacing a device's whole port map."""
    entries: List[ConfigEntryRequest]

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "entries": [
                    {"sensor_type": "air_temp_humidity", "port_id": "GPIO4"},
                    {"sensor_type": "soil_moisture", "port_id": "A0"},
                ]
            }
        }
    )


class ConfigSnapshot(BaseModel):
    """Operator view of a device's port map."""
    composite_device_id: str
    config_version: int = Field(ge=0)
    entries: List[ConfigEntry]
