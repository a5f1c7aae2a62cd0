"""
Pydantic schemas for the command queue.

Defines the operator enqueue request, the command views, and the device
poll/confirm payloads.
"""
from datetime import datetime
from typing import Literal, Optional
import uuid
from pydantic import BaseModel, ConfigDict, Field


class CommandCreateRequest(BaseModel):
    """Operator request targeting one actuator."""
    actuator_id: uuid.UUID = Field(description="Actuator UUID")
    command_type: Literal["on", "off", "set_value"] = Field(description="Command kind")
    value: Optional[float] = Field(None, description="0-100, only for set_value")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "actuator_id": "550e8400-e29b-41d4-a716-446655440000",
                "command_type": "set_value",
                "value": 60,
            }
        }
    )


class CommandResponse(BaseModel):
    """Full command record for operators."""
    id: uuid.UUID
    actuator_id: uuid.UUID
    command_type: str
    value: Optional[float] = None
    status: str
    created_at: datetime
    retrieved_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    expires_at: datetime
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PendingCommandItem(BaseModel):
    """Command as delivered to a polling device."""
    command_id: str
    actuator_id: str = Field(description="Actuator id assigned by the device")
    command_type: str
    value: Optional[float] = None


class CommandConfirmRequest(BaseModel):
    outcome: Literal["confirmed", "failed"]
    error_message: Optional[str] = Field(None, max_length=255)


class CommandConfirmResponse(BaseModel):
    success: bool = True
    command_id: str
    status: str
