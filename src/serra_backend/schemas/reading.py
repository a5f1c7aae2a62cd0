"""
Pydantic schemas for reading ingestion.
"""
from typing import List, Optional
from pydantic import BaseModel, Field


class ReadingItem(BaseModel):
    sensor_id: str = Field(description="Sensor id assigned by the device", max_length=64)
    sensor_type: str = Field(max_length=50)
    value: float
    unit: Optional[str] = Field(None, max_length=20)


class ReadingsRequest(BaseModel):
    """Reading batch; unknown sensors are registered on the fly."""
    readings: List[ReadingItem] = Field(min_length=1)


class ReadingsResponse(BaseModel):
    success: bool = True
    inserted: int = Field(ge=0)
