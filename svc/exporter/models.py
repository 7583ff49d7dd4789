from __future__ import annotations
from datetime import datetime
from typing import Dict, List
from pydantic import BaseModel, Field, confloat

RelativeHumidity = confloat(ge=0.0, le=1.0, allow_inf_nan=False)
# Measurement range of the AHT20
Temperature = confloat(ge=-50.0, le=150.0, allow_inf_nan=False)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(description="Service status (always 'ok' if service is running)")
    sensors: List[str] = Field(default_factory=list, description="Sensors enabled in this process")


class SensorInfo(BaseModel):
    id: str = Field(description="Sensor identifier (aht20, pms5003, sgp30)")
    kind: str = Field(description="Driver kind")
    bus: str = Field(description="Bus the sensor is attached to")
    connected: bool = Field(description="Whether a connect cycle is currently running")
    connect_attempts: int = Field(description="Number of times the bus has been opened")


class SensorReadingResponse(BaseModel):
    sensor_id: str
    metric: str
    value: float
    ts: float
    labels: Dict[str, str] = Field(default_factory=dict)


class HumidityCommand(BaseModel):
    """Ambient conditions used for the gas sensor's humidity compensation."""
    temperature: Temperature = Field(description="Temperature in degrees Celsius (-50 to 150)")
    relative_humidity: RelativeHumidity = Field(description="Relative humidity as a fraction (0-1)")


class CommandResult(BaseModel):
    ok: bool = Field(description="Whether the command was queued")
    message: str = Field(default="", description="Status message describing the result")


class StoredBaseline(BaseModel):
    """Gas sensor baseline as persisted to the baseline file."""
    serial: List[int] = Field(min_length=3, max_length=3, description="Sensor serial as three 16-bit words")
    sensor_readings_not_valid_before: datetime
    baseline_invalid_after: datetime
    total_voc: int = Field(description="tVOC baseline")
    equivalent_co2: int = Field(description="eCO2 baseline")


class ErrorResponse(BaseModel):
    """Standard error response format."""
    detail: str = Field(description="Error message describing what went wrong")
