from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr, field_validator

# Actuator values are a tagged union; interpretation is up to the actuator
ControlValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr]

FALLBACK_READING = {"temperature": 24.5, "ph": 6.2, "ec": 1.8, "waterLevel": 85.0}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SensorReadingIn(BaseModel):
    """Payload posted by a sensor node."""
    model_config = ConfigDict(extra="ignore")

    temperature: float = Field(allow_inf_nan=False, description="Water temperature in °C")
    ph: float = Field(allow_inf_nan=False, description="pH")
    ec: float = Field(allow_inf_nan=False, description="Electrical conductivity in mS/cm")
    waterLevel: float = Field(ge=0, le=100, allow_inf_nan=False, description="Reservoir level in percent (0-100)")
    timestamp: Optional[datetime] = Field(default=None, description="Measurement time, defaults to ingest time")

    @field_validator("temperature", "ph", "ec", "waterLevel", mode="before")
    @classmethod
    def _reject_bool(cls, v):
        if isinstance(v, bool):
            raise ValueError("must be a number")
        return v

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else None


class SensorReading(BaseModel):
    """A stored reading. Fallback readings carry no id."""
    id: Optional[int] = Field(default=None, description="Store assigned row id")
    temperature: float
    ph: float
    ec: float
    waterLevel: float
    timestamp: datetime


class LatestReading(BaseModel):
    reading: SensorReading
    is_fallback: bool = Field(default=False, description="True when the store is empty and the default reading was returned")


class ControlRequest(BaseModel):
    """Body of POST /api/controls/{action}."""
    value: ControlValue = Field(description="Actuator value: boolean, number or string")


class ControlCommand(BaseModel):
    """A relayed actuator command, broadcast as controlUpdate."""
    action: str
    value: ControlValue
    timestamp: datetime = Field(default_factory=utcnow)


class ControlResponse(BaseModel):
    success: bool = True
    action: str
    value: ControlValue


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(description="Service status (always 'ok' if service is running)")
    mode: str = Field(description="Current actuator mode: 'sim' (simulator) or 'real' (HTTP gateway)")


class ErrorResponse(BaseModel):
    """Standard error response format."""
    error: str = Field(description="Error message describing what went wrong")
