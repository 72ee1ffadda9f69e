from __future__ import annotations
import logging
import math
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional
import pydantic
from fastapi.concurrency import run_in_threadpool
from .adapter import ActuatorClient, RealAdapter
from .broadcast import CONTROL_UPDATE, SENSOR_UPDATE, ViewerRegistry
from .config import HISTORY_DEFAULT_HOURS, MODE
from .errors import ValidationError
from .models import (
    FALLBACK_READING, ControlCommand, ControlValue, LatestReading, SensorReading,
    SensorReadingIn, utcnow,
)
from .simulator import Simulator
from .state import fetch_latest_reading, fetch_readings_since, insert_reading

logger = logging.getLogger(__name__)


def _first_error(exc: pydantic.ValidationError) -> ValidationError:
    err = exc.errors()[0]
    loc = err.get("loc") or ()
    field = str(loc[0]) if loc else None
    msg = err.get("msg", "invalid value")
    return ValidationError(f"{field}: {msg}" if field else msg, field=field)


def parse_hours(raw: Any, default: int = HISTORY_DEFAULT_HOURS) -> float:
    """History window in hours. Missing, non-numeric, non-finite, zero or negative values give the default."""
    if raw is None or isinstance(raw, bool):
        return default
    try:
        hours = float(raw)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(hours) or hours <= 0:
        return default
    return hours


def validate_reading(payload: Any) -> SensorReadingIn:
    if not isinstance(payload, Mapping):
        raise ValidationError("payload must be a JSON object")
    try:
        return SensorReadingIn.model_validate(dict(payload))
    except pydantic.ValidationError as e:
        raise _first_error(e) from e


def reading_payload(reading: SensorReading) -> Dict[str, Any]:
    """JSON form of a reading as sent to viewers and HTTP clients."""
    return reading.model_dump(mode="json", exclude_none=True)


def fallback_reading() -> SensorReading:
    return SensorReading(timestamp=utcnow(), **FALLBACK_READING)


class SensorService:
    """Ingest and query of sensor readings, publishing each stored reading to viewers."""

    def __init__(self, registry: ViewerRegistry) -> None:
        self.registry = registry

    # read
    async def get_latest(self) -> LatestReading:
        reading = await run_in_threadpool(fetch_latest_reading)
        if reading is None:
            return LatestReading(reading=fallback_reading(), is_fallback=True)
        return LatestReading(reading=reading)

    async def get_history(self, hours: Any = None) -> List[SensorReading]:
        since = utcnow() - timedelta(hours=parse_hours(hours))
        return await run_in_threadpool(fetch_readings_since, since)

    # write
    async def ingest(self, payload: Any) -> SensorReading:
        data = validate_reading(payload)
        stored = await run_in_threadpool(
            insert_reading,
            data.temperature,
            data.ph,
            data.ec,
            data.waterLevel,
            data.timestamp or utcnow(),
        )
        # publish only after the write succeeded
        await self.registry.publish(SENSOR_UPDATE, reading_payload(stored))
        return stored


class ControlService:
    """Relays operator commands to the actuators and echoes them to every viewer."""

    def __init__(self, registry: ViewerRegistry, backend: Optional[ActuatorClient] = None) -> None:
        self.registry = registry
        self.mode = MODE
        if backend is not None:
            self.backend = backend
        elif self.mode == "real":
            self.backend = RealAdapter()
        else:
            self.backend = Simulator()

    async def relay(self, action: str, value: ControlValue) -> ControlCommand:
        try:
            command = ControlCommand(action=action, value=value)
        except pydantic.ValidationError as e:
            raise _first_error(e) from e

        try:
            await run_in_threadpool(self.backend.send_command, command.action, command.value)
        except Exception as e:
            logger.error(f"Actuator failed for {command.action} → {command.value}: {e}")

        await self.registry.publish(CONTROL_UPDATE, command.model_dump(mode="json"))
        return command

