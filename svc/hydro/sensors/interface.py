# hydro/sensors/interface.py
from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, Protocol


@dataclass
class SensorSample:
    temperature: float  # °C
    ph: float
    ec: float           # mS/cm
    waterLevel: float   # percent

    def as_payload(self) -> Dict[str, float]:
        return asdict(self)


class SensorClient(Protocol):
    """
    Minimal interface for an in-process sensor source.

    Readings from real nodes arrive over POST /api/sensors; a SensorClient is
    only used for sources that live inside the service, such as the mock feed.
    """

    id: str

    def poll(self) -> Iterable[SensorSample]:
        """Sample the source once and return zero or more samples."""
        ...
