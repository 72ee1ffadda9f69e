# hydro/sensors/mock_client.py
"""
Simulated hydroponics sensor node.

Produces readings jittered around typical set points (24.5 °C, pH 6.2,
EC 1.8 mS/cm, 85 % reservoir) so the dashboard has live data without hardware.
"""
from __future__ import annotations
import logging
import random
from typing import Iterable, Optional

from .interface import SensorClient, SensorSample

logger = logging.getLogger(__name__)

_BASE_TEMPERATURE = 24.5
_BASE_PH = 6.2
_BASE_EC = 1.8
_BASE_WATER_LEVEL = 85.0
_MIN_WATER_LEVEL = 15.0


def _jitter(rng: random.Random, base: float, spread: float) -> float:
    return base + (rng.random() * 2 - 1) * spread


class MockHydroponicsClient(SensorClient):
    def __init__(self, device_id: str = "mock-1", seed: Optional[int] = None) -> None:
        self.id = device_id
        self._rng = random.Random(seed)
        logger.info("MockHydroponicsClient device_id=%s", device_id)

    def poll(self) -> Iterable[SensorSample]:
        level = _jitter(self._rng, _BASE_WATER_LEVEL, 5.0)
        yield SensorSample(
            temperature=round(_jitter(self._rng, _BASE_TEMPERATURE, 1.0), 2),
            ph=round(_jitter(self._rng, _BASE_PH, 0.2), 2),
            ec=round(_jitter(self._rng, _BASE_EC, 0.2), 2),
            waterLevel=round(max(_MIN_WATER_LEVEL, min(100.0, level)), 1),
        )
