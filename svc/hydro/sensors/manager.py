# hydro/sensors/manager.py
from __future__ import annotations
import asyncio
import logging
from typing import List, Optional

from .interface import SensorClient
from .mock_client import MockHydroponicsClient
from hydro.config import MOCK_INTERVAL_S
from hydro.errors import StoreError, ValidationError
from hydro.service import SensorService

logger = logging.getLogger(__name__)

_tasks: List[asyncio.Task] = []


async def _feed_loop(client: SensorClient, service: SensorService, interval_s: float) -> None:
    logger.info(f"Sensor feed started for {client.id} with interval {interval_s}s")
    while True:
        try:
            for sample in client.poll():
                try:
                    await service.ingest(sample.as_payload())
                except (StoreError, ValidationError) as e:
                    logger.error(f"Mock data error from {client.id}: {e}")
        except Exception:
            # logged, polling continues
            logger.exception(f"Sensor feed error from {client.id}")
        await asyncio.sleep(interval_s)


def start_sensor_feed(
    service: SensorService,
    interval_s: float = MOCK_INTERVAL_S,
    client: Optional[SensorClient] = None,
) -> asyncio.Task:
    """
    Called from the app lifespan when the mock feed is enabled.
    Readings go through SensorService.ingest, so they are stored and broadcast.
    """
    client = client or MockHydroponicsClient()
    task = asyncio.create_task(_feed_loop(client, service, interval_s))
    _tasks.append(task)
    return task


async def stop_sensor_feeds() -> None:
    """Called on shutdown to cancel feed tasks cleanly."""
    while _tasks:
        task = _tasks.pop()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    logger.info("Sensor feeds stopped")
