"""
Real-time fan-out of sensor and control events to connected viewers.

Every connected websocket is registered with a ViewerRegistry. Publishing sends
one JSON frame to each registered viewer, in publish order, at most once. There
is no acknowledgement, retry or replay: a viewer whose send fails or misses its
deadline is dropped and simply misses later events.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, List, Optional
from fastapi import WebSocket, status
from .config import BROADCAST_SEND_TIMEOUT_S

logger = logging.getLogger(__name__)

SENSOR_UPDATE = "sensorUpdate"
CONTROL_UPDATE = "controlUpdate"


def make_event(event: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {"event": event, "data": data}


async def safe_send_json(websocket: WebSocket, data: Any) -> bool:
    """Send JSON, returning False instead of raising when the connection is gone."""
    try:
        await websocket.send_json(data)
        return True
    except RuntimeError as e:
        # Starlette raises RuntimeError once a close message has gone out
        logger.debug(f"Send on closed websocket: {e}")
        return False
    except Exception as e:
        logger.warning(f"Error sending to viewer: {e}")
        return False


async def safe_close(websocket: WebSocket, code: int = status.WS_1000_NORMAL_CLOSURE) -> bool:
    try:
        await websocket.close(code=code)
        return True
    except Exception as e:
        logger.debug(f"Error closing websocket (likely already closed): {e}")
        return False


class ViewerRegistry:
    """
    Set of currently connected viewers.

    A viewer can be held while its initial snapshot is prepared: events published
    in that window are buffered for it and flushed by release(), so nothing
    published after it connected is lost. Only touched from the event loop, so no
    locking is needed.
    """

    def __init__(self, send_timeout: float = BROADCAST_SEND_TIMEOUT_S) -> None:
        self.send_timeout = send_timeout
        self._viewers: List[WebSocket] = []
        self._held: Dict[WebSocket, List[Dict[str, Any]]] = {}

    def __len__(self) -> int:
        return len(self._viewers) + len(self._held)

    def register(self, websocket: WebSocket) -> None:
        if websocket not in self._viewers:
            self._viewers.append(websocket)
        logger.info(f"Viewer connected, total: {len(self)}")

    def hold(self, websocket: WebSocket) -> None:
        """Register a viewer whose events are buffered until release()."""
        if websocket not in self._viewers:
            self._held.setdefault(websocket, [])

    async def release(self, websocket: WebSocket, skip_reading_id: Optional[int] = None) -> bool:
        """
        Flush a held viewer's buffer in publish order and make it a live viewer.

        A buffered sensorUpdate for skip_reading_id is dropped, since the snapshot
        already carried it. Returns False if the viewer was dropped.
        """
        buffered = self._held.get(websocket)
        if buffered is None:
            return False
        while buffered:
            message = buffered.pop(0)
            if (
                skip_reading_id is not None
                and message["event"] == SENSOR_UPDATE
                and message["data"].get("id") == skip_reading_id
            ):
                continue
            if not await self._deliver(websocket, message):
                self.unregister(websocket)
                return False
        # no await between the empty check and the move, so no publish slips in
        del self._held[websocket]
        self.register(websocket)
        return True

    def unregister(self, websocket: WebSocket) -> None:
        if self._held.pop(websocket, None) is not None:
            return
        try:
            self._viewers.remove(websocket)
        except ValueError:
            return  # already removed after a failed send
        logger.info(f"Viewer disconnected, remaining: {len(self)}")

    async def send(self, websocket: WebSocket, event: str, data: Dict[str, Any]) -> bool:
        """Deliver one event to a single viewer."""
        return await self._deliver(websocket, make_event(event, data))

    async def _deliver(self, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        try:
            return await asyncio.wait_for(safe_send_json(websocket, message), self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Viewer did not take a frame within {self.send_timeout}s")
            return False

    async def _close(self, websocket: WebSocket) -> None:
        try:
            await asyncio.wait_for(
                safe_close(websocket, code=status.WS_1011_INTERNAL_ERROR), self.send_timeout
            )
        except asyncio.TimeoutError:
            logger.debug("Timed out closing a dropped viewer")

    async def publish(self, event: str, data: Dict[str, Any]) -> int:
        """
        Deliver an event to every viewer connected right now.

        Live viewers are sent to concurrently, each with its own deadline, so a
        slow viewer only loses its own events. Returns the number of viewers the
        event was handed to.
        """
        message = make_event(event, data)
        for buffered in self._held.values():
            buffered.append(message)
        held = len(self._held)

        viewers = list(self._viewers)
        results = await asyncio.gather(*(self._deliver(ws, message) for ws in viewers))
        dropped = [ws for ws, ok in zip(viewers, results) if not ok]
        for websocket in dropped:
            self.unregister(websocket)
        if dropped:
            await asyncio.gather(*(self._close(ws) for ws in dropped))
        delivered = sum(results) + held
        logger.debug(f"Published {event} to {delivered} viewer(s)")
        return delivered
