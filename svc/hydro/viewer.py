"""
Viewer side of the dashboard.

ViewerState holds what a dashboard shows: the current reading, a short trend of
recent readings and the last known value of each actuator toggle. It is fed by
events from the /ws channel. DashboardClient wraps the HTTP API and the
websocket subscription around a ViewerState.
"""
from __future__ import annotations
import json
import logging
import os
from collections import deque
from typing import Any, Deque, Dict, Mapping, Optional, Set
import requests
from websockets.sync.client import connect
from .broadcast import CONTROL_UPDATE, SENSOR_UPDATE
from .models import ControlValue

logger = logging.getLogger(__name__)

TREND_CAPACITY = 20
DEFAULT_CONTROLS: Dict[str, ControlValue] = {"pump": False, "lights": True, "dose": False}


class ViewerState:
    def __init__(self, capacity: int = TREND_CAPACITY, controls: Optional[Mapping[str, ControlValue]] = None) -> None:
        self.current: Optional[Dict[str, Any]] = None
        self.trend: Deque[Dict[str, Any]] = deque(maxlen=capacity)
        self.controls: Dict[str, ControlValue] = dict(DEFAULT_CONTROLS if controls is None else controls)
        # actions toggled locally and not yet echoed back by a controlUpdate
        self.pending: Set[str] = set()

    def apply_event(self, message: Mapping[str, Any]) -> Optional[str]:
        """Apply one {"event", "data"} frame. Returns the event name, or None if it was ignored."""
        event = message.get("event")
        data = message.get("data")
        if not isinstance(data, Mapping):
            return None
        if event == SENSOR_UPDATE:
            self.on_sensor_update(data)
        elif event == CONTROL_UPDATE:
            self.on_control_update(data)
        else:
            logger.debug(f"Ignoring unknown event {event!r}")
            return None
        return event

    def on_sensor_update(self, data: Mapping[str, Any]) -> None:
        self.current = dict(data)
        self.trend.append(
            {
                "timestamp": data.get("timestamp"),
                "temperature": data.get("temperature"),
                "ph": data.get("ph"),
                "ec": data.get("ec"),
            }
        )

    def on_control_update(self, data: Mapping[str, Any]) -> None:
        action = data.get("action")
        if not isinstance(action, str):
            return
        self.controls[action] = data.get("value")
        self.pending.discard(action)

    def toggle(self, action: str, value: ControlValue) -> None:
        """Optimistic local update, reconciled by the next controlUpdate for the action."""
        self.controls[action] = value
        self.pending.add(action)


def _ws_url(base_url: str) -> str:
    if base_url.startswith("https://"):
        return "wss://" + base_url[len("https://"):] + "/ws"
    if base_url.startswith("http://"):
        return "ws://" + base_url[len("http://"):] + "/ws"
    return base_url + "/ws"


class DashboardClient:
    """HTTP + websocket client for the hydroponics service."""

    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        state: Optional[ViewerState] = None,
        session: Optional[Any] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.state = state or ViewerState()
        self.timeout = timeout
        # anything with a requests-style get/post works, e.g. a test client
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def latest(self) -> Dict[str, Any]:
        response = self._session.get(f"{self.base_url}/api/sensors/latest", timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def history(self, hours: int = 24) -> list:
        response = self._session.get(
            f"{self.base_url}/api/sensors/history", params={"hours": hours}, timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()

    def post_reading(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        response = self._session.post(f"{self.base_url}/api/sensors", json=dict(payload), timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def send_control(self, action: str, value: ControlValue) -> Optional[Dict[str, Any]]:
        """
        Toggle an actuator. The local state changes before the request is sent;
        a failed request is logged and left for the next broadcast to correct.
        """
        self.state.toggle(action, value)
        try:
            response = self._session.post(
                f"{self.base_url}/api/controls/{action}", json={"value": value}, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to update control {action}: {e}")
            return None
        return response.json()

    def listen(self, max_events: Optional[int] = None) -> int:
        """
        Subscribe to the real-time channel and feed events into the state.

        Blocks until the server closes the connection or max_events events were applied.
        """
        applied = 0
        with connect(_ws_url(self.base_url)) as ws:
            for raw in ws:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Dropping non-JSON frame from server")
                    continue
                if self.state.apply_event(message) is None:
                    continue
                applied += 1
                if max_events is not None and applied >= max_events:
                    break
        return applied


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(name)s: %(message)s')
    client = DashboardClient(os.getenv("VIEWER_BASE_URL", "http://localhost:3001"))
    try:
        client.listen()
    except KeyboardInterrupt:
        pass
    finally:
        client.close()
