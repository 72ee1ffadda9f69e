from __future__ import annotations
import logging
import threading
from typing import Protocol
import requests
from .config import ACTUATOR_URL, ACTUATOR_TIMEOUT_S
from .models import ControlValue

logger = logging.getLogger(__name__)


class ActuatorClient(Protocol):
    """
    External actuator collaborator.

    Receives (action, value) pairs. Delivery is fire-and-forget: no
    acknowledgement is modelled and implementations must not raise for
    device-side failures.
    """

    def send_command(self, action: str, value: ControlValue) -> None:
        ...


class RealAdapter:
    """
    Forwards control commands to an HTTP actuator gateway (e.g. the ESP32 relay board).

    Each command is POSTed as {"value": ...} to {ACTUATOR_URL}/{action}. The
    response is only logged; the relay never waits on actuator state.
    """

    def __init__(self, base_url: str = ACTUATOR_URL, timeout: float = ACTUATOR_TIMEOUT_S) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json"}
        # relay calls arrive on threadpool workers and requests.Session is not
        # documented as thread-safe: posts go through the lock one at a time
        self._session = requests.Session()
        self._lock = threading.Lock()
        logger.info(f"RealAdapter initialized for gateway {self.base_url}")

    def close(self) -> None:
        with self._lock:
            self._session.close()

    def send_command(self, action: str, value: ControlValue) -> None:
        url = f"{self.base_url}/{action}"
        try:
            with self._lock:
                response = self._session.post(
                    url, headers=self.headers, json={"value": value}, timeout=self.timeout
                )
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error sending {action} → {value}: {e}")
            return

        if response.ok:
            logger.info(f"Actuator accepted {action} → {value}")
        else:
            logger.error(
                f"Actuator gateway error for {action}: {response.status_code} - {response.text}"
            )

