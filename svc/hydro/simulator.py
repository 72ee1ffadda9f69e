from __future__ import annotations
import logging
import time
from collections import deque
from typing import Deque, Dict, Tuple
from .config import SIM_LOG_SIZE
from .models import ControlValue

logger = logging.getLogger(__name__)


class Simulator:
    """
    Actuator stand-in used in sim mode.

    Logs each command and remembers the last value per action so the state can
    be inspected from a shell or a test. Only the most recent log_size commands
    are kept.
    """

    def __init__(self, log_size: int = SIM_LOG_SIZE) -> None:
        self.states: Dict[str, ControlValue] = {}
        # (ts, action, value) in arrival order
        self.log: Deque[Tuple[float, str, ControlValue]] = deque(maxlen=log_size)

    def send_command(self, action: str, value: ControlValue) -> None:
        logger.info(f"Control: {action} → {value}")
        self.states[action] = value
        self.log.append((time.time(), action, value))
