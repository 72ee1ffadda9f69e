from __future__ import annotations
import os

# Service mode: "sim" for the built in actuator simulator or "real" for the HTTP actuator gateway
MODE = os.getenv("SVC_MODE", "sim").lower()

PORT = int(os.getenv("PORT", "3001"))

# Store connection string. Only SQLite is supported; the "sqlite:///" prefix is optional.
# Relative paths resolve against the svc directory (parent of the package where this file lives)
_SVC_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/hydroponics.db")


def _db_file_from_url(url: str) -> str:
    path = url[len("sqlite:///"):] if url.startswith("sqlite:///") else url
    if os.path.isabs(path):
        return path
    return os.path.join(_SVC_DIR, path)


DB_FILE = _db_file_from_url(DATABASE_URL)

# Comma separated origins allowed for both HTTP and the websocket channel
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()] or ["*"]

# Actuator gateway (for real mode), e.g. the ESP32 relay board
ACTUATOR_URL = os.getenv("ACTUATOR_URL", "http://localhost:8080/api/actuators")
ACTUATOR_TIMEOUT_S = float(os.getenv("ACTUATOR_TIMEOUT_S", "2.0"))

# Mock sensor feed, off unless explicitly enabled
MOCK_SENSORS = os.getenv("MOCK_SENSORS", "false").lower() in ("1", "true", "yes", "on")
MOCK_INTERVAL_S = float(os.getenv("MOCK_INTERVAL_S", "5.0"))

# Per-viewer send deadline; a viewer that cannot take a frame within it is dropped
BROADCAST_SEND_TIMEOUT_S = float(os.getenv("BROADCAST_SEND_TIMEOUT_S", "1.0"))

# Sim-mode actuator keeps this many recent commands
SIM_LOG_SIZE = int(os.getenv("SIM_LOG_SIZE", "500"))

HISTORY_DEFAULT_HOURS = 24

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
