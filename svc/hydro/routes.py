from __future__ import annotations
import logging
from typing import Any, List, Optional
from fastapi import APIRouter, Body, Depends, Query, Request, Response, WebSocket, status
from .broadcast import SENSOR_UPDATE, ViewerRegistry, safe_close
from .config import CORS_ORIGINS
from .errors import StoreError
from .models import ControlRequest, ControlResponse, ErrorResponse, HealthResponse, SensorReading
from .service import ControlService, SensorService, reading_payload

logger = logging.getLogger(__name__)

router = APIRouter()


def get_sensor_service(request: Request) -> SensorService:
    return request.app.state.sensors


def get_control_service(request: Request) -> ControlService:
    return request.app.state.controls


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns service health status and current actuator mode (sim or real)",
    tags=["Health"]
)
def health(service: ControlService = Depends(get_control_service)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", mode=service.mode)


@router.get(
    "/api/sensors/latest",
    response_model=SensorReading,
    response_model_exclude_none=True,
    summary="Latest reading",
    description=(
        "Returns the most recent reading. When nothing has been stored yet a default reading is "
        "returned and the X-Reading-Fallback header is 'true'."
    ),
    responses={500: {"model": ErrorResponse, "description": "Reading store failure"}},
    tags=["Sensors"]
)
async def get_latest(
    response: Response, service: SensorService = Depends(get_sensor_service)
) -> SensorReading:
    latest = await service.get_latest()
    response.headers["X-Reading-Fallback"] = "true" if latest.is_fallback else "false"
    return latest.reading


@router.get(
    "/api/sensors/history",
    response_model=List[SensorReading],
    summary="Reading history",
    description="Readings from the last `hours` hours, oldest first. Invalid or non-positive values use 24.",
    responses={500: {"model": ErrorResponse, "description": "Reading store failure"}},
    tags=["Sensors"]
)
async def get_history(
    hours: Optional[str] = Query(default=None, description="Window size in hours (default 24)"),
    service: SensorService = Depends(get_sensor_service),
) -> List[SensorReading]:
    return await service.get_history(hours)


@router.post(
    "/api/sensors",
    response_model=SensorReading,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest a reading",
    description="Validate and store a reading, then push it to every connected viewer.",
    responses={
        201: {"description": "Reading stored"},
        400: {"model": ErrorResponse, "description": "Invalid reading"},
        500: {"model": ErrorResponse, "description": "Reading store failure"}
    },
    tags=["Sensors"]
)
async def ingest_reading(
    payload: Any = Body(..., description="temperature, ph, ec, waterLevel and optional timestamp"),
    service: SensorService = Depends(get_sensor_service),
) -> SensorReading:
    return await service.ingest(payload)


@router.post(
    "/api/controls/{action}",
    response_model=ControlResponse,
    summary="Send an actuator command",
    description="Forward {value} to the actuator named by `action` and echo it to every viewer.",
    responses={400: {"model": ErrorResponse, "description": "Malformed body or missing value"}},
    tags=["Controls"]
)
async def relay_control(
    action: str,
    body: ControlRequest,
    service: ControlService = Depends(get_control_service),
) -> ControlResponse:
    command = await service.relay(action, body.value)
    return ControlResponse(success=True, action=command.action, value=command.value)


def _origin_allowed(websocket: WebSocket) -> bool:
    if "*" in CORS_ORIGINS:
        return True
    origin = websocket.headers.get("origin")
    # non-browser clients send no Origin
    return origin is None or origin in CORS_ORIGINS


@router.websocket("/ws")
async def viewer_socket(websocket: WebSocket) -> None:
    """
    Real-time channel. The viewer first gets the current latest reading, then every
    sensorUpdate and controlUpdate published while it stays connected.
    """
    registry: ViewerRegistry = websocket.app.state.registry
    sensors: SensorService = websocket.app.state.sensors

    if not _origin_allowed(websocket):
        # closing before accept refuses the handshake (HTTP 403)
        logger.warning(f"Rejected websocket from origin {websocket.headers.get('origin')}")
        await safe_close(websocket, code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    client = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "unknown"
    logger.info(f"Client connected {client}")

    # held from here on: anything published while the snapshot loads is buffered
    registry.hold(websocket)
    try:
        snapshot_id = None
        try:
            latest = await sensors.get_latest()
        except StoreError as e:
            logger.error(f"Could not load latest reading for new viewer: {e}")
        else:
            snapshot_id = latest.reading.id
            if not await registry.send(websocket, SENSOR_UPDATE, reading_payload(latest.reading)):
                return

        if not await registry.release(websocket, skip_reading_id=snapshot_id):
            return

        while True:
            # client frames are not consumed; only watch for disconnect
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        registry.unregister(websocket)
        logger.info(f"Client disconnected {client}")
