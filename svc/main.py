from __future__ import annotations
from dotenv import load_dotenv
load_dotenv()  # Load .env file before importing app modules

import time
import logging
import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from hydro.adapter import ActuatorClient
from hydro.broadcast import ViewerRegistry
from hydro.config import CORS_ORIGINS, DB_FILE, LOG_LEVEL, MOCK_INTERVAL_S, MOCK_SENSORS, PORT
from hydro.errors import StoreError, ValidationError
from hydro.routes import router
from hydro.sensors.manager import start_sensor_feed, stop_sensor_feeds
from hydro.service import ControlService, SensorService
from hydro.state import initialize_database

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(levelname)s: %(name)s: %(message)s'
)
logging.getLogger("hydro").setLevel(LOG_LEVEL)

logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log request and response information."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        client_ip = request.client.host if request.client else "unknown"

        if request.method == "OPTIONS":
            # CORS preflight, handled by CORSMiddleware
            logger.debug(f"OPTIONS request: {request.url.path} from {client_ip}")
            return await call_next(request)

        body = None
        if request.method == "POST":
            try:
                body_bytes = await request.body()
                if body_bytes:
                    body = json.loads(body_bytes)
            except ValueError:
                body = "<non-json body>"

        query_params = dict(request.query_params) if request.query_params else None
        logger.info(
            f"Request: {request.method} {request.url.path} | "
            f"IP: {client_ip} | "
            f"Query: {query_params} | "
            f"Body: {body if body else 'N/A'}"
        )

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(
            f"Response: {request.method} {request.url.path} | "
            f"Status: {response.status_code} | "
            f"Time: {process_time:.3f}s"
        )

        return response


def _request_error_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid request"
    err = errors[0]
    loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
    msg = err.get("msg", "invalid request")
    return f"{'.'.join(loc)}: {msg}" if loc else msg


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # A store that cannot be opened is fatal: the error propagates and startup aborts
    initialize_database()
    logger.info(f"Reading store ready at {DB_FILE}")
    if MOCK_SENSORS:
        logger.warning("Mock sensor data enabled (dev only)")
        start_sensor_feed(app.state.sensors, interval_s=MOCK_INTERVAL_S)
    try:
        yield
    finally:
        await stop_sensor_feeds()
        close = getattr(app.state.controls.backend, "close", None)
        if close:
            close()


def create_app(backend: Optional[ActuatorClient] = None) -> FastAPI:
    app = FastAPI(title="Hydroponics Control Service", version="0.1.0", lifespan=lifespan)

    registry = ViewerRegistry()
    app.state.registry = registry
    app.state.sensors = SensorService(registry)
    app.state.controls = ControlService(registry, backend=backend)

    # Request logging middleware (add first so it wraps everything)
    app.add_middleware(LoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Reading-Fallback"],
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.info(f"Rejected {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": _request_error_message(exc)})

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    app.include_router(router)
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=PORT, reload=True)
