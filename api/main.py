"""FastAPI REST and WebSocket interface for the GlucoSensor telemetry stream.

Single-process, single-sensor lifecycle with thread-safe access to the
SensorController (serial link, reader thread, telemetry pipeline).

Error mapping:
- SerialIOError (incl. DeviceNotFound) → 503
- NotConnected → 409
- Other exceptions → 500
"""

import asyncio
import logging
import os
from threading import RLock
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.websockets import WebSocketState
from pydantic import BaseModel

from gluco_sensor_lib import SensorController, __version__
from gluco_sensor_lib.errors import NotConnected, SerialIOError
from gluco_sensor_lib.models import PipelineResult

# =============================================================================
# Environment Configuration
# =============================================================================

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "9160"))
DEFAULT_SERIAL_PORT = os.getenv("SERIAL_PORT") or None  # None → locate by DEVICE_NAME
DEFAULT_SERIAL_BAUD = int(os.getenv("SERIAL_BAUD", "115200"))
DEVICE_NAME = os.getenv("DEVICE_NAME", "GlucoSensor_ESP32")
STREAM_POLL_S = float(os.getenv("STREAM_POLL_S", "0.1"))
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000"
).split(",")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# =============================================================================
# Global Singletons
# =============================================================================

_controller: Optional[SensorController] = None
_lock = RLock()  # Protects connect/disconnect

# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="GlucoSense API",
    description="REST and WebSocket interface for the GlucoSensor ESP32 telemetry stream",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# Request/Response Models
# =============================================================================

class ResultResponse(BaseModel):
    """Response for GET /result."""
    perfusion_index: str
    feature_x1: str
    feature_x2: str
    complete: bool


class StatusResponse(BaseModel):
    """Response for GET /status."""
    connected: bool
    state: str
    calibration_remaining_s: float
    calibration_progress: float
    result: ResultResponse
    revision: int
    port: Optional[str]


class ConnectResponse(BaseModel):
    """Response for POST /connect."""
    status: str
    port: Optional[str]


class LogsResponse(BaseModel):
    """Response for GET /logs."""
    lines: List[str]
    latest_index: int


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(SerialIOError)
async def serial_io_error_handler(request, exc: SerialIOError):
    """Map SerialIOError to 503 Service Unavailable."""
    logger.error(f"SerialIOError: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(NotConnected)
async def not_connected_handler(request, exc: NotConnected):
    """Map NotConnected to 409 Conflict."""
    logger.error(f"NotConnected: {exc}")
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def _get_controller() -> SensorController:
    """Return the controller singleton, creating it on first use."""
    global _controller

    with _lock:
        if _controller is None:
            _controller = SensorController()
        return _controller


def _result_response(result: PipelineResult) -> ResultResponse:
    return ResultResponse(
        perfusion_index=result.perfusion_index,
        feature_x1=result.feature_x1,
        feature_x2=result.feature_x2,
        complete=result.is_complete,
    )


# =============================================================================
# Read-Only Endpoints (Low Latency)
# =============================================================================

@app.get("/status", response_model=StatusResponse)
async def get_status():
    """Get connection flag, sensor state, calibration countdown and result."""
    controller = _get_controller()
    snapshot = controller.snapshot()

    return StatusResponse(
        connected=snapshot.connected,
        state=snapshot.state.value,
        calibration_remaining_s=snapshot.calibration_remaining_s,
        calibration_progress=snapshot.calibration_progress,
        result=_result_response(snapshot.result),
        revision=snapshot.revision,
        port=controller.last_port,
    )


@app.get("/result", response_model=ResultResponse)
async def get_result():
    """Get the latest pipeline result (PI, feature X1, feature X2)."""
    return _result_response(_get_controller().result)


@app.get("/logs", response_model=LogsResponse)
async def get_logs(limit: int = Query(200, ge=1, le=200)):
    """Get the most recent raw lines (serial monitor view), oldest first."""
    lines = _get_controller().pipeline.log_lines()
    lines = lines[-limit:]
    return LogsResponse(lines=lines, latest_index=len(lines) - 1)


# =============================================================================
# Lifecycle Endpoints
# =============================================================================

@app.post("/connect", response_model=ConnectResponse)
async def connect(
    port: Optional[str] = Query(DEFAULT_SERIAL_PORT, description="Serial device (e.g., /dev/rfcomm0)"),
    baud: int = Query(DEFAULT_SERIAL_BAUD, description="Baud rate")
):
    """Open the sensor stream and start the reader thread.

    Raises:
        400: If already connected
        503: If the port cannot be opened or the device is not found
    """
    with _lock:
        controller = _get_controller()
        if controller.is_connected():
            raise HTTPException(
                status_code=400,
                detail="Already connected. Disconnect first."
            )

        logger.info(f"Connecting to {port or DEVICE_NAME} at {baud} baud...")
        controller.connect(port=port, baud=baud, device_name=DEVICE_NAME)

        return ConnectResponse(status="connected", port=controller.last_port)


@app.post("/disconnect")
async def disconnect():
    """Stop reading and close the port. Result values are kept."""
    with _lock:
        controller = _get_controller()
        controller.disconnect()
        return {"status": "disconnected"}


@app.post("/reconnect", response_model=ConnectResponse)
async def reconnect():
    """Reopen the last port used by /connect."""
    with _lock:
        controller = _get_controller()
        controller.reconnect()
        return ConnectResponse(status="connected", port=controller.last_port)


# =============================================================================
# WebSocket Streaming
# =============================================================================

@app.websocket("/stream")
async def websocket_stream(websocket: WebSocket):
    """WebSocket endpoint pushing sensor snapshots.

    Sends the current snapshot on connect, then every snapshot with a new
    revision. Message keys: state, calibration_remaining_s,
    calibration_progress, result, connected, revision.
    """
    await websocket.accept()
    logger.info(f"WebSocket client connected: {websocket.client}")

    controller = _get_controller()

    try:
        last_revision = None

        while True:
            snapshot = controller.snapshot()
            if snapshot.revision != last_revision:
                await websocket.send_json(snapshot.to_dict())
                last_revision = snapshot.revision

            # Doubles as the poll interval; client messages are ignored
            try:
                message = await asyncio.wait_for(websocket.receive(), timeout=STREAM_POLL_S)
            except asyncio.TimeoutError:
                continue
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected: {websocket.client}")
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
        if websocket.application_state == WebSocketState.CONNECTED:
            await websocket.close()


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "service": "GlucoSense API",
        "version": __version__,
        "status": "online"
    }


@app.get("/version")
async def version():
    """Version tracking endpoint."""
    return {
        "api": __version__,
        "device": DEVICE_NAME,
        "status": "online"
    }


# =============================================================================
# Startup/Shutdown Events
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Log startup configuration."""
    logger.info("=" * 60)
    logger.info("GlucoSense API started")
    logger.info(f"Version: {__version__}")
    logger.info(f"Host: {API_HOST}")
    logger.info(f"Port: {API_PORT}")
    logger.info(f"Default Serial Port: {DEFAULT_SERIAL_PORT or '(locate ' + DEVICE_NAME + ')'}")
    logger.info(f"Default Serial Baud: {DEFAULT_SERIAL_BAUD}")
    logger.info(f"CORS Origins: {CORS_ORIGINS}")
    logger.info(f"Log Level: {LOG_LEVEL}")
    logger.info("=" * 60)


@app.on_event("shutdown")
async def shutdown_event():
    """Close the sensor link on shutdown."""
    logger.info("Shutting down GlucoSense API...")

    if _controller and _controller.is_connected():
        logger.info("Disconnecting controller...")
        _controller.disconnect()

    logger.info("Shutdown complete")
