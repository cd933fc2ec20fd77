"""
gluco_sensor_lib - Line parser and state machine for the GlucoSensor ESP32 telemetry stream.

Turns the raw Bluetooth SPP byte stream into a sensor state
(idle/calibrating/measuring/no-finger/result-ready) and the latest
pipeline result (perfusion index, feature X1, feature X2).
"""

from gluco_sensor_lib.controller import SensorController
from gluco_sensor_lib.errors import (
    DeviceNotFound,
    GlucoSensorError,
    NotConnected,
    SerialIOError,
)
from gluco_sensor_lib.models import (
    ClassifiedEvent,
    EventKind,
    LogEntry,
    PipelineResult,
    SensorSnapshot,
    SensorState,
)
from gluco_sensor_lib.parsing import classify
from gluco_sensor_lib.pipeline import TelemetryPipeline

__version__ = "0.1.0"

__all__ = [
    "SensorController",
    "TelemetryPipeline",
    "classify",
    "ClassifiedEvent",
    "EventKind",
    "LogEntry",
    "PipelineResult",
    "SensorSnapshot",
    "SensorState",
    "GlucoSensorError",
    "SerialIOError",
    "DeviceNotFound",
    "NotConnected",
]
