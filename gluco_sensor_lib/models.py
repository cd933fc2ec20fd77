"""Data models for the GlucoSensor telemetry library."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from gluco_sensor_lib import protocol


class SensorState(Enum):
    """What the physical sensor is currently doing."""

    IDLE = "idle"
    CALIBRATING = "calibrating"
    MEASURING = "measuring"
    NO_FINGER = "no_finger"
    RESULT_READY = "result_ready"


class EventKind(Enum):
    """Categories of telemetry line recognised by the classifier."""

    NO_FINGER = "no_finger"
    CALIBRATION_TICK = "calibration_tick"
    RESULT_HEADER = "result_header"
    PI_VALUE = "pi_value"
    X1_VALUE = "x1_value"
    X2_VALUE = "x2_value"


@dataclass(frozen=True)
class ClassifiedEvent:
    """A single classified telemetry line.

    Attributes:
        kind: Which category the line belongs to.
        value: Payload. Display text for PI/X1/X2, seconds remaining for an
               accepted calibration tick, None for a rejected tick and for
               events that carry no payload.
    """

    kind: EventKind
    value: Optional[Union[str, float]] = None


@dataclass(frozen=True)
class PipelineResult:
    """Latest values reported by the sensor's processing pipeline.

    Values are carried as the exact text printed by the firmware. Use
    dataclasses.replace() to derive an updated copy.
    """

    perfusion_index: str = protocol.UNKNOWN_VALUE
    feature_x1: str = protocol.UNKNOWN_VALUE
    feature_x2: str = protocol.UNKNOWN_VALUE

    @property
    def is_complete(self) -> bool:
        """True once every field has been reported at least once."""
        return protocol.UNKNOWN_VALUE not in (
            self.perfusion_index,
            self.feature_x1,
            self.feature_x2,
        )

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class LogEntry:
    """A raw telemetry line with its arrival sequence number."""

    seq: int
    line: str


@dataclass(frozen=True)
class SensorSnapshot:
    """Consistent, immutable view of the pipeline between two chunks.

    Attributes:
        state: Current sensor state.
        calibration_remaining_s: Last accepted calibration countdown value.
        result: Current pipeline result.
        connected: Whether a byte stream is currently attached.
        revision: Incremented on every observable mutation.
    """

    state: SensorState = SensorState.IDLE
    calibration_remaining_s: float = protocol.CALIBRATION_WINDOW_S
    result: PipelineResult = field(default_factory=PipelineResult)
    connected: bool = False
    revision: int = 0

    @property
    def calibration_progress(self) -> float:
        """Fraction of the calibration window elapsed, clamped to [0, 1]."""
        window = protocol.CALIBRATION_WINDOW_S
        progress = (window - self.calibration_remaining_s) / window
        return min(max(progress, 0.0), 1.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "calibration_remaining_s": self.calibration_remaining_s,
            "calibration_progress": self.calibration_progress,
            "result": self.result.to_dict(),
            "connected": self.connected,
            "revision": self.revision,
        }
