"""Pure functions for classifying telemetry lines and extracting values."""

import logging
import math
import re
from typing import Optional

from gluco_sensor_lib import protocol
from gluco_sensor_lib.models import ClassifiedEvent, EventKind

logger = logging.getLogger(__name__)

# ASCII decimal or exponent notation, plus the NaN and Infinity spellings.
# Underscores and non-ASCII digits do not match.
_SECONDS_RE = re.compile(
    r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|NaN|[+-]?Infinity",
    re.ASCII,
)


def parse_calibration_seconds(text: str) -> float:
    """Parse the countdown number from a calibration line fragment.

    Args:
        text: Text between "Calibration:" and "s left", untrimmed

    Returns:
        Parsed seconds, or 0.0 if the text is not a number
    """
    text = text.strip()
    if not _SECONDS_RE.fullmatch(text):
        return 0.0
    return float(text)


def is_valid_calibration(seconds: float) -> bool:
    """Check a countdown value against the firmware underflow pattern.

    Example garbage: "Calibration: 4294967s left" after the counter wraps.
    """
    return math.isfinite(seconds) and seconds < protocol.CALIBRATION_MAX_S


def extract_value(line: str) -> str:
    """Return the payload after the first ':' of a value line, trimmed.

    A line without a separator is returned whole (trimmed).
    """
    _, sep, tail = line.partition(protocol.VALUE_SEPARATOR)
    return (tail if sep else line).strip()


def _calibration_event(line: str) -> ClassifiedEvent:
    after = line.split(protocol.MARKER_CALIBRATION, 1)[1]
    fragment = after.split(protocol.MARKER_CALIBRATION_SUFFIX, 1)[0]
    seconds = parse_calibration_seconds(fragment)

    if not is_valid_calibration(seconds):
        logger.warning(f"Discarding corrupt calibration reading: {line!r}")
        return ClassifiedEvent(EventKind.CALIBRATION_TICK, None)

    return ClassifiedEvent(EventKind.CALIBRATION_TICK, seconds)


def classify(line: str) -> Optional[ClassifiedEvent]:
    """Classify one telemetry line.

    Markers are tested as substrings in fixed priority order and the first
    match wins:

        NO FINGER > Calibration: > PIPELINE RESULT > Perfusion Index (PI):
        > FEATURE X1 > FEATURE X2

    Args:
        line: Complete line with terminator stripped

    Returns:
        ClassifiedEvent, or None when the line matches no marker. Never raises.
    """
    if protocol.MARKER_NO_FINGER in line:
        return ClassifiedEvent(EventKind.NO_FINGER)

    if protocol.MARKER_CALIBRATION in line:
        return _calibration_event(line)

    if protocol.MARKER_RESULT_HEADER in line:
        return ClassifiedEvent(EventKind.RESULT_HEADER)

    if protocol.MARKER_PERFUSION_INDEX in line:
        return ClassifiedEvent(EventKind.PI_VALUE, extract_value(line))

    if protocol.MARKER_FEATURE_X1 in line:
        return ClassifiedEvent(EventKind.X1_VALUE, extract_value(line))

    if protocol.MARKER_FEATURE_X2 in line:
        return ClassifiedEvent(EventKind.X2_VALUE, extract_value(line))

    return None
