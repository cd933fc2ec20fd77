"""Wire protocol constants for the GlucoSensor ESP32 telemetry stream.

The firmware prints human-readable lines over Bluetooth SPP. There is no
framing beyond line terminators, so classification is done by substring
markers that must match the firmware output byte-for-byte.
"""

from typing import Final

# ============================================================================
# Device Identity / Transport
# ============================================================================

# Bluetooth name the ESP32 advertises; used to locate the SPP serial device
TARGET_DEVICE_NAME: Final[str] = "GlucoSensor_ESP32"

# Serial Port Profile service UUID (RFCOMM binding is done by the host OS)
SPP_UUID: Final[str] = "00001101-0000-1000-8000-00805F9B34FB"

# ESP32 SerialBT default; the rate is nominal over RFCOMM
DEFAULT_BAUD: Final[int] = 115200

# Read timeout for the reader loop, keeps teardown responsive
READ_TIMEOUT_S: Final[float] = 0.2

# Maximum bytes pulled from the port per read call
READ_CHUNK_SIZE: Final[int] = 1024

# ============================================================================
# Line Termination
# ============================================================================

# Firmware uses println() (CRLF) but some debug paths emit bare LF
LINE_FEED: Final[bytes] = b"\n"
CARRIAGE_RETURN: Final[bytes] = b"\r"

# ============================================================================
# Line Markers (priority order matters, see parsing.classify)
# ============================================================================

MARKER_NO_FINGER: Final[str] = "NO FINGER"
MARKER_CALIBRATION: Final[str] = "Calibration:"
MARKER_CALIBRATION_SUFFIX: Final[str] = "s left"
MARKER_RESULT_HEADER: Final[str] = "PIPELINE RESULT"
MARKER_PERFUSION_INDEX: Final[str] = "Perfusion Index (PI):"
MARKER_FEATURE_X1: Final[str] = "FEATURE X1"
MARKER_FEATURE_X2: Final[str] = "FEATURE X2"

# Separator between a value label and its payload
VALUE_SEPARATOR: Final[str] = ":"

# ============================================================================
# Calibration
# ============================================================================

# Length of the firmware calibration window in seconds
CALIBRATION_WINDOW_S: Final[float] = 15.0

# Firmware countdown underflows to ~4294967; anything at or above this is garbage
CALIBRATION_MAX_S: Final[float] = 1000.0

# ============================================================================
# Display Defaults
# ============================================================================

# Placeholder for result fields not yet reported
UNKNOWN_VALUE: Final[str] = "--"

# Raw lines kept for the serial monitor view
MAX_LOG_LINES: Final[int] = 200
