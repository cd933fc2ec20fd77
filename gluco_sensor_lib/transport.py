"""Serial transport layer for the GlucoSensor Bluetooth SPP link."""

import logging
from typing import Optional, Protocol

from gluco_sensor_lib import protocol
from gluco_sensor_lib.errors import DeviceNotFound, SerialIOError

logger = logging.getLogger(__name__)


class SerialLike(Protocol):
    """Protocol for serial port interface (allows test doubles)."""

    def read(self, size: int = 1) -> bytes:
        """Read up to size bytes from serial port."""
        ...

    @property
    def in_waiting(self) -> int:
        """Number of bytes ready to be read without blocking."""
        ...

    def close(self) -> None:
        """Close serial port."""
        ...

    @property
    def is_open(self) -> bool:
        """Check if port is open."""
        ...


def find_device_port(name: str = protocol.TARGET_DEVICE_NAME) -> str:
    """Locate the serial device bound to the sensor's Bluetooth SPP service.

    Matches against the device path, port name and description reported by
    pyserial, e.g. "/dev/cu.GlucoSensor_ESP32" on macOS or an rfcomm port
    described with the bonded device name on Linux.

    Args:
        name: Bluetooth name the sensor advertises

    Returns:
        Device path suitable for Transport.open()

    Raises:
        DeviceNotFound: If no matching port exists
    """
    from serial.tools import list_ports

    for info in list_ports.comports():
        fields = (info.device, info.name, info.description)
        if any(f and name in f for f in fields):
            logger.info(f"Found {name} at {info.device}")
            return info.device

    raise DeviceNotFound(f"No serial port found for device {name!r}")


class Transport:
    """Wrapper around pyserial that hands out whatever bytes have arrived.

    The sensor only talks; the host never writes, so this class is read-only.
    """

    def __init__(self, serial_port: SerialLike) -> None:
        """Initialize transport with a serial port instance.

        Args:
            serial_port: Object implementing SerialLike protocol
                        (e.g., serial.Serial or FakeSerial for testing)
        """
        self._port = serial_port

    @classmethod
    def open(
        cls,
        port: str,
        baud: int = protocol.DEFAULT_BAUD,
        timeout_s: float = protocol.READ_TIMEOUT_S,
    ) -> "Transport":
        """Open a real serial port.

        Args:
            port: Serial device (e.g., "/dev/rfcomm0")
            baud: Baud rate. Nominal for RFCOMM, must match for USB-serial bridges.
            timeout_s: Read timeout in seconds. Bounds how long teardown waits.

        Returns:
            Transport instance wrapping opened serial port

        Raises:
            SerialIOError: If port cannot be opened
        """
        try:
            import serial  # type: ignore
        except ImportError as e:
            raise SerialIOError("pyserial not installed. Run: pip install pyserial") from e

        try:
            ser = serial.Serial(
                port=port,
                baudrate=baud,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=timeout_s,
                rtscts=False,
                dsrdtr=False,
                xonxoff=False
            )
            logger.info(f"Opened serial port {port} at {baud} baud, timeout={timeout_s}s")
            return cls(ser)
        except Exception as e:
            raise SerialIOError(f"Failed to open {port} at {baud} baud: {e}") from e

    def close(self) -> None:
        """Close the serial port."""
        if self._port.is_open:
            self._port.close()
            logger.info("Closed serial port")

    @property
    def is_open(self) -> bool:
        """Check if port is currently open."""
        return self._port.is_open

    def read_available(self, max_bytes: int = protocol.READ_CHUNK_SIZE) -> bytes:
        """Read whatever the device has sent, up to max_bytes.

        When nothing is waiting this blocks for at most the port timeout
        waiting for a single byte.

        Args:
            max_bytes: Upper bound on bytes returned

        Returns:
            Raw bytes (possibly empty on timeout)

        Raises:
            SerialIOError: If port is closed or read fails
        """
        if not self._port.is_open:
            raise SerialIOError("Serial port is not open")

        try:
            waiting = self._port.in_waiting
            data = self._port.read(min(waiting, max_bytes) if waiting else 1)
        except Exception as e:
            raise SerialIOError(f"Failed to read from port: {e}") from e

        if data:
            logger.debug(f"Received {len(data)} bytes")
        return data
