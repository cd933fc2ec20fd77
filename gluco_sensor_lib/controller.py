"""High-level controller tying the serial transport to the telemetry pipeline."""

import logging
import threading
from typing import Callable, List, Optional

from gluco_sensor_lib import protocol
from gluco_sensor_lib.errors import NotConnected, SerialIOError
from gluco_sensor_lib.models import LogEntry, PipelineResult, SensorSnapshot, SensorState
from gluco_sensor_lib.pipeline import SnapshotCallback, TelemetryPipeline
from gluco_sensor_lib.transport import SerialLike, Transport, find_device_port

logger = logging.getLogger(__name__)


class SensorController:
    """Owns the sensor connection and the background reader thread.

    The reader thread is the single producer for the pipeline: it pulls
    whatever bytes are available and feeds them in arrival order. A read
    failure moves the pipeline to IDLE and ends the thread; reconnecting is
    left to the caller.
    """

    def __init__(
        self,
        pipeline: Optional[TelemetryPipeline] = None,
        chunk_size: int = protocol.READ_CHUNK_SIZE,
    ) -> None:
        """Initialize controller.

        Args:
            pipeline: Optional pipeline to drive. A new one is created if None.
            chunk_size: Maximum bytes per read. Default 1024.
        """
        self._pipeline = pipeline or TelemetryPipeline()
        self._chunk_size = chunk_size
        self._transport: Optional[Transport] = None

        # Threading for acquisition
        self._reader_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        # Lock for connect/disconnect transitions
        self._state_lock = threading.RLock()

        # Store connection params for reconnection
        self._last_port: Optional[str] = None
        self._last_baud: int = protocol.DEFAULT_BAUD

    # ========================================================================
    # Connection Management
    # ========================================================================

    def connect(
        self,
        port: Optional[str] = None,
        baud: int = protocol.DEFAULT_BAUD,
        serial_port: Optional[SerialLike] = None,
        device_name: str = protocol.TARGET_DEVICE_NAME,
    ) -> None:
        """Open the sensor stream and start reading.

        Args:
            port: Serial device (e.g., "/dev/rfcomm0"). If neither port nor
                  serial_port is given, the device is located by name.
            baud: Baud rate. Default 115200.
            serial_port: Pre-configured serial port object (for testing). If provided,
                        port and baud are ignored.
            device_name: Bluetooth name used to locate the port when none is given.

        Raises:
            SerialIOError: If already connected or the port cannot be opened
            DeviceNotFound: If the device cannot be located by name
        """
        with self._state_lock:
            if self.is_connected():
                raise SerialIOError("Already connected")

            if serial_port is not None:
                transport = Transport(serial_port)
            else:
                if port is None:
                    port = find_device_port(device_name)
                transport = Transport.open(port, baud)
                self._last_port = port
                self._last_baud = baud

            # Thread from a previous failed stream has already exited
            self._join_reader_thread()

            self._transport = transport
            self._pipeline.reset()
            self._pipeline.mark_connected()
            self._start_reader_thread()
            logger.info("Connected, reading sensor stream")

    def disconnect(self) -> None:
        """Stop reading, close the port and return the pipeline to IDLE.

        Lines still in flight are dropped, not drained.
        """
        with self._state_lock:
            logger.info("Disconnecting from sensor...")

            self._pipeline.request_halt()
            self._stop_event.set()
            self._join_reader_thread()

            if self._transport:
                self._transport.close()
                self._transport = None

            self._pipeline.reset()
            logger.info("Disconnected")

    def reconnect(self) -> None:
        """Reopen the last port used by connect().

        Raises:
            NotConnected: If there is no previous port to reconnect to
            SerialIOError: If the port cannot be reopened
        """
        if self._last_port is None:
            raise NotConnected("Cannot reconnect: no previous connection")

        logger.info(f"Reconnecting to {self._last_port} at {self._last_baud} baud...")
        self.disconnect()
        self.connect(port=self._last_port, baud=self._last_baud)

    def is_connected(self) -> bool:
        """Check if the stream is attached and being read.

        Returns:
            True if transport is open and the reader thread is alive
        """
        return (
            self._transport is not None
            and self._transport.is_open
            and self._reader_thread is not None
            and self._reader_thread.is_alive()
        )

    # ========================================================================
    # Data Access
    # ========================================================================

    def snapshot(self) -> SensorSnapshot:
        """Current state, calibration countdown and result."""
        return self._pipeline.snapshot()

    @property
    def state(self) -> SensorState:
        return self._pipeline.state

    @property
    def result(self) -> PipelineResult:
        return self._pipeline.result

    def read_log_snapshot(self) -> List[LogEntry]:
        """Raw lines received so far (at most 200), oldest first."""
        return self._pipeline.logs()

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Push each new snapshot to callback. Returns an unsubscribe function."""
        return self._pipeline.subscribe(callback)

    @property
    def pipeline(self) -> TelemetryPipeline:
        return self._pipeline

    @property
    def last_port(self) -> Optional[str]:
        return self._last_port

    # ========================================================================
    # Internal: Reader Thread
    # ========================================================================

    def _start_reader_thread(self) -> None:
        self._stop_event.clear()
        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            name="GlucoSensorReader",
            daemon=True,
        )
        self._reader_thread.start()
        logger.debug("Started reader thread")

    def _join_reader_thread(self) -> None:
        # A subscriber may tear down from the reader thread itself. The loop
        # exits on its own once the stop event is set, and the next connect()
        # joins it.
        if self._reader_thread is threading.current_thread():
            logger.debug("Teardown from reader thread, not joining")
            return

        if self._reader_thread and self._reader_thread.is_alive():
            logger.debug("Stopping reader thread...")
            self._stop_event.set()
            self._reader_thread.join(timeout=5.0)

            if self._reader_thread.is_alive():
                logger.warning("Reader thread did not stop cleanly")

        self._reader_thread = None

    def _reader_loop(self) -> None:
        """Background loop: read available bytes and feed the pipeline.

        Exits when stop is requested, the transport fails, or the controller
        has moved on to another transport.
        """
        logger.info(f"Reader loop started (thread {threading.get_ident()})")
        transport = self._transport
        assert transport is not None

        def running() -> bool:
            return not self._stop_event.is_set() and self._transport is transport

        while running():
            try:
                chunk = transport.read_available(self._chunk_size)
            except SerialIOError as e:
                if not running():
                    break
                logger.error(f"Sensor stream failed: {e}")
                self._pipeline.fail(str(e))
                transport.close()
                break

            if chunk and running():
                self._pipeline.feed(chunk)

        logger.info("Reader loop stopped")
