"""Telemetry pipeline: raw bytes in, sensor snapshots out.

Wires the line reassembler, the classifier, the sensor state machine and the
raw log buffer together behind a single lock so that a chunk is always
applied as a whole. Observers either poll snapshot() or subscribe() to get a
snapshot pushed after every chunk that changed something.
"""

import logging
import threading
from typing import Callable, List

from gluco_sensor_lib import parsing, protocol
from gluco_sensor_lib.models import LogEntry, PipelineResult, SensorSnapshot, SensorState
from gluco_sensor_lib.reassembler import LineReassembler
from gluco_sensor_lib.ring_buffer import LogRingBuffer
from gluco_sensor_lib.state_machine import SensorStateMachine

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[SensorSnapshot], None]


class TelemetryPipeline:
    """Core line parser and sensor state machine.

    feed() is the entry point for the byte-stream provider, reset() is
    called on teardown, fail() when the transport reports an error. After
    fail() the pipeline ignores input until reset() is called.
    """

    def __init__(self, log_size: int = protocol.MAX_LOG_LINES) -> None:
        """Initialize pipeline.

        Args:
            log_size: Number of raw lines kept for the serial monitor. Default 200.
        """
        self._reassembler = LineReassembler()
        self._machine = SensorStateMachine()
        self._log = LogRingBuffer(maxlen=log_size)

        # Serializes feed/fail/reset so observers never see a half-applied chunk
        self._lock = threading.RLock()
        self._halted = False
        self._halt_requested = threading.Event()

        self._subscribers: List[SnapshotCallback] = []
        self._subscribers_lock = threading.Lock()

    # ========================================================================
    # Stream Entry Points
    # ========================================================================

    def feed(self, chunk: bytes) -> List[str]:
        """Process one chunk from the byte stream.

        Args:
            chunk: Raw bytes of any size and alignment

        Returns:
            Lines that were logged and applied, in order. Empty while halted.
        """
        with self._lock:
            if self._halted or self._halt_requested.is_set():
                logger.debug(f"Pipeline halted, dropping {len(chunk)} bytes")
                return []

            applied: List[str] = []
            changed = False
            for line in self._reassembler.feed(chunk):
                # Teardown is a hard stop: nothing after the request is applied
                if self._halt_requested.is_set():
                    logger.debug("Teardown requested mid-chunk, dropping remaining lines")
                    break

                logger.debug(f"RX: {line!r}")
                self._log.append(line)
                if self._machine.apply(parsing.classify(line)):
                    changed = True
                applied.append(line)

            snapshot = self._machine.snapshot() if changed else None

        if snapshot is not None:
            self._publish(snapshot)
        return applied

    def request_halt(self) -> None:
        """Ask an in-flight feed() to stop applying lines as soon as possible.

        Safe to call from any thread. Cleared by reset().
        """
        self._halt_requested.set()

    def fail(self, reason: str = "") -> None:
        """Handle a transport failure: go IDLE and stop processing input."""
        self._halt_requested.set()
        with self._lock:
            logger.warning(f"Stream failed{': ' + reason if reason else ''}; halting pipeline")
            self._halted = True
            self._reassembler.reset()
            changed = self._machine.mark_disconnected()
            snapshot = self._machine.snapshot() if changed else None

        if snapshot is not None:
            self._publish(snapshot)

    def reset(self) -> None:
        """Tear down the current stream and get ready for a new one.

        Drops any partial line, clears the halt, returns to IDLE and clears
        the connection flag. The pipeline result and raw log are kept.
        """
        with self._lock:
            self._reassembler.reset()
            self._halted = False
            self._halt_requested.clear()
            changed = self._machine.mark_disconnected()
            snapshot = self._machine.snapshot() if changed else None

        if snapshot is not None:
            self._publish(snapshot)

    def mark_connected(self) -> None:
        """Flag that a byte stream has been attached."""
        with self._lock:
            changed = self._machine.mark_connected()
            snapshot = self._machine.snapshot() if changed else None

        if snapshot is not None:
            self._publish(snapshot)

    # ========================================================================
    # Observers
    # ========================================================================

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Register a callback invoked with each new snapshot.

        Callbacks run on the thread that fed the chunk and must not block.

        Returns:
            Function that removes the subscription
        """
        with self._subscribers_lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._subscribers_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, snapshot: SensorSnapshot) -> None:
        with self._subscribers_lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Snapshot subscriber failed: {e}", exc_info=True)

    # ========================================================================
    # Read Access
    # ========================================================================

    def snapshot(self) -> SensorSnapshot:
        """Current state, calibration countdown and result."""
        with self._lock:
            return self._machine.snapshot()

    @property
    def state(self) -> SensorState:
        return self._machine.state

    @property
    def result(self) -> PipelineResult:
        return self._machine.result

    @property
    def halted(self) -> bool:
        """True after fail() until the next reset()."""
        return self._halted

    @property
    def pending_bytes(self) -> int:
        """Bytes of an unterminated line waiting for the next chunk."""
        return self._reassembler.pending_bytes

    def logs(self) -> List[LogEntry]:
        """Raw log entries, oldest first."""
        return self._log.snapshot()

    def log_lines(self) -> List[str]:
        """Raw log line texts, oldest first."""
        return self._log.lines()

    @property
    def latest_log_index(self) -> int:
        """Index of the newest log entry, -1 when empty."""
        return self._log.latest_index

    def clear_logs(self) -> None:
        self._log.clear()
