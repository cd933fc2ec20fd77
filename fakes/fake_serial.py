"""Fake serial port that simulates the GlucoSensor ESP32 telemetry output.

The firmware only talks: it prints status and result lines over Bluetooth
SPP. This simulator queues those lines as bytes and hands them out in
randomly sized pieces, the way RFCOMM delivers them, so tests exercise
chunk reassembly. Read failures can be injected to simulate a dropped link.
"""

import logging
import random
import threading
import time
from typing import Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


def session_lines(
    calibration_s: int = 15,
    pi: str = "1.23",
    x1: str = "-0.45",
    x2: str = "0.88",
    no_finger_first: bool = True,
) -> List[str]:
    """Build the lines of one measurement as the firmware prints them.

    Args:
        calibration_s: Countdown start for the calibration phase
        pi: Perfusion index text
        x1: Feature X1 text
        x2: Feature X2 text
        no_finger_first: Start with a no-finger warning

    Returns:
        Lines without terminators, in firmware order
    """
    lines = ["GlucoSensor ESP32 ready"]
    if no_finger_first:
        lines.append("!! NO FINGER DETECTED !!")
    lines.append("Finger detected, starting calibration")
    for remaining in range(calibration_s, 0, -1):
        lines.append(f"Calibration: {float(remaining):.1f}s left")
    lines.extend([
        "Collecting samples...",
        "===== PIPELINE RESULT =====",
        f"Perfusion Index (PI): {pi}",
        f"FEATURE X1 (Log IR): {x1}",
        f"FEATURE X2 (Log Ratio): {x2}",
        "===========================",
    ])
    return lines


class FakeSerial:
    """Deterministic simulator of the GlucoSensor SPP byte stream.

    Implements:
    - Output queue of raw bytes with CRLF (or LF) line endings
    - Random read sizes to split lines across chunks
    - Optional background streaming of scripted lines
    - Injected read failures (link loss)
    """

    def __init__(
        self,
        max_chunk: int = 32,
        seed: Optional[int] = 1234,
        timeout: float = 0.05,
    ) -> None:
        """Initialize fake sensor.

        Args:
            max_chunk: Largest piece returned by a single read()
            seed: Seed for chunk sizes (None for nondeterministic)
            timeout: How long read() waits for data when nothing is queued
        """
        self.max_chunk = max_chunk
        self.timeout = timeout
        self._rng = random.Random(seed)

        self._output = bytearray()
        self._cond = threading.Condition()

        self._fail_error: Optional[Exception] = None

        # Threading for scripted streaming
        self._stream_thread: Optional[threading.Thread] = None
        self._stop_streaming = threading.Event()

        # Port state
        self.is_open = True
        self.bytes_read = 0

    # ========================================================================
    # SerialLike Interface
    # ========================================================================

    def close(self) -> None:
        """Close the fake serial port."""
        self.is_open = False
        self._stop_streaming_thread()
        with self._cond:
            self._cond.notify_all()
        logger.debug("FakeSerial closed")

    @property
    def in_waiting(self) -> int:
        """Bytes queued for the host."""
        if self._fail_error is not None:
            raise self._fail_error
        with self._cond:
            return len(self._output)

    def read(self, size: int = 1) -> bytes:
        """Read up to size bytes (fewer if the simulated radio splits them).

        Returns:
            Bytes, or b"" on timeout
        """
        if not self.is_open:
            raise RuntimeError("Port is closed")
        if self._fail_error is not None:
            raise self._fail_error

        with self._cond:
            if not self._output:
                self._cond.wait(timeout=self.timeout)
            if self._fail_error is not None:
                raise self._fail_error
            if not self._output:
                return b""

            n = min(size, len(self._output), self._rng.randint(1, self.max_chunk))
            data = bytes(self._output[:n])
            del self._output[:n]

        self.bytes_read += len(data)
        logger.debug(f"FakeSerial sending {data!r}")
        return data

    # ========================================================================
    # Test Controls
    # ========================================================================

    def send_raw(self, data: bytes) -> None:
        """Queue raw bytes exactly as given."""
        with self._cond:
            self._output.extend(data)
            self._cond.notify_all()

    def send_line(self, text: str, terminator: bytes = b"\r\n") -> None:
        """Queue one line with the firmware's CRLF terminator."""
        self.send_raw(text.encode("utf-8") + terminator)

    def send_lines(self, lines: Iterable[str], terminator: bytes = b"\r\n") -> None:
        """Queue several lines in one go."""
        self.send_raw(b"".join(line.encode("utf-8") + terminator for line in lines))

    def inject_failure(self, error: Optional[Exception] = None) -> None:
        """Make every subsequent read raise, as a dropped RFCOMM link does."""
        self._fail_error = error or OSError("Bluetooth link lost")
        with self._cond:
            self._cond.notify_all()
        logger.debug(f"FakeSerial failure injected: {self._fail_error}")

    def clear_failure(self) -> None:
        self._fail_error = None

    @property
    def pending(self) -> int:
        """Bytes not yet read by the host."""
        with self._cond:
            return len(self._output)

    def wait_until_drained(self, timeout: float = 2.0) -> bool:
        """Block until the host has read every queued byte.

        Returns:
            True if drained before timeout
        """
        deadline = time.time() + timeout
        while time.time() < deadline:
            if self.pending == 0:
                return True
            time.sleep(0.01)
        return self.pending == 0

    # ========================================================================
    # Internal: Threading
    # ========================================================================

    def start_streaming(
        self, lines: Iterable[str], interval_s: float = 0.01, repeat: bool = False
    ) -> None:
        """Emit lines from a background thread, one every interval_s."""
        script: Tuple[str, ...] = tuple(lines)
        self._stop_streaming.clear()
        self._stream_thread = threading.Thread(
            target=self._streaming_loop,
            args=(script, interval_s, repeat),
            name="FakeGlucoSensorStream",
            daemon=True,
        )
        self._stream_thread.start()
        logger.debug("Started streaming thread")

    def _stop_streaming_thread(self) -> None:
        """Stop streaming thread if running."""
        if self._stream_thread and self._stream_thread.is_alive():
            self._stop_streaming.set()
            self._stream_thread.join(timeout=2.0)
            self._stream_thread = None
            logger.debug("Stopped streaming thread")

    def _streaming_loop(self, script: Tuple[str, ...], interval_s: float, repeat: bool) -> None:
        """Background loop sending scripted lines."""
        logger.debug(f"Streaming loop started, {len(script)} lines, interval={interval_s:.3f}s")

        while not self._stop_streaming.is_set():
            for line in script:
                if self._stop_streaming.is_set():
                    break
                self.send_line(line)
                time.sleep(interval_s)
            if not repeat:
                break

        logger.debug("Streaming loop stopped")
