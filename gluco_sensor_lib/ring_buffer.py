"""Thread-safe ring buffer for raw telemetry lines."""

import logging
import threading
from collections import deque
from typing import List, Optional

from gluco_sensor_lib import protocol
from gluco_sensor_lib.models import LogEntry

logger = logging.getLogger(__name__)


class LogRingBuffer:
    """Thread-safe fixed-size FIFO buffer of raw lines for the serial monitor.

    Once the buffer reaches maxlen, the oldest entry is discarded when a new
    line is appended. Sequence numbers keep counting across evictions.
    """

    def __init__(self, maxlen: int = protocol.MAX_LOG_LINES) -> None:
        """Initialize ring buffer.

        Args:
            maxlen: Maximum number of lines to keep. Defaults to 200.
        """
        if maxlen <= 0:
            raise ValueError(f"maxlen must be positive, got {maxlen}")

        self._buffer: deque[LogEntry] = deque(maxlen=maxlen)
        self._lock = threading.Lock()
        self._maxlen = maxlen
        self._next_seq = 0

    def append(self, line: str) -> LogEntry:
        """Append a raw line (thread-safe).

        Args:
            line: Complete line as received, terminator stripped

        Returns:
            The stored LogEntry
        """
        with self._lock:
            entry = LogEntry(seq=self._next_seq, line=line)
            self._next_seq += 1
            self._buffer.append(entry)
            return entry

    def snapshot(self) -> List[LogEntry]:
        """Get a copy of all current entries (thread-safe).

        Returns:
            List of LogEntry instances, ordered oldest to newest
        """
        with self._lock:
            return list(self._buffer)

    def lines(self) -> List[str]:
        """Get the buffered line texts, oldest first."""
        with self._lock:
            return [entry.line for entry in self._buffer]

    def latest(self) -> Optional[LogEntry]:
        """Most recent entry, or None if the buffer is empty."""
        with self._lock:
            return self._buffer[-1] if self._buffer else None

    @property
    def latest_index(self) -> int:
        """Index of the newest entry in snapshot order, -1 when empty.

        Consumers use this to keep a scrolling view pinned to the end.
        """
        with self._lock:
            return len(self._buffer) - 1

    def clear(self) -> None:
        """Remove all entries from buffer (thread-safe)."""
        with self._lock:
            count = len(self._buffer)
            self._buffer.clear()
            logger.debug(f"Cleared {count} lines from log buffer")

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    @property
    def maxlen(self) -> int:
        """Maximum capacity of buffer."""
        return self._maxlen
