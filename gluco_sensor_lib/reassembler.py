"""Reassembly of arbitrary byte chunks into complete telemetry lines."""

import logging
from typing import List

from gluco_sensor_lib import protocol

logger = logging.getLogger(__name__)


class LineReassembler:
    """Splits a chunked byte stream into lines.

    Both CRLF and bare LF end a line. Bytes after the last terminator are
    held back and prepended to the next chunk. Empty lines are dropped.
    There is no limit on line length, so a stream that never sends a
    terminator grows the pending buffer without bound.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._pending = bytearray()
        self._encoding = encoding

    def feed(self, chunk: bytes) -> List[str]:
        """Add a chunk and return every line it completes.

        Args:
            chunk: Raw bytes as read from the transport (may be empty)

        Returns:
            Complete non-empty lines in arrival order, terminators stripped
        """
        if not chunk:
            return []

        self._pending.extend(chunk)
        if protocol.LINE_FEED not in chunk:
            return []

        *complete, rest = self._pending.split(protocol.LINE_FEED)
        self._pending = bytearray(rest)

        lines = []
        for raw in complete:
            if raw.endswith(protocol.CARRIAGE_RETURN):
                raw = raw[:-1]
            if not raw:
                continue
            # Decode per line so multi-byte characters split across chunks survive
            lines.append(raw.decode(self._encoding, errors="replace"))

        return lines

    def reset(self) -> None:
        """Discard any partial line (stream teardown)."""
        if self._pending:
            logger.debug(f"Discarding {len(self._pending)} pending bytes")
        self._pending.clear()

    @property
    def pending_bytes(self) -> int:
        """Number of buffered bytes not yet terminated by a line feed."""
        return len(self._pending)
