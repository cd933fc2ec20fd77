"""Sensor activity state machine driven by classified telemetry events."""

import dataclasses
import logging
import threading
from typing import Optional

from gluco_sensor_lib import protocol
from gluco_sensor_lib.models import (
    ClassifiedEvent,
    EventKind,
    PipelineResult,
    SensorSnapshot,
    SensorState,
)

logger = logging.getLogger(__name__)


class SensorStateMachine:
    """Holds the current sensor state and pipeline result.

    Every event forces its target state regardless of the current one; there
    is no terminal state. Result fields are replaced copy-on-write and are
    never cleared, so the last reported values survive reconnects.
    """

    def __init__(self) -> None:
        self._state = SensorState.IDLE
        self._calibration_remaining_s = protocol.CALIBRATION_WINDOW_S
        self._result = PipelineResult()
        self._connected = False
        self._revision = 0
        self._lock = threading.Lock()

    # ========================================================================
    # Event Application
    # ========================================================================

    def apply(self, event: Optional[ClassifiedEvent]) -> bool:
        """Apply one classified event.

        Args:
            event: Event from parsing.classify(), or None for an unclassified line

        Returns:
            True if state, calibration countdown or result changed
        """
        if event is None:
            return False

        with self._lock:
            before = (self._state, self._calibration_remaining_s, self._result)

            if event.kind == EventKind.NO_FINGER:
                self._state = SensorState.NO_FINGER

            elif event.kind == EventKind.CALIBRATION_TICK:
                self._state = SensorState.CALIBRATING
                # None marks a rejected reading: keep last good countdown
                if event.value is not None:
                    self._calibration_remaining_s = float(event.value)

            elif event.kind == EventKind.RESULT_HEADER:
                self._state = SensorState.MEASURING

            elif event.kind == EventKind.PI_VALUE:
                self._result = dataclasses.replace(
                    self._result, perfusion_index=str(event.value)
                )

            elif event.kind == EventKind.X1_VALUE:
                self._result = dataclasses.replace(
                    self._result, feature_x1=str(event.value)
                )

            elif event.kind == EventKind.X2_VALUE:
                self._result = dataclasses.replace(
                    self._result, feature_x2=str(event.value)
                )
                self._state = SensorState.RESULT_READY

            changed = before != (
                self._state,
                self._calibration_remaining_s,
                self._result,
            )
            if changed:
                self._revision += 1
                if before[0] != self._state:
                    logger.debug(f"State {before[0].value} -> {self._state.value}")

            return changed

    # ========================================================================
    # Connection Flag
    # ========================================================================

    def mark_connected(self) -> bool:
        """Flag that a byte stream is attached.

        Returns:
            True if the flag changed
        """
        with self._lock:
            if self._connected:
                return False
            self._connected = True
            self._revision += 1
            return True

    def mark_disconnected(self) -> bool:
        """Stream ended or failed: clear connection flag and return to IDLE.

        Result values are kept.

        Returns:
            True if anything changed
        """
        with self._lock:
            if not self._connected and self._state == SensorState.IDLE:
                return False
            if self._state != SensorState.IDLE:
                logger.debug(f"State {self._state.value} -> idle (stream ended)")
            self._connected = False
            self._state = SensorState.IDLE
            self._revision += 1
            return True

    # ========================================================================
    # Read Access
    # ========================================================================

    def snapshot(self) -> SensorSnapshot:
        """Get an immutable view of the current state."""
        with self._lock:
            return SensorSnapshot(
                state=self._state,
                calibration_remaining_s=self._calibration_remaining_s,
                result=self._result,
                connected=self._connected,
                revision=self._revision,
            )

    @property
    def state(self) -> SensorState:
        """Current sensor state."""
        return self._state

    @property
    def result(self) -> PipelineResult:
        """Current pipeline result."""
        return self._result

    @property
    def calibration_remaining_s(self) -> float:
        """Last accepted calibration countdown in seconds."""
        return self._calibration_remaining_s

    @property
    def connected(self) -> bool:
        return self._connected
