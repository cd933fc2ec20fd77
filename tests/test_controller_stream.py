"""Tests for the reader thread feeding live FakeSerial data into the pipeline."""

import time

from fakes.fake_serial import FakeSerial, session_lines
from gluco_sensor_lib.controller import SensorController
from gluco_sensor_lib.models import SensorState


def wait_for(predicate, timeout: float = 3.0) -> bool:
    """Poll predicate until it is true or timeout expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_connect_starts_reading() -> None:
    """Test connect attaches the stream and marks it connected."""
    fake_serial = FakeSerial()
    controller = SensorController()
    controller.connect(serial_port=fake_serial)

    assert controller.is_connected()
    assert controller.snapshot().connected is True
    assert controller.state == SensorState.IDLE

    controller.disconnect()


def test_full_session_over_serial() -> None:
    """Test a complete firmware session arriving in random chunks."""
    fake_serial = FakeSerial(max_chunk=7)
    controller = SensorController()
    controller.connect(serial_port=fake_serial)

    fake_serial.send_lines(session_lines(calibration_s=5, pi="0.97", x1="-1.02", x2="0.31"))

    assert wait_for(lambda: controller.state == SensorState.RESULT_READY)
    result = controller.result
    assert result.perfusion_index == "0.97"
    assert result.feature_x1 == "-1.02"
    assert result.feature_x2 == "0.31"

    logs = [entry.line for entry in controller.read_log_snapshot()]
    assert logs == session_lines(calibration_s=5, pi="0.97", x1="-1.02", x2="0.31")

    controller.disconnect()


def test_streamed_calibration_countdown() -> None:
    """Test calibration ticks streamed line by line."""
    fake_serial = FakeSerial()
    controller = SensorController()
    controller.connect(serial_port=fake_serial)

    fake_serial.start_streaming([
        "Calibration: 3.0s left",
        "Calibration: 4294967s left",
        "Calibration: 2.0s left",
    ], interval_s=0.01)

    assert wait_for(lambda: len(controller.read_log_snapshot()) == 3)
    snapshot = controller.snapshot()
    assert snapshot.state == SensorState.CALIBRATING
    assert snapshot.calibration_remaining_s == 2.0

    controller.disconnect()


def test_subscriber_receives_snapshots() -> None:
    """Test push-on-change delivery from the reader thread."""
    fake_serial = FakeSerial()
    controller = SensorController()
    received = []
    controller.subscribe(received.append)
    controller.connect(serial_port=fake_serial)

    fake_serial.send_line("!! NO FINGER DETECTED !!")

    assert wait_for(lambda: any(s.state == SensorState.NO_FINGER for s in received))
    revisions = [s.revision for s in received]
    assert revisions == sorted(revisions)

    controller.disconnect()


def test_disconnect_returns_idle_and_keeps_result() -> None:
    """Test teardown resets state but not the last values."""
    fake_serial = FakeSerial()
    controller = SensorController()
    controller.connect(serial_port=fake_serial)
    fake_serial.send_lines(session_lines(calibration_s=1))
    assert wait_for(lambda: controller.state == SensorState.RESULT_READY)

    controller.disconnect()

    assert not controller.is_connected()
    assert controller.state == SensorState.IDLE
    assert controller.snapshot().connected is False
    assert controller.result.feature_x2 == "0.88"
    assert not fake_serial.is_open


def test_disconnect_is_hard_stop() -> None:
    """Test nothing queued after teardown is applied."""
    fake_serial = FakeSerial()
    controller = SensorController()
    controller.connect(serial_port=fake_serial)
    controller.disconnect()

    fake_serial.send_line("NO FINGER")
    time.sleep(0.2)

    assert controller.state == SensorState.IDLE
    assert controller.read_log_snapshot() == []


def test_reconnect_with_new_port_keeps_values() -> None:
    """Test a second stream continues from the previous result."""
    controller = SensorController()

    first = FakeSerial()
    controller.connect(serial_port=first)
    first.send_line("Perfusion Index (PI): 1.50")
    assert wait_for(lambda: controller.result.perfusion_index == "1.50")
    controller.disconnect()

    second = FakeSerial()
    controller.connect(serial_port=second)
    assert controller.result.perfusion_index == "1.50"
    second.send_line("FEATURE X2: 0.42")
    assert wait_for(lambda: controller.state == SensorState.RESULT_READY)
    assert controller.result.perfusion_index == "1.50"
    assert controller.result.feature_x2 == "0.42"

    controller.disconnect()


def test_disconnect_from_subscriber() -> None:
    """Test a subscriber can stop the stream once the result is ready."""
    fake_serial = FakeSerial()
    controller = SensorController()
    stopped = []

    def stop_on_result(snapshot) -> None:
        if snapshot.state == SensorState.RESULT_READY and not stopped:
            controller.disconnect()
            stopped.append(snapshot.revision)

    controller.subscribe(stop_on_result)
    controller.connect(serial_port=fake_serial)
    fake_serial.send_lines(session_lines(calibration_s=1))

    assert wait_for(lambda: bool(stopped))
    snapshot = controller.snapshot()
    assert snapshot.state == SensorState.IDLE
    assert snapshot.connected is False
    assert controller.result.feature_x2 == "0.88"
    assert not controller.is_connected()
    assert not fake_serial.is_open

    # Halt was cleared, so the pipeline accepts input again
    assert controller.pipeline.feed(b"FEATURE X2: 0.5\n") == ["FEATURE X2: 0.5"]
    assert controller.result.feature_x2 == "0.5"

    # The old reader thread is joined by the next connect
    replacement = FakeSerial()
    controller.connect(serial_port=replacement)
    replacement.send_line("NO FINGER")
    assert wait_for(lambda: controller.state == SensorState.NO_FINGER)
    assert controller.is_connected()

    controller.disconnect()
