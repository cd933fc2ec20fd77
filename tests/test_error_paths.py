"""Tests for error handling and edge cases."""

import time
from types import SimpleNamespace

import pytest

from fakes.fake_serial import FakeSerial
from gluco_sensor_lib.controller import SensorController
from gluco_sensor_lib.errors import DeviceNotFound, NotConnected, SerialIOError
from gluco_sensor_lib.models import SensorState
from gluco_sensor_lib.transport import Transport, find_device_port


def wait_for(predicate, timeout: float = 3.0) -> bool:
    """Poll predicate until it is true or timeout expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_link_loss_mid_stream_goes_idle() -> None:
    """Test a read failure moves to IDLE and stops the reader."""
    fake_serial = FakeSerial()
    controller = SensorController()
    controller.connect(serial_port=fake_serial)

    fake_serial.send_line("Calibration: 8.0s left")
    assert wait_for(lambda: controller.state == SensorState.CALIBRATING)

    fake_serial.inject_failure()

    assert wait_for(lambda: not controller.is_connected())
    snapshot = controller.snapshot()
    assert snapshot.state == SensorState.IDLE
    assert snapshot.connected is False
    assert controller.pipeline.halted
    assert not fake_serial.is_open


def test_no_processing_after_failure_until_reset() -> None:
    """Test the halted pipeline ignores input until a new stream is attached."""
    fake_serial = FakeSerial()
    controller = SensorController()
    controller.connect(serial_port=fake_serial)
    fake_serial.inject_failure()
    assert wait_for(lambda: controller.pipeline.halted)

    assert controller.pipeline.feed(b"NO FINGER\r\n") == []
    assert controller.state == SensorState.IDLE

    # connect() resets the pipeline for the new stream
    replacement = FakeSerial()
    controller.connect(serial_port=replacement)
    assert not controller.pipeline.halted
    replacement.send_line("NO FINGER")
    assert wait_for(lambda: controller.state == SensorState.NO_FINGER)

    controller.disconnect()


def test_disconnect_after_failure() -> None:
    """Test disconnect is safe once the reader already exited."""
    fake_serial = FakeSerial()
    controller = SensorController()
    controller.connect(serial_port=fake_serial)
    fake_serial.inject_failure()
    assert wait_for(lambda: not controller.is_connected())

    controller.disconnect()

    assert controller.state == SensorState.IDLE
    assert not controller.pipeline.halted


def test_connect_twice_raises() -> None:
    """Test a second connect while streaming is rejected."""
    controller = SensorController()
    controller.connect(serial_port=FakeSerial())

    with pytest.raises(SerialIOError):
        controller.connect(serial_port=FakeSerial())

    controller.disconnect()


def test_disconnect_when_never_connected() -> None:
    """Test disconnect without a connection is a no-op."""
    controller = SensorController()
    controller.disconnect()
    assert controller.state == SensorState.IDLE


def test_reconnect_without_previous_port() -> None:
    """Test reconnect needs a remembered port."""
    controller = SensorController()
    with pytest.raises(NotConnected):
        controller.reconnect()


def test_reconnect_reopens_last_port(monkeypatch) -> None:
    """Test reconnect reopens the port given to connect()."""
    opened = []

    def mock_open(port: str, baud: int):
        opened.append((port, baud))
        return Transport(FakeSerial())

    monkeypatch.setattr(Transport, "open", mock_open)

    controller = SensorController()
    controller.connect(port="/dev/rfcomm0", baud=9600)
    controller.reconnect()

    assert opened == [("/dev/rfcomm0", 9600), ("/dev/rfcomm0", 9600)]
    assert controller.is_connected()
    assert controller.last_port == "/dev/rfcomm0"

    controller.disconnect()


def test_open_missing_port_raises() -> None:
    """Test opening a nonexistent device maps to SerialIOError."""
    with pytest.raises(SerialIOError):
        Transport.open("/dev/does-not-exist-gluco", 115200)


def test_find_device_port_by_name(monkeypatch) -> None:
    """Test device discovery matches the Bluetooth name."""
    ports = [
        SimpleNamespace(device="/dev/ttyS0", name="ttyS0", description="n/a"),
        SimpleNamespace(device="/dev/rfcomm0", name="rfcomm0", description="GlucoSensor_ESP32"),
    ]
    monkeypatch.setattr("serial.tools.list_ports.comports", lambda: ports)

    assert find_device_port("GlucoSensor_ESP32") == "/dev/rfcomm0"


def test_find_device_port_missing(monkeypatch) -> None:
    """Test discovery failure raises DeviceNotFound (a SerialIOError)."""
    monkeypatch.setattr("serial.tools.list_ports.comports", lambda: [])

    with pytest.raises(DeviceNotFound):
        find_device_port("GlucoSensor_ESP32")

    controller = SensorController()
    with pytest.raises(SerialIOError):
        controller.connect()
    assert not controller.is_connected()


def test_read_on_closed_transport() -> None:
    """Test reading after close raises SerialIOError."""
    transport = Transport(FakeSerial())
    transport.close()
    with pytest.raises(SerialIOError):
        transport.read_available()


def test_read_failure_is_wrapped() -> None:
    """Test port exceptions surface as SerialIOError."""
    fake_serial = FakeSerial()
    fake_serial.inject_failure(OSError("device reports readiness to read but returned no data"))
    with pytest.raises(SerialIOError):
        Transport(fake_serial).read_available()
