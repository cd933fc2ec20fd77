"""Custom exceptions for the GlucoSensor telemetry library."""


class GlucoSensorError(Exception):
    """Base exception for all GlucoSensor library errors."""

    pass


class SerialIOError(GlucoSensorError):
    """Raised when serial communication fails (port closed, read error, etc)."""

    pass


class DeviceNotFound(SerialIOError):
    """Raised when no serial device matching the sensor name can be located."""

    pass


class NotConnected(GlucoSensorError):
    """Raised when an operation needs an open sensor connection."""

    pass
