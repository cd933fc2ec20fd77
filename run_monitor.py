#!/usr/bin/env python3
"""
GlucoSensor live monitor
Connects to the sensor, prints every state change and the raw line tail.
"""

import argparse
import logging
import sys
import time

from gluco_sensor_lib import SensorController, SensorSnapshot
from gluco_sensor_lib.errors import SerialIOError


def format_snapshot(snapshot: SensorSnapshot) -> str:
    """One-line summary of a snapshot for the terminal."""
    result = snapshot.result
    line = f"[{snapshot.state.value:>12}] PI={result.perfusion_index} X1={result.feature_x1} X2={result.feature_x2}"
    if snapshot.state.value == "calibrating":
        line += f"  calibration {snapshot.calibration_remaining_s:.1f}s left ({snapshot.calibration_progress:.0%})"
    return line


def main() -> int:
    parser = argparse.ArgumentParser(description="Monitor a GlucoSensor ESP32 over Bluetooth SPP")
    parser.add_argument("--port", default=None, help="Serial device (default: locate by device name)")
    parser.add_argument("--baud", type=int, default=115200, help="Baud rate (default: 115200)")
    parser.add_argument("--device-name", default="GlucoSensor_ESP32", help="Bluetooth name to locate")
    parser.add_argument("--duration", type=float, default=60.0, help="Seconds to run (0 = until Ctrl-C)")
    parser.add_argument("--tail", type=int, default=5, help="Raw lines to print at exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    print("=" * 70)
    print("GlucoSensor Monitor")
    print("=" * 70)
    print(f"Port: {args.port or '(locate ' + args.device_name + ')'}")
    print(f"Baud: {args.baud}")
    print()

    controller = SensorController()
    controller.subscribe(lambda snapshot: print(format_snapshot(snapshot)))

    try:
        controller.connect(port=args.port, baud=args.baud, device_name=args.device_name)
    except SerialIOError as e:
        print(f"✗ Could not connect: {e}")
        return 1

    start_time = time.time()
    try:
        while args.duration <= 0 or time.time() - start_time < args.duration:
            time.sleep(0.5)
            if not controller.is_connected():
                print("✗ Link lost")
                break
    except KeyboardInterrupt:
        pass
    finally:
        logs = controller.read_log_snapshot()
        controller.disconnect()

        print()
        print(f"Last {args.tail} raw lines:")
        for entry in (logs[-args.tail:] if args.tail > 0 else []):
            print(f"  #{entry.seq:05d} {entry.line}")
        print()
        print("Disconnected.")
        print("=" * 70)

    return 0


if __name__ == "__main__":
    sys.exit(main())
