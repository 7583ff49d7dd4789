# exporter/sensors/errors.py
from __future__ import annotations


class SensorError(Exception):
    """Base class for failures that end a sensor's connect cycle."""


class BusError(SensorError):
    """Opening, reading from or writing to the bus failed."""


class ChecksumError(SensorError):
    """A response word did not match its CRC."""


class CalibrationError(SensorError):
    """The sensor finished calibrating without reporting itself calibrated."""


class UnsupportedFeatureSetError(SensorError):
    def __init__(self, feature_set: int) -> None:
        super().__init__(f"unsupported feature set 0x{feature_set:04X}")
        self.feature_set = feature_set
