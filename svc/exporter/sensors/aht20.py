# exporter/sensors/aht20.py
"""
Asair AHT20 temperature/humidity sensor over I2C.

The command set follows the AHT10-style sequence the AHT20 accepts:
  - 0xBA          soft reset, then let the sensor settle
  - 0xE1 08 00    calibrate, poll status until not busy, require calibrated bit
  - 0xAC 33 00    trigger a measurement, poll status until not busy, read 6 bytes

There is no CRC on this path; the status byte's busy and calibrated flags are
the only correctness signal.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, List

from .bus import I2CDevice, SMBusDevice
from .cancel import CancelToken
from .channel import Channel
from .errors import CalibrationError
from .interface import TemperatureHumidityReading
from .runner import ReconnectingSensor

logger = logging.getLogger(__name__)

CMD_RESET = bytes([0xBA])
CMD_CALIBRATE = bytes([0xE1, 0x08, 0x00])
CMD_TRIGGER = bytes([0xAC, 0x33, 0x00])

STATUS_BUSY = 0b1000_0000
STATUS_CALIBRATED = 0b0000_1000

WAKE_UP_DELAY_S = 0.020
STATUS_INTERVAL_S = 0.010

MEASUREMENT_LENGTH = 6
_FULL_SCALE = 0x100000  # 2**20


@dataclass(frozen=True)
class Status:
    is_busy: bool
    is_calibrated: bool

    @classmethod
    def from_byte(cls, b: int) -> "Status":
        return cls(is_busy=bool(b & STATUS_BUSY), is_calibrated=bool(b & STATUS_CALIBRATED))


def humidity_from_raw(raw: int) -> float:
    return raw / _FULL_SCALE


def temperature_from_raw(raw: int) -> float:
    return (raw * 200.0) / _FULL_SCALE - 50


def decode_measurement(buf: bytes) -> TemperatureHumidityReading:
    """
    Decode the 6-byte measurement:

      byte      0       1       2       3       4       5
                SSSSSSSSHHHHHHHHHHHHHHHHHHHHTTTTTTTTTTTTTTTTTTTT

    S = state (8 bits), H = humidity (20 bits), T = temperature (20 bits).
    """
    if len(buf) != MEASUREMENT_LENGTH:
        raise ValueError(f"expected {MEASUREMENT_LENGTH} bytes, got {len(buf)}")
    raw_humidity = (buf[1] << 12) | (buf[2] << 4) | (buf[3] >> 4)
    raw_temperature = ((buf[3] & 0x0F) << 16) | (buf[4] << 8) | buf[5]
    return TemperatureHumidityReading(
        relative_humidity=humidity_from_raw(raw_humidity),
        temperature=temperature_from_raw(raw_temperature),
    )


def read_status(dev: I2CDevice) -> Status:
    return Status.from_byte(dev.read(1)[0])


def wait_until_ready(dev: I2CDevice, cancel: CancelToken) -> Status | None:
    """Poll the status byte until the busy flag clears. None if cancelled while busy."""
    while True:
        status = read_status(dev)
        if not status.is_busy:
            return status
        if cancel.wait(STATUS_INTERVAL_S):
            return None


def reset(dev: I2CDevice, cancel: CancelToken) -> None:
    dev.write(CMD_RESET)
    cancel.wait(WAKE_UP_DELAY_S)


def calibrate(dev: I2CDevice, cancel: CancelToken) -> bool:
    """Returns False if cancelled before calibration finished."""
    dev.write(CMD_CALIBRATE)
    status = wait_until_ready(dev, cancel)
    if status is None:
        return False
    if not status.is_calibrated:
        raise CalibrationError("failed to calibrate sensor")
    return True


def trigger(dev: I2CDevice, cancel: CancelToken) -> TemperatureHumidityReading | None:
    """Take one measurement. None means cancelled while the sensor was busy."""
    dev.write(CMD_TRIGGER)
    if wait_until_ready(dev, cancel) is None:
        return None
    return decode_measurement(dev.read(MEASUREMENT_LENGTH))


class AHT20Sensor(ReconnectingSensor):
    kind = "aht20"

    def __init__(
        self,
        i2c_addr: int = 0x38,
        i2c_bus: int = 1,
        reconnect_timeout_s: float = 1.0,
        open_device: Callable[[int, int], I2CDevice] | None = None,
    ) -> None:
        super().__init__(reconnect_timeout_s)
        self.i2c_addr = i2c_addr
        self.i2c_bus = i2c_bus
        self._open_device = open_device or SMBusDevice
        self.readings: Channel[TemperatureHumidityReading] = Channel("aht20.readings")

    def describe(self) -> str:
        return f"AHT20[bus={self.i2c_bus} addr=0x{self.i2c_addr:02X}]"

    def channels(self) -> List[Channel]:
        return [self.readings]

    def before_connect(self, cancel: CancelToken) -> bool:
        return not cancel.wait(WAKE_UP_DELAY_S)

    def open(self) -> I2CDevice:
        dev = self._open_device(self.i2c_bus, self.i2c_addr)
        logger.info(f"{self.describe()}: opened device")
        return dev

    def run_cycle(self, dev: I2CDevice, cancel: CancelToken) -> None:
        reset(dev, cancel)
        if cancel.is_cancelled() or not calibrate(dev, cancel):
            return

        while True:
            reading = trigger(dev, cancel)
            if reading is None:
                return
            logger.debug("%s: reading %s", self.describe(), reading)
            if not self.readings.send(reading, cancel):
                return
