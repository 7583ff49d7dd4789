# exporter/sensors/sgp30_commands.py
"""
Sensirion SGP30 command set.

Each command is a 2-byte code, optionally followed by CRC-framed argument
words. Commands that return data are read back after the measurement delay
from the datasheet. A CRC failure on any returned word raises ChecksumError,
which ends the connect cycle.
"""
from __future__ import annotations
from typing import List, Tuple

from .bus import I2CDevice
from .cancel import CancelToken
from .sensirion import FRAMED_WORD_LENGTH, decode_words, encode_words

CMD_GET_SERIAL_ID = 0x3682
CMD_GET_FEATURE_SET = 0x202F
CMD_INIT_AIR_QUALITY = 0x2003
CMD_MEASURE_AIR_QUALITY = 0x2008
CMD_MEASURE_RAW = 0x2050
CMD_GET_BASELINE = 0x2015
CMD_SET_BASELINE = 0x201E
CMD_SET_HUMIDITY = 0x2061

SUPPORTED_FEATURE_SETS = frozenset({0x0020, 0x0022})


def command_bytes(code: int, *args: int) -> bytes:
    return bytes([(code >> 8) & 0xFF, code & 0xFF]) + encode_words(*args)


def read_words(dev: I2CDevice, count: int) -> List[int]:
    return decode_words(dev.read(count * FRAMED_WORD_LENGTH))


def get_serial_id(dev: I2CDevice, cancel: CancelToken) -> Tuple[int, int, int]:
    dev.write(command_bytes(CMD_GET_SERIAL_ID))
    cancel.sleep(0.010)
    a, b, c = read_words(dev, 3)
    return a, b, c


def get_feature_set_version(dev: I2CDevice, cancel: CancelToken) -> int:
    dev.write(command_bytes(CMD_GET_FEATURE_SET))
    cancel.sleep(0.010)
    return read_words(dev, 1)[0]


def init_air_quality(dev: I2CDevice, cancel: CancelToken) -> None:
    dev.write(command_bytes(CMD_INIT_AIR_QUALITY))
    cancel.sleep(0.010)


def measure_air_quality(dev: I2CDevice, cancel: CancelToken) -> Tuple[int, int]:
    """Returns (eCO2 ppm, tVOC ppb)."""
    dev.write(command_bytes(CMD_MEASURE_AIR_QUALITY))
    cancel.sleep(0.012)
    eco2, tvoc = read_words(dev, 2)
    return eco2, tvoc


def measure_raw_signals(dev: I2CDevice, cancel: CancelToken) -> Tuple[int, int]:
    """Returns (H2, ethanol) raw signals."""
    dev.write(command_bytes(CMD_MEASURE_RAW))
    cancel.sleep(0.025)
    h2, ethanol = read_words(dev, 2)
    return h2, ethanol


def get_baseline(dev: I2CDevice, cancel: CancelToken) -> Tuple[int, int]:
    """Returns the (eCO2, tVOC) baseline values."""
    dev.write(command_bytes(CMD_GET_BASELINE))
    cancel.sleep(0.010)
    eco2, tvoc = read_words(dev, 2)
    return eco2, tvoc


def set_baseline(dev: I2CDevice, cancel: CancelToken, eco2: int, tvoc: int) -> None:
    # The sensor takes the words in the reverse of the order get_baseline returns them.
    dev.write(command_bytes(CMD_SET_BASELINE, tvoc, eco2))
    cancel.sleep(0.010)


def humidity_fixed_point(grams_per_cubic_meter: float) -> int:
    """8.8 fixed point, clamped to the register range."""
    return max(0, min(0xFFFF, int(grams_per_cubic_meter * 256)))


def set_humidity(dev: I2CDevice, cancel: CancelToken, grams_per_cubic_meter: float) -> None:
    dev.write(command_bytes(CMD_SET_HUMIDITY, humidity_fixed_point(grams_per_cubic_meter)))
    cancel.sleep(0.010)
