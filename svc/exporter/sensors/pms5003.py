# exporter/sensors/pms5003.py
from __future__ import annotations
import logging
import struct
from typing import Callable, List

from .bus import SerialPort, SerialStream
from .cancel import CancelToken
from .channel import Channel
from .interface import ParticulateReading
from .runner import ReconnectingSensor

logger = logging.getLogger(__name__)

START_CHARACTER_1 = 0x42
START_CHARACTER_2 = 0x4D
FRAME_LENGTH = 30       # payload after the two start characters
BAUDRATE = 9600

_FRAME = struct.Struct(">15H")


def frame_checksum(payload: bytes) -> int:
    """Sum of the start characters and every payload byte before the check code, mod 2**16."""
    return (START_CHARACTER_1 + START_CHARACTER_2 + sum(payload[: FRAME_LENGTH - 2])) & 0xFFFF


def decode_frame(payload: bytes) -> ParticulateReading:
    """Unpack a 30-byte payload. Does not validate the checksum."""
    if len(payload) != FRAME_LENGTH:
        raise ValueError(f"expected {FRAME_LENGTH} bytes, got {len(payload)}")
    return ParticulateReading(*_FRAME.unpack(payload))


def seek_to_frame_start(port: SerialStream, cancel: CancelToken) -> bool:
    """
    Consume bytes until the start characters have been read.
    Returns False if cancelled first.
    """
    while not cancel.is_cancelled():
        b = port.read(1)
        if not b or b[0] != START_CHARACTER_1:
            continue
        b = port.read(1)
        if not b or b[0] != START_CHARACTER_2:
            continue
        return True
    return False


def read_full(port: SerialStream, size: int, cancel: CancelToken) -> bytes | None:
    """Read exactly `size` bytes, riding out read timeouts. None if cancelled."""
    buf = bytearray()
    while len(buf) < size:
        if cancel.is_cancelled():
            return None
        buf += port.read(size - len(buf))
    return bytes(buf)


class PMS5003Sensor(ReconnectingSensor):
    """
    Plantower PMS5003 in active mode. The sensor streams frames as soon as it
    is powered, so there is no handshake: each connect cycle just
    resynchronizes on the start characters and decodes frames until the port
    fails or the sensor is stopped.

    Frames with a bad checksum are dropped and the seek resumes; they never
    end the cycle.
    """

    kind = "pms5003"

    def __init__(
        self,
        port_name: str,
        reconnect_timeout_s: float = 1.0,
        open_port: Callable[[str], SerialStream] | None = None,
    ) -> None:
        super().__init__(reconnect_timeout_s)
        self.port_name = port_name
        self._open_port = open_port or (lambda name: SerialPort(name, baudrate=BAUDRATE))
        self.readings: Channel[ParticulateReading] = Channel("pms5003.readings")
        self.dropped_frames = 0

    def describe(self) -> str:
        return f"PMS5003[{self.port_name}]"

    def channels(self) -> List[Channel]:
        return [self.readings]

    def open(self) -> SerialStream:
        port = self._open_port(self.port_name)
        logger.info(f"{self.describe()}: opened port")
        return port

    def run_cycle(self, port: SerialStream, cancel: CancelToken) -> None:
        while True:
            if not seek_to_frame_start(port, cancel):
                return

            payload = read_full(port, FRAME_LENGTH, cancel)
            if payload is None:
                return

            reading = decode_frame(payload)
            expected = frame_checksum(payload)
            if reading.checksum != expected:
                self.dropped_frames += 1
                logger.debug(
                    "%s: failed to validate checksum buf=%s expected=%s got=%s",
                    self.describe(), payload.hex(), expected, reading.checksum,
                )
                continue

            if not self.readings.send(reading, cancel):
                return
