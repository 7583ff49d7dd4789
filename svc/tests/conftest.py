"""
Fake buses shared by the sensor tests. Nothing here touches real hardware.
"""
import struct
import threading
import time
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

import pytest

from exporter.sensors.cancel import CancelToken
from exporter.sensors.errors import BusError
from exporter.sensors.sensirion import decode_words, encode_words
from exporter.sensors import sgp30_commands as cmds

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class ScriptedI2C:
    """Returns queued responses in order; raises BusError once the script runs out."""

    def __init__(self, reads: Iterable[bytes]) -> None:
        self.reads = deque(reads)
        self.writes: List[bytes] = []
        self.closed = False
        self.close_count = 0

    def write(self, data: bytes) -> None:
        if self.closed:
            raise BusError("closed")
        self.writes.append(bytes(data))

    def read(self, length: int) -> bytes:
        if self.closed:
            raise BusError("closed")
        if not self.reads:
            raise BusError("script exhausted")
        item = self.reads.popleft()
        if isinstance(item, Exception):
            raise item
        assert len(item) == length
        return item

    def close(self) -> None:
        self.closed = True
        self.close_count += 1


class BusyAHT20(ScriptedI2C):
    """Calibrates fine, then reports busy forever."""

    def __init__(self) -> None:
        super().__init__([b"\x08"])
        self.busy_polls = 0
        self.polling = threading.Event()

    def read(self, length: int) -> bytes:
        if self.reads:
            return super().read(length)
        if self.closed:
            raise BusError("closed")
        self.busy_polls += 1
        if self.busy_polls >= 3:
            self.polling.set()
        return b"\x80"


class LoopingAHT20(ScriptedI2C):
    """Always ready and calibrated; every measurement returns `payload`."""

    def __init__(self, payload: bytes) -> None:
        super().__init__([])
        self.payload = payload

    def read(self, length: int) -> bytes:
        if self.closed:
            raise BusError("closed")
        return b"\x08" if length == 1 else self.payload


class FakeSerial:
    """Serial port fake serving `data`; afterwards either fails or times out."""

    def __init__(self, data: bytes = b"", fail_when_empty: bool = True) -> None:
        self.buffer = bytearray(data)
        self.fail_when_empty = fail_when_empty
        self.closed = False

    def read(self, size: int) -> bytes:
        if self.closed:
            raise BusError("port closed")
        if not self.buffer:
            if self.fail_when_empty:
                raise BusError("read failed")
            time.sleep(0.002)
            return b""
        chunk = bytes(self.buffer[:size])
        del self.buffer[:size]
        return chunk

    def close(self) -> None:
        self.closed = True


class FakeSGP30:
    """
    Answers SGP30 commands with CRC-framed words and records every command.

    `violations` counts writes issued while another transaction was still in
    flight or its response had not been read yet.
    """

    def __init__(
        self,
        serial=(0x0001, 0x0002, 0x0003),
        feature_set=0x0020,
        air_quality=(450, 12),
        raw=(13500, 18200),
        baseline=(0x8E68, 0x8F41),
        corrupt: Iterable[int] = (),
    ) -> None:
        self.serial = serial
        self.feature_set = feature_set
        self.air_quality = air_quality
        self.raw = raw
        self.baseline = baseline
        self.corrupt = set(corrupt)
        self.commands: List[tuple] = []
        self.violations = 0
        self.closed = False
        self._pending: Optional[bytes] = None
        self._busy = threading.Lock()
        self._lock = threading.Lock()

    def _response(self, code: int) -> Optional[bytes]:
        words = {
            cmds.CMD_GET_SERIAL_ID: self.serial,
            cmds.CMD_GET_FEATURE_SET: (self.feature_set,),
            cmds.CMD_MEASURE_AIR_QUALITY: self.air_quality,
            cmds.CMD_MEASURE_RAW: self.raw,
            cmds.CMD_GET_BASELINE: self.baseline,
        }.get(code)
        if words is None:
            return None
        buf = bytearray(encode_words(*words))
        if code in self.corrupt:
            buf[2] ^= 0xFF
        return bytes(buf)

    def write(self, data: bytes) -> None:
        if not self._busy.acquire(blocking=False):
            self.violations += 1
            return
        try:
            if self.closed:
                raise BusError("closed")
            code = (data[0] << 8) | data[1]
            args = tuple(decode_words(bytes(data[2:])))
            with self._lock:
                if self._pending is not None:
                    self.violations += 1
                self.commands.append((code, args))
                self._pending = self._response(code)
        finally:
            self._busy.release()

    def read(self, length: int) -> bytes:
        if not self._busy.acquire(blocking=False):
            self.violations += 1
            raise BusError("concurrent access")
        try:
            if self.closed:
                raise BusError("closed")
            with self._lock:
                resp, self._pending = self._pending, None
            if resp is None:
                raise BusError("nothing to read")
            assert len(resp) == length
            return resp
        finally:
            self._busy.release()

    def close(self) -> None:
        self.closed = True

    def sent(self, code: int) -> List[tuple]:
        with self._lock:
            return [args for c, args in self.commands if c == code]


class Opener:
    """
    Bus factory for drivers. Hands out `devices` in order; once they run out,
    cancels `token` (so the driver stops) and raises BusError.
    """

    def __init__(self, token: CancelToken, devices: Iterable, fail_first: int = 0) -> None:
        self.token = token
        self.devices = deque(devices)
        self.fail_first = fail_first
        self.calls: List[float] = []

    def __call__(self, *args):
        self.calls.append(time.monotonic())
        if self.fail_first > 0:
            self.fail_first -= 1
            raise BusError("open failed")
        if not self.devices:
            self.token.cancel()
            raise BusError("no more devices")
        return self.devices.popleft()


def start_thread(target: Callable, *args) -> threading.Thread:
    t = threading.Thread(target=target, args=args, daemon=True)
    t.start()
    return t


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def pms_frame(values: List[int], checksum: Optional[int] = None) -> bytes:
    """Build a start-marker + 30-byte PMS5003 frame from the first 14 fields."""
    body = struct.pack(">14H", *values)
    if checksum is None:
        checksum = (0x42 + 0x4D + sum(body)) & 0xFFFF
    return b"\x42\x4d" + body + struct.pack(">H", checksum)


@pytest.fixture
def token():
    t = CancelToken()
    yield t
    t.cancel()
