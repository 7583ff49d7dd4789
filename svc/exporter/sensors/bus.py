# exporter/sensors/bus.py
from __future__ import annotations
import logging
import threading
from typing import Protocol

import serial  # pip install pyserial
from smbus2 import SMBus, i2c_msg

from .errors import BusError

logger = logging.getLogger(__name__)


class I2CDevice(Protocol):
    """One open I2C address. Owned by a single connect cycle."""

    def write(self, data: bytes) -> None:
        ...

    def read(self, length: int) -> bytes:
        ...

    def close(self) -> None:
        ...


class SerialStream(Protocol):
    """
    One open serial port.

    `read` may return fewer bytes than asked for when the port's read timeout
    elapses; callers keep reading until they have what they need.
    """

    def read(self, size: int) -> bytes:
        ...

    def close(self) -> None:
        ...


class SMBusDevice:
    """
    Raw I2C transfers against one device address using smbus2.

    The sensors here are command/response devices rather than register maps,
    so every transfer is a plain i2c_rdwr write or read.
    """

    def __init__(self, bus: int, address: int) -> None:
        self.bus_no = bus
        self.address = address
        self._closed = False
        self._lock = threading.Lock()
        try:
            self._bus = SMBus(bus)
        except OSError as e:
            raise BusError(f"failed to open I2C address 0x{address:02X} on bus {bus}: {e}") from e
        logger.debug("opened I2C address 0x%02X on bus %s", address, bus)

    def write(self, data: bytes) -> None:
        try:
            self._bus.i2c_rdwr(i2c_msg.write(self.address, list(data)))
        except (OSError, ValueError) as e:
            raise BusError(f"I2C write to 0x{self.address:02X} failed: {e}") from e

    def read(self, length: int) -> bytes:
        msg = i2c_msg.read(self.address, length)
        try:
            self._bus.i2c_rdwr(msg)
        except (OSError, ValueError) as e:
            raise BusError(f"I2C read from 0x{self.address:02X} failed: {e}") from e
        return bytes(list(msg))

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._bus.close()
        logger.debug("closed I2C address 0x%02X on bus %s", self.address, self.bus_no)


class SerialPort:
    """8N1 serial port wrapper raising BusError instead of pyserial exceptions."""

    def __init__(self, port: str, baudrate: int = 9600, timeout_s: float = 1.0) -> None:
        self.port = port
        self._closed = False
        self._lock = threading.Lock()
        try:
            self.ser = serial.Serial(
                port=port,
                baudrate=baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=timeout_s,
            )
        except (serial.SerialException, OSError) as e:
            raise BusError(f"failed to open port {port}: {e}") from e
        logger.debug("opened serial port %s at %s baud", port, baudrate)

    def read(self, size: int) -> bytes:
        try:
            return self.ser.read(size)
        except (serial.SerialException, OSError) as e:
            raise BusError(f"read from {self.port} failed: {e}") from e

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.ser.close()
        logger.debug("closed serial port %s", self.port)
