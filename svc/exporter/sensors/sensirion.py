# exporter/sensors/sensirion.py
"""
Word framing used by Sensirion gas sensors.

Every 16-bit word on the wire, in either direction, is sent MSB first and
followed by one CRC-8 byte (polynomial 0x31, init 0xFF, no reflection, no
final XOR).
"""
from __future__ import annotations
from typing import List

from .errors import ChecksumError

CRC8_POLYNOMIAL = 0x31
CRC8_INIT = 0xFF

WORD_LENGTH = 2
CRC_LENGTH = 1
FRAMED_WORD_LENGTH = WORD_LENGTH + CRC_LENGTH


def crc8(data: bytes) -> int:
    crc = CRC8_INIT
    for b in data:
        crc ^= b
        for _ in range(8):
            if crc & 0x80:
                crc = ((crc << 1) ^ CRC8_POLYNOMIAL) & 0xFF
            else:
                crc = (crc << 1) & 0xFF
    return crc


def encode_words(*words: int) -> bytes:
    out = bytearray()
    for word in words:
        data = bytes([(word >> 8) & 0xFF, word & 0xFF])
        out += data
        out.append(crc8(data))
    return bytes(out)


def decode_words(buf: bytes) -> List[int]:
    """Split `buf` into CRC-checked words. Any mismatch fails the whole buffer."""
    if len(buf) % FRAMED_WORD_LENGTH:
        raise ValueError(f"buffer length {len(buf)} is not a multiple of {FRAMED_WORD_LENGTH}")

    words: List[int] = []
    for idx in range(0, len(buf), FRAMED_WORD_LENGTH):
        data = buf[idx : idx + WORD_LENGTH]
        expected = buf[idx + WORD_LENGTH]
        actual = crc8(data)
        if actual != expected:
            raise ChecksumError(
                f"failed to validate crc for {data.hex()} (expected {expected:#04x} but got {actual:#04x})"
            )
        words.append((data[0] << 8) | data[1])
    return words
