"""Little-endian wire primitives shared by the writer and reader.

Strings use a 7-bit variable-length byte count followed by UTF-8 bytes, the
layout a .NET ``BinaryReader.ReadString`` consumes.
"""

from __future__ import annotations

import struct
from typing import BinaryIO

from obby_packer.errors import FormatError

INT32 = struct.Struct("<i")
INT32_MAX = 2**31 - 1


def encode_int32(value: int) -> bytes:
    if not 0 <= value <= INT32_MAX:
        raise ValueError(f"value out of int32 range: {value}")
    return INT32.pack(value)


def encode_bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def encode_7bit(value: int) -> bytes:
    if value < 0:
        raise ValueError("7-bit encoded length must be non-negative")
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def encode_string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return encode_7bit(len(raw)) + raw


class BinaryCursor:
    """Sequential reader over a seekable stream raising FormatError on truncation."""

    def __init__(self, stream: BinaryIO) -> None:
        self.stream = stream

    @property
    def position(self) -> int:
        return self.stream.tell()

    def seek(self, offset: int) -> None:
        self.stream.seek(offset)

    def read_exact(self, size: int, what: str) -> bytes:
        start = self.position
        data = self.stream.read(size)
        if len(data) != size:
            raise FormatError(
                f"truncated {what}: expected {size} bytes, got {len(data)}", offset=start
            )
        return data

    def read_int32(self, what: str) -> int:
        start = self.position
        (value,) = INT32.unpack(self.read_exact(4, what))
        if value < 0:
            raise FormatError(f"negative {what}: {value}", offset=start)
        return value

    def read_bool(self, what: str) -> bool:
        start = self.position
        flag = self.read_exact(1, what)[0]
        if flag not in (0, 1):
            raise FormatError(f"invalid boolean for {what}: {flag}", offset=start)
        return flag == 1

    def read_7bit(self, what: str) -> int:
        start = self.position
        result = 0
        # At most five groups fit a 32-bit length.
        for shift in range(0, 35, 7):
            byte = self.read_exact(1, what)[0]
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result
        raise FormatError(f"7-bit length of {what} is too long", offset=start)

    def read_string(self, what: str) -> str:
        size = self.read_7bit(what)
        start = self.position
        raw = self.read_exact(size, what)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FormatError(f"{what} is not valid UTF-8: {exc}", offset=start) from exc
