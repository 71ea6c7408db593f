"""Little-endian field encoder for instruction data.

Covers the borsh subset the targets need: fixed-width integers, bool,
``Option<T>`` (one tag byte) and ``Vec<T>`` (u32 length prefix).
"""

from __future__ import annotations

import struct
from typing import Callable, Iterable, Optional, TypeVar

T = TypeVar("T")

U64_MAX = (1 << 64) - 1
U128_MAX = (1 << 128) - 1


class BorshWriter:
    def __init__(self, prefix: bytes = b""):
        self._buf = bytearray(prefix)

    def _pack(self, fmt: str, value) -> "BorshWriter":
        self._buf += struct.pack("<" + fmt, value)
        return self

    def u8(self, value: int) -> "BorshWriter":
        return self._pack("B", value)

    def i8(self, value: int) -> "BorshWriter":
        return self._pack("b", value)

    def bool(self, value: bool) -> "BorshWriter":
        return self._pack("B", 1 if value else 0)

    def u16(self, value: int) -> "BorshWriter":
        return self._pack("H", value)

    def u32(self, value: int) -> "BorshWriter":
        return self._pack("I", value)

    def u64(self, value: int) -> "BorshWriter":
        return self._pack("Q", value)

    def u128(self, value: int) -> "BorshWriter":
        if not 0 <= value <= U128_MAX:
            raise ValueError(f"u128 out of range: {value}")
        self._buf += value.to_bytes(16, "little")
        return self

    def fixed(self, raw: bytes, size: int) -> "BorshWriter":
        if len(raw) != size:
            raise ValueError(f"expected {size} bytes, got {len(raw)}")
        self._buf += raw
        return self

    def option(self, value: Optional[T], write: Callable[[T], "BorshWriter"]) -> "BorshWriter":
        if value is None:
            return self.u8(0)
        self.u8(1)
        write(value)
        return self

    def vec(self, items: Iterable[T], write: Callable[["BorshWriter", T], None]) -> "BorshWriter":
        items = list(items)
        self.u32(len(items))
        for item in items:
            write(self, item)
        return self

    def build(self) -> bytes:
        return bytes(self._buf)
