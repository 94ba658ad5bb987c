"""Bounded little-endian reader over a single record payload."""

from __future__ import annotations

import struct
from typing import Any

from ulog_codec.errors import OutOfBoundsError, StringDecodeError
from ulog_codec.types import PrimitiveType


class ByteCursor:
    """Reads fixed-width values from a payload, tracking the position.

    Every read either consumes exactly the bytes it needs or raises
    ``OutOfBoundsError`` without moving the cursor.
    """

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(bytes(data))
        self._pos = 0

    @property
    def position(self) -> int:
        return self._pos

    def remaining_len(self) -> int:
        return len(self._data) - self._pos

    def is_empty(self) -> bool:
        return self._pos >= len(self._data)

    def advance(self, n: int) -> bytes:
        """Return the next ``n`` bytes and move past them."""
        remaining = self.remaining_len()
        if n < 0 or n > remaining:
            raise OutOfBoundsError(n, remaining)
        chunk = self._data[self._pos:self._pos + n].tobytes()
        self._pos += n
        return chunk

    def skip(self, n: int) -> None:
        self.advance(n)

    def _unpack(self, code: str, size: int) -> Any:
        return struct.unpack("<" + code, self.advance(size))[0]

    def take_u8(self) -> int:
        return self._unpack("B", 1)

    def take_u16(self) -> int:
        return self._unpack("H", 2)

    def take_u32(self) -> int:
        return self._unpack("I", 4)

    def take_u64(self) -> int:
        return self._unpack("Q", 8)

    def take_i8(self) -> int:
        return self._unpack("b", 1)

    def take_i16(self) -> int:
        return self._unpack("h", 2)

    def take_i32(self) -> int:
        return self._unpack("i", 4)

    def take_i64(self) -> int:
        return self._unpack("q", 8)

    def take_f32(self) -> float:
        return self._unpack("f", 4)

    def take_f64(self) -> float:
        return self._unpack("d", 8)

    def take_bool(self) -> bool:
        # Any nonzero byte is true
        return self.advance(1)[0] != 0

    def take_char(self) -> bytes:
        return self.advance(1)

    def take_primitive(self, prim: PrimitiveType) -> Any:
        """Read one scalar of the given primitive type."""
        if prim is PrimitiveType.BOOL:
            return self.take_bool()
        if prim is PrimitiveType.CHAR:
            return self.take_char()
        return self._unpack(prim.struct_format, prim.size_bytes)

    def take_primitive_array(self, prim: PrimitiveType, count: int) -> Any:
        """Read ``count`` consecutive values.

        ``char`` arrays are returned as ``bytes``, everything else as a list.
        """
        raw = self.advance(prim.size_bytes * count)
        if prim is PrimitiveType.CHAR:
            return raw
        if prim is PrimitiveType.BOOL:
            return [b != 0 for b in raw]
        return list(struct.unpack(f"<{count}{prim.struct_format}", raw))

    def take_string(self, n: int) -> str:
        """Read ``n`` bytes and decode them as UTF-8."""
        raw = self.advance(n)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StringDecodeError(f"Invalid UTF-8 at offset {self._pos - n}: {e}") from e

    def consumed_since(self, start: int) -> bytes:
        """Return the bytes read between ``start`` and the current position."""
        return self._data[start:self._pos].tobytes()

    def into_remaining_bytes(self) -> bytes:
        """Consume and return everything left in the payload."""
        return self.advance(self.remaining_len())
