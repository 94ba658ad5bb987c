"""Serialize decoded messages back to ULOG wire bytes.

Each content encoder mirrors the matching decoder in ``engine.py``, so a log
decoded with ``ParserConfig.round_trip()`` re-encodes to the same bytes.
"""

from __future__ import annotations

import math
import struct
from collections.abc import Iterable
from typing import Any, BinaryIO

from ulog_codec.errors import EncodeError
from ulog_codec.instance import FieldValue, FormatInstance
from ulog_codec.messages import (
    AddSubscription,
    DefaultParameter,
    Dropout,
    FileHeader,
    FlagBits,
    FormatMessage,
    Info,
    LoggedData,
    LoggedString,
    MultiInfo,
    Parameter,
    RawMessage,
    ULogMessage,
)
from ulog_codec.parsing.format_parser import encode_format
from ulog_codec.types import OtherType, PrimitiveType, TypeExpr

MAX_CONTENT_SIZE = 0xFFFF


def encode_value(value: FieldValue) -> bytes:
    """Encode a field value as little-endian bytes, recursing into formats."""
    base_type = value.base_type
    if isinstance(base_type, OtherType):
        items = value.value if value.is_array else [value.value]
        return b"".join(encode_instance(item) for item in items)

    if base_type is PrimitiveType.CHAR:
        return bytes(value.value)
    items = value.value if value.is_array else [value.value]
    raw = value.raw
    if raw is None or len(raw) != len(items) * base_type.size_bytes:
        return b"".join(_pack_primitive(base_type, v) for v in items)
    size = base_type.size_bytes
    return b"".join(
        _pack_primitive(base_type, v, raw[i * size:(i + 1) * size])
        for i, v in enumerate(items)
    )


def _pack_primitive(base_type: PrimitiveType, v: Any, raw: bytes | None = None) -> bytes:
    if raw is not None and _is_same_float(base_type, raw, v):
        return raw
    if base_type is PrimitiveType.BOOL:
        return b"\x01" if v else b"\x00"
    if base_type is PrimitiveType.CHAR:
        return bytes(v)
    try:
        return struct.pack("<" + base_type.struct_format, v)
    except struct.error as e:
        raise EncodeError(f"Cannot encode {v!r} as {base_type.value}: {e}") from e


def _is_same_float(base_type: PrimitiveType, raw: bytes, v: Any) -> bool:
    """Whether ``raw`` still encodes ``v``, treating any two NaNs as equal."""
    if base_type not in (PrimitiveType.FLOAT, PrimitiveType.DOUBLE) or not isinstance(v, float):
        return False
    (decoded,) = struct.unpack("<" + base_type.struct_format, raw)
    return decoded == v or (math.isnan(decoded) and math.isnan(v))


def encode_instance(instance: FormatInstance) -> bytes:
    """Encode the fields of a decoded format, in order."""
    return b"".join(encode_value(f.value) for f in instance.fields)


def _encode_key(type_expr: TypeExpr, name: str) -> bytes:
    key = f"{type_expr} {name}".encode("utf-8")
    if len(key) > 0xFF:
        raise EncodeError(f"Key '{name}' is longer than 255 bytes")
    return bytes([len(key)]) + key


def encode_content(message: ULogMessage) -> bytes:
    """Encode the content of a record, without the TLV framing."""
    if isinstance(message, FileHeader):
        return message.to_bytes()
    if isinstance(message, RawMessage):
        return bytes(message.raw_bytes)
    if isinstance(message, FlagBits):
        if len(message.compat_flags) != 8 or len(message.incompat_flags) != 8:
            raise EncodeError("Flag bits must hold 8 compat and 8 incompat bytes")
        return (
            bytes(message.compat_flags)
            + bytes(message.incompat_flags)
            + struct.pack("<3Q", *message.appended_data_offsets)
            + bytes(message.extra_bytes)
        )
    if isinstance(message, FormatMessage):
        return encode_format(message.format).encode("utf-8")
    if isinstance(message, LoggedData):
        return struct.pack("<H", message.msg_id) + encode_instance(message.data)
    if isinstance(message, AddSubscription):
        return (
            struct.pack("<BH", message.multi_id, message.msg_id)
            + message.message_name.encode("utf-8")
        )
    if isinstance(message, Info):
        return _encode_key(message.type_expr, message.key) + encode_value(message.value)
    if isinstance(message, MultiInfo):
        return (
            bytes([1 if message.is_continued else 0])
            + _encode_key(message.type_expr, message.key)
            + encode_value(message.value)
        )
    if isinstance(message, Parameter):
        return _encode_key(message.type_expr, message.key) + encode_value(message.value)
    if isinstance(message, DefaultParameter):
        return (
            bytes([message.default_types])
            + _encode_key(message.type_expr, message.key)
            + encode_value(message.value)
        )
    if isinstance(message, LoggedString):
        tag = b"" if message.tag is None else struct.pack("<H", message.tag)
        return (
            bytes([message.level])
            + tag
            + struct.pack("<Q", message.timestamp)
            + message.text.encode("utf-8")
        )
    if isinstance(message, Dropout):
        return struct.pack("<H", message.duration)
    raise EncodeError(f"Cannot encode message of type {type(message).__name__}")


def encode_message(message: ULogMessage) -> bytes:
    """Encode a message as a TLV record. The file header is written raw."""
    content = encode_content(message)
    if isinstance(message, FileHeader):
        return content
    if len(content) > MAX_CONTENT_SIZE:
        raise EncodeError(
            f"{type(message).__name__} content is {len(content)} bytes, "
            f"the limit is {MAX_CONTENT_SIZE}"
        )
    return struct.pack("<HB", len(content), message.message_type) + content


class ULogWriter:
    """Writes messages to a binary sink.

    Can be used as a context manager, in which case the sink is flushed on
    exit. Closing the sink is left to its owner.
    """

    def __init__(self, sink: BinaryIO) -> None:
        self._sink = sink
        self.bytes_written = 0

    def write(self, message: ULogMessage) -> int:
        """Write one message, returning the number of bytes written."""
        data = encode_message(message)
        self._sink.write(data)
        self.bytes_written += len(data)
        return len(data)

    def write_all(self, messages: Iterable[ULogMessage]) -> int:
        """Write every message in order, returning the number of bytes written."""
        total = 0
        for message in messages:
            total += self.write(message)
        return total

    def flush(self) -> None:
        flush = getattr(self._sink, "flush", None)
        if flush is not None:
            flush()

    def __enter__(self) -> ULogWriter:
        return self

    def __exit__(self, *args: Any) -> None:
        self.flush()


def write_messages(messages: Iterable[ULogMessage], sink: BinaryIO) -> int:
    """Encode ``messages`` into ``sink``; returns the number of bytes written."""
    with ULogWriter(sink) as writer:
        return writer.write_all(messages)
