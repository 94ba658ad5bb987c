"""Wire-level messages yielded by the engine and consumed by the encoder.

All messages derive from ``ULogMessage``. Records the engine does not decode
are carried by the two ``RawMessage`` variants, ``Unhandled`` (unknown or
unsupported record types) and ``Ignored`` (data excluded by the
subscription allow-list), which keep the complete record payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar

from ulog_codec.errors import FormatParseError
from ulog_codec.instance import FieldValue, FormatInstance
from ulog_codec.types import FormatDefinition, TypeExpr

MAGIC = bytes([0x55, 0x4C, 0x6F, 0x67, 0x01, 0x12, 0x35])  # "ULog" 01 12 35
HEADER_SIZE = 16
FLAG_BITS_SIZE = 40


class ULogMessageType(IntEnum):
    """Record type tags."""

    FORMAT = ord("F")
    DATA = ord("D")
    INFO = ord("I")
    INFO_MULTIPLE = ord("M")
    PARAMETER = ord("P")
    PARAMETER_DEFAULT = ord("Q")
    ADD_SUBSCRIPTION = ord("A")
    REMOVE_SUBSCRIPTION = ord("R")
    SYNC = ord("S")
    DROPOUT = ord("O")
    LOGGING = ord("L")
    LOGGING_TAGGED = ord("C")
    FLAG_BITS = ord("B")

    @classmethod
    def from_byte(cls, byte: int) -> ULogMessageType | None:
        """Return the known type for a tag byte, or None."""
        try:
            return cls(byte)
        except ValueError:
            return None


class LogLevel(IntEnum):
    """Syslog-style levels of logged strings, stored as ASCII digits."""

    EMERG = ord("0")
    ALERT = ord("1")
    CRIT = ord("2")
    ERR = ord("3")
    WARNING = ord("4")
    NOTICE = ord("5")
    INFO = ord("6")
    DEBUG = ord("7")

    @classmethod
    def from_byte(cls, byte: int) -> LogLevel:
        try:
            return cls(byte)
        except ValueError:
            raise FormatParseError(f"Invalid LogLevel value: {byte:02X}") from None

    @property
    def logging_level(self) -> int:
        """The closest level of the standard ``logging`` module."""
        return _LOGGING_LEVELS[self]

    def __str__(self) -> str:
        return self.name


_LOGGING_LEVELS = {
    LogLevel.EMERG: logging.CRITICAL,
    LogLevel.ALERT: logging.CRITICAL,
    LogLevel.CRIT: logging.CRITICAL,
    LogLevel.ERR: logging.ERROR,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.NOTICE: logging.INFO,
    LogLevel.INFO: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
}

# Bit 0 of the first compat flag byte: the log contains default parameters
COMPAT_FLAG0_DEFAULT_PARAMETERS_MASK = 0b0000_0001
# Bit 0 of the first incompat flag byte: data is appended to the log
INCOMPAT_FLAG0_DATA_APPENDED_MASK = 0b0000_0001

DEFAULT_TYPE_SYSTEM_WIDE = 0b01
DEFAULT_TYPE_CONFIGURATION = 0b10


@dataclass(frozen=True)
class Subscription:
    """Binding of a msg_id to a format name and multi-instance index."""

    msg_id: int
    multi_id: int
    message_name: str


class ULogMessage:
    """Base class of every message in a ULOG stream."""

    message_type: ClassVar[int]


@dataclass
class FileHeader(ULogMessage):
    """The 16-byte file header. Not TLV framed."""

    version: int
    timestamp: int

    def to_bytes(self) -> bytes:
        return MAGIC + bytes([self.version]) + self.timestamp.to_bytes(8, "little")


@dataclass
class FlagBits(ULogMessage):
    """Compatibility flags and appended-data offsets."""

    message_type: ClassVar[int] = ULogMessageType.FLAG_BITS

    compat_flags: bytes
    incompat_flags: bytes
    appended_data_offsets: tuple[int, int, int]
    extra_bytes: bytes = b""

    @property
    def has_default_parameters(self) -> bool:
        return bool(self.compat_flags[0] & COMPAT_FLAG0_DEFAULT_PARAMETERS_MASK)

    @property
    def has_data_appended(self) -> bool:
        return bool(self.incompat_flags[0] & INCOMPAT_FLAG0_DATA_APPENDED_MASK)


@dataclass
class FormatMessage(ULogMessage):
    """A format (schema) definition record."""

    message_type: ClassVar[int] = ULogMessageType.FORMAT

    format: FormatDefinition


@dataclass
class LoggedData(ULogMessage):
    """A timestamped data record decoded through its subscription's format."""

    message_type: ClassVar[int] = ULogMessageType.DATA

    timestamp: int
    msg_id: int
    data: FormatInstance


@dataclass
class AddSubscription(ULogMessage):
    message_type: ClassVar[int] = ULogMessageType.ADD_SUBSCRIPTION

    subscription: Subscription

    @property
    def msg_id(self) -> int:
        return self.subscription.msg_id

    @property
    def multi_id(self) -> int:
        return self.subscription.multi_id

    @property
    def message_name(self) -> str:
        return self.subscription.message_name


@dataclass
class Info(ULogMessage):
    """A key/value information record."""

    message_type: ClassVar[int] = ULogMessageType.INFO

    key: str
    type_expr: TypeExpr
    value: FieldValue


@dataclass
class MultiInfo(ULogMessage):
    """An information record whose value may continue in the next record."""

    message_type: ClassVar[int] = ULogMessageType.INFO_MULTIPLE

    is_continued: bool
    key: str
    type_expr: TypeExpr
    value: FieldValue


@dataclass
class Parameter(ULogMessage):
    message_type: ClassVar[int] = ULogMessageType.PARAMETER

    key: str
    type_expr: TypeExpr
    value: FieldValue

    def __str__(self) -> str:
        return f"{self.key}: {self.value}"


@dataclass
class DefaultParameter(ULogMessage):
    """A parameter default, tagged with the kinds of default it represents."""

    message_type: ClassVar[int] = ULogMessageType.PARAMETER_DEFAULT

    default_types: int
    key: str
    type_expr: TypeExpr
    value: FieldValue

    @property
    def is_system_wide(self) -> bool:
        return bool(self.default_types & DEFAULT_TYPE_SYSTEM_WIDE)

    @property
    def is_configuration(self) -> bool:
        return bool(self.default_types & DEFAULT_TYPE_CONFIGURATION)

    def __str__(self) -> str:
        kinds = [
            name
            for name, flag in (("system", self.is_system_wide), ("configuration", self.is_configuration))
            if flag
        ]
        return f"{self.key}: {self.value} (default: {', '.join(kinds) or 'none'})"


@dataclass
class LoggedString(ULogMessage):
    """A text log entry. Tagged entries carry a ``tag``."""

    level: LogLevel
    timestamp: int
    text: str
    tag: int | None = None

    @property
    def is_tagged(self) -> bool:
        return self.tag is not None

    @property
    def message_type(self) -> int:  # type: ignore[override]
        if self.tag is None:
            return ULogMessageType.LOGGING
        return ULogMessageType.LOGGING_TAGGED


@dataclass
class Dropout(ULogMessage):
    """Marks a gap of ``duration`` milliseconds in which data was lost."""

    message_type: ClassVar[int] = ULogMessageType.DROPOUT

    duration: int


@dataclass
class RawMessage(ULogMessage):
    """A record kept as its raw payload bytes."""

    msg_type: int
    raw_bytes: bytes = field(default=b"", repr=False)

    @property
    def message_type(self) -> int:  # type: ignore[override]
        return self.msg_type


@dataclass
class Unhandled(RawMessage):
    """A record type the engine does not decode in the current state."""


@dataclass
class Ignored(RawMessage):
    """A data record excluded by the subscription allow-list."""
