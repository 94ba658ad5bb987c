"""Exception hierarchy for ULOG decoding and encoding."""

from __future__ import annotations


class ULogError(Exception):
    """Base class for all errors raised by ulog_codec."""


class InvalidHeaderError(ULogError):
    """The 16-byte file header is truncated."""

    def __init__(self, message: str = "Invalid header: file is shorter than 16 bytes") -> None:
        super().__init__(message)


class InvalidMagicBitsError(ULogError):
    """The file does not start with the ULOG magic bytes."""

    def __init__(self, magic: bytes) -> None:
        self.magic = magic
        super().__init__(f"Invalid magic bits {magic.hex()}. Not a ULOG file.")


class UnexpectedEndOfFileError(ULogError):
    """The stream ended in the middle of a record."""


class UnknownIncompatBitsError(ULogError):
    """The flag bits record sets incompatibility bits this decoder does not know."""

    def __init__(self, incompat_flags: bytes) -> None:
        self.incompat_flags = incompat_flags
        super().__init__(f"Unknown incompat bits: {incompat_flags.hex()}")


class MissingTimestampError(ULogError):
    """A logged data record has no uint64_t timestamp field."""

    def __init__(self, format_name: str) -> None:
        self.format_name = format_name
        super().__init__(f"Missing timestamp for logged data message '{format_name}'")


class UndefinedSubscriptionError(ULogError):
    """A logged data record references an unknown msg_id."""

    def __init__(self, msg_id: int) -> None:
        self.msg_id = msg_id
        super().__init__(f"Could not find subscription for msg_id: {msg_id}")


class UndefinedFormatError(ULogError):
    """A format name was referenced before it was defined."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Undefined format '{name}'")


class OutOfBoundsError(ULogError):
    """A read went past the end of a message payload."""

    def __init__(self, requested: int, remaining: int) -> None:
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Out of bounds: requested {requested} bytes, {remaining} remaining"
        )


class StringDecodeError(ULogError):
    """A string field is not valid UTF-8."""


class FormatParseError(ULogError):
    """A format definition, field key or enumerated value is malformed."""


class UnknownParameterTypeError(ULogError):
    """A parameter record uses a type other than scalar int32_t or float."""


class NestingDepthError(ULogError):
    """Nested formats recurse deeper than the configured limit."""

    def __init__(self, format_name: str, limit: int) -> None:
        self.format_name = format_name
        self.limit = limit
        super().__init__(
            f"Format '{format_name}' exceeds the maximum nesting depth of {limit}"
        )


class EncodeError(ULogError):
    """A message cannot be represented on the wire."""


class InvalidConfigurationError(ULogError):
    """Parser configuration values are invalid."""


class MissingFieldsError(ULogError):
    """A record binding names fields absent from the format definition."""

    def __init__(self, format_name: str, missing: list[str]) -> None:
        self.format_name = format_name
        self.missing = missing
        super().__init__(
            f"Format '{format_name}' is missing fields: {', '.join(missing)}"
        )


class TypeMismatchError(ULogError):
    """A decoded value does not match the type requested by a record binding."""
