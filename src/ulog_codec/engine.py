"""Streaming ULOG decoder.

``ULogEngine`` walks a byte stream exactly once, yielding one message per
record. Formats are resolved lazily, by name, at the time a data record
references them.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator
from dataclasses import replace
from enum import Enum
from typing import Any, BinaryIO

from ulog_codec.config import ParserConfig
from ulog_codec.cursor import ByteCursor
from ulog_codec.errors import (
    InvalidHeaderError,
    InvalidMagicBitsError,
    MissingTimestampError,
    NestingDepthError,
    UndefinedSubscriptionError,
    UnexpectedEndOfFileError,
    UnknownIncompatBitsError,
    UnknownParameterTypeError,
)
from ulog_codec.instance import FieldValue, FormatInstance, InstanceField
from ulog_codec.messages import (
    FLAG_BITS_SIZE,
    HEADER_SIZE,
    INCOMPAT_FLAG0_DATA_APPENDED_MASK,
    MAGIC,
    AddSubscription,
    DefaultParameter,
    Dropout,
    FileHeader,
    FlagBits,
    FormatMessage,
    Ignored,
    Info,
    LoggedData,
    LoggedString,
    LogLevel,
    MultiInfo,
    Parameter,
    Subscription,
    ULogMessage,
    ULogMessageType,
    Unhandled,
)
from ulog_codec.parsing.format_parser import FormatParser
from ulog_codec.source import ByteSource
from ulog_codec.types import (
    PADDING_PREFIX,
    TIMESTAMP_FIELD,
    FieldDefinition,
    FormatDefinition,
    FormatRegistry,
    OtherType,
    PrimitiveType,
    TypeExpr,
)

logger = logging.getLogger(__name__)

_PARAMETER_TYPES = (PrimitiveType.INT32, PrimitiveType.FLOAT)


class EngineState(Enum):
    HEADER = "header"
    DEFINITIONS = "definitions"
    DATA = "data"
    EOF = "eof"
    ERROR = "error"


class SubscriptionFilter:
    """Tracks which msg_ids belong to an allow-list of subscription names.

    The wire only announces ``msg_id -> name`` bindings as they occur, so the
    allowed msg_ids are derived from each AddSubscription seen.
    """

    def __init__(self, names: Iterable[str] | None = None) -> None:
        self.names = frozenset(names) if names is not None else None
        self._allowed_ids: set[int] = set()

    def update(self, subscription: Subscription) -> None:
        if self.names is None:
            return
        if subscription.message_name in self.names:
            self._allowed_ids.add(subscription.msg_id)
        else:
            self._allowed_ids.discard(subscription.msg_id)

    def is_allowed(self, msg_id: int) -> bool:
        return self.names is None or msg_id in self._allowed_ids


class ULogEngine:
    """Pull-based decoder over a binary stream of ULOG data.

    Iterate over the engine, or call ``next_message()`` until it returns
    None. Any error moves the engine to ``EngineState.ERROR``; the error is
    raised once and the engine yields nothing afterwards.
    """

    def __init__(
        self,
        stream: BinaryIO,
        config: ParserConfig | None = None,
        **overrides: Any,
    ) -> None:
        config = config if config is not None else ParserConfig()
        if overrides:
            config = replace(config, **overrides)
        self._config = config
        self._source = ByteSource(stream)
        self._state = EngineState.HEADER
        self._header: FileHeader | None = None
        self._flag_bits: FlagBits | None = None
        self._formats = FormatRegistry()
        self._subscriptions: dict[int, Subscription] = {}
        self._multi_instance_names: set[str] = set()
        self._filter = SubscriptionFilter(config.subscription_allow_list)
        self._format_parser = FormatParser()

    # Accessors

    @property
    def config(self) -> ParserConfig:
        return self._config

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def header(self) -> FileHeader | None:
        return self._header

    @property
    def flag_bits(self) -> FlagBits | None:
        return self._flag_bits

    @property
    def formats(self) -> FormatRegistry:
        return self._formats

    @property
    def subscriptions(self) -> dict[int, Subscription]:
        """Live subscriptions keyed by msg_id."""
        return dict(self._subscriptions)

    @property
    def multi_instance_names(self) -> frozenset[str]:
        return frozenset(self._multi_instance_names)

    @property
    def bytes_read(self) -> int:
        return self._source.bytes_read

    @property
    def max_bytes_to_read(self) -> int | None:
        return self._source.limit

    def get_format(self, name: str) -> FormatDefinition:
        return self._formats.get_or_raise(name)

    def get_subscription(self, msg_id: int) -> Subscription:
        subscription = self._subscriptions.get(msg_id)
        if subscription is None:
            raise UndefinedSubscriptionError(msg_id)
        return subscription

    def set_subscription_allow_list(self, names: Iterable[str] | None) -> None:
        """Restrict decoding to the named subscriptions (None decodes all)."""
        if names is None:
            self._config = replace(self._config, subscription_allow_list=None)
        else:
            self._config = self._config.with_allow_list(names)
        self._filter = SubscriptionFilter(self._config.subscription_allow_list)
        for subscription in self._subscriptions.values():
            self._filter.update(subscription)

    # Iteration

    def __iter__(self) -> Iterator[ULogMessage]:
        return self

    def __next__(self) -> ULogMessage:
        message = self.next_message()
        if message is None:
            raise StopIteration
        return message

    def next_message(self) -> ULogMessage | None:
        """Decode and return the next message, or None at the end of the log."""
        if self._state in (EngineState.EOF, EngineState.ERROR):
            return None
        try:
            return self._next()
        except Exception:
            self._state = EngineState.ERROR
            raise

    def _next(self) -> ULogMessage | None:
        if self._state is EngineState.HEADER:
            self._header = self._read_file_header()
            self._state = EngineState.DEFINITIONS
            if self._config.include_header:
                return self._header

        if self._source.limit_reached:
            logger.debug(
                "Reached appended data offset %d, stopping", self._source.limit
            )
            self._state = EngineState.EOF
            return None

        record = self._read_record()
        if record is None:
            self._state = EngineState.EOF
            return None
        msg_type, payload = record

        if self._state is EngineState.DEFINITIONS:
            return self._handle_definition(msg_type, payload)
        return self._handle_data(msg_type, payload)

    # Framing

    def _read_file_header(self) -> FileHeader:
        try:
            raw = self._source.read_exact(HEADER_SIZE)
        except UnexpectedEndOfFileError as e:
            raise InvalidHeaderError() from e
        if len(raw) != HEADER_SIZE:
            raise InvalidHeaderError()
        if raw[:len(MAGIC)] != MAGIC:
            raise InvalidMagicBitsError(raw[:len(MAGIC)])
        cursor = ByteCursor(raw[len(MAGIC):])
        return FileHeader(version=cursor.take_u8(), timestamp=cursor.take_u64())

    def _read_record(self) -> tuple[int, bytes] | None:
        """Read one TLV record, or return None at a clean end of stream."""
        length_bytes = self._source.read_exact(2)
        if not length_bytes:
            return None
        length = int.from_bytes(length_bytes, "little")
        msg_type = self._source.read_required(1)[0]
        payload = self._source.read_required(length)
        return msg_type, payload

    # Dispatch

    def _handle_definition(self, msg_type: int, payload: bytes) -> ULogMessage:
        cursor = ByteCursor(payload)

        if msg_type == ULogMessageType.FLAG_BITS:
            flag_bits = self._parse_flag_bits(cursor)
            self._flag_bits = flag_bits
            if flag_bits.has_data_appended:
                offsets = [o for o in flag_bits.appended_data_offsets if o > 0]
                if offsets:
                    self._source.limit = min(offsets)
            return flag_bits
        if msg_type == ULogMessageType.FORMAT:
            definition = self._format_parser.parse(cursor.take_string(len(payload)))
            self._formats.register(definition)
            return FormatMessage(definition)
        if msg_type == ULogMessageType.ADD_SUBSCRIPTION:
            message = self._parse_subscription(cursor)
            # The first subscription ends the definitions section
            self._state = EngineState.DATA
            return message

        message = self._parse_common(msg_type, cursor)
        if message is not None:
            return message
        return self._unhandled(msg_type, payload)

    def _handle_data(self, msg_type: int, payload: bytes) -> ULogMessage:
        cursor = ByteCursor(payload)

        if msg_type == ULogMessageType.DATA:
            msg_id = cursor.take_u16()
            subscription = self.get_subscription(msg_id)
            if not self._filter.is_allowed(msg_id):
                return Ignored(msg_type, payload)
            return self._parse_logged_data(subscription, cursor)
        if msg_type == ULogMessageType.ADD_SUBSCRIPTION:
            return self._parse_subscription(cursor)
        if msg_type == ULogMessageType.REMOVE_SUBSCRIPTION:
            msg_id = cursor.take_u16()
            removed = self._subscriptions.pop(msg_id, None)
            logger.debug("Removed subscription %d (%s)", msg_id, removed)
            return Unhandled(msg_type, payload)
        if msg_type in (ULogMessageType.LOGGING, ULogMessageType.LOGGING_TAGGED):
            return self._parse_logged_string(msg_type, cursor)
        if msg_type == ULogMessageType.DROPOUT:
            return Dropout(duration=cursor.take_u16())

        message = self._parse_common(msg_type, cursor)
        if message is not None:
            return message
        return self._unhandled(msg_type, payload)

    def _parse_common(self, msg_type: int, cursor: ByteCursor) -> ULogMessage | None:
        """Records accepted in both the definitions and data sections."""
        if msg_type == ULogMessageType.INFO:
            return self._parse_info(cursor)
        if msg_type == ULogMessageType.INFO_MULTIPLE:
            return self._parse_multi_info(cursor)
        if msg_type == ULogMessageType.PARAMETER:
            return self._parse_parameter(cursor)
        if msg_type == ULogMessageType.PARAMETER_DEFAULT:
            return self._parse_default_parameter(cursor)
        return None

    def _unhandled(self, msg_type: int, payload: bytes) -> Unhandled:
        known = ULogMessageType.from_byte(msg_type)
        if known is None:
            logger.warning("Unknown message type: 0x%02X", msg_type)
        else:
            logger.debug(
                "Unhandled %s message in %s section", known.name, self._state.value
            )
        return Unhandled(msg_type, payload)

    # Definitions section records

    def _parse_flag_bits(self, cursor: ByteCursor) -> FlagBits:
        if cursor.remaining_len() > FLAG_BITS_SIZE:
            logger.warning(
                "Flag bits message is %d bytes, expected %d. Keeping extra bytes.",
                cursor.remaining_len(),
                FLAG_BITS_SIZE,
            )
        compat_flags = cursor.advance(8)
        incompat_flags = cursor.advance(8)
        if incompat_flags[0] & ~INCOMPAT_FLAG0_DATA_APPENDED_MASK or any(incompat_flags[1:]):
            raise UnknownIncompatBitsError(incompat_flags)
        offsets = (cursor.take_u64(), cursor.take_u64(), cursor.take_u64())
        return FlagBits(
            compat_flags=compat_flags,
            incompat_flags=incompat_flags,
            appended_data_offsets=offsets,
            extra_bytes=cursor.into_remaining_bytes(),
        )

    def _parse_subscription(self, cursor: ByteCursor) -> AddSubscription:
        multi_id = cursor.take_u8()
        msg_id = cursor.take_u16()
        name = cursor.take_string(cursor.remaining_len())
        self._formats.get_or_raise(name)

        subscription = Subscription(msg_id=msg_id, multi_id=multi_id, message_name=name)
        self._subscriptions[msg_id] = subscription
        self._filter.update(subscription)
        if multi_id > 0:
            self._multi_instance_names.add(name)
        return AddSubscription(subscription)

    # Key/value records

    def _parse_key(self, cursor: ByteCursor) -> FieldDefinition:
        key_len = cursor.take_u8()
        return self._format_parser.parse_field(cursor.take_string(key_len))

    def _parse_info(self, cursor: ByteCursor) -> Info:
        key = self._parse_key(cursor)
        value = self._decode_value(key.type_expr, cursor, 1)
        logger.debug("INFO %s %s: %s", key.type_expr, key.name, value)
        return Info(key=key.name, type_expr=key.type_expr, value=value)

    def _parse_multi_info(self, cursor: ByteCursor) -> MultiInfo:
        is_continued = cursor.take_u8() != 0
        key = self._parse_key(cursor)
        value = self._decode_value(key.type_expr, cursor, 1)
        logger.debug(
            "MULTI_INFO %s %s: %s (continued=%s)", key.type_expr, key.name, value, is_continued
        )
        return MultiInfo(
            is_continued=is_continued, key=key.name, type_expr=key.type_expr, value=value
        )

    def _parse_parameter_value(self, key: FieldDefinition, cursor: ByteCursor) -> FieldValue:
        base_type = key.type_expr.base_type
        if key.type_expr.is_array or base_type not in _PARAMETER_TYPES:
            raise UnknownParameterTypeError(
                f"Unsupported parameter type '{key.type_expr}' for '{key.name}'"
            )
        value = self._decode_value(key.type_expr, cursor, 1)
        logger.debug("PARAMETER %s %s: %s", key.type_expr, key.name, value)
        return value

    def _parse_parameter(self, cursor: ByteCursor) -> Parameter:
        key = self._parse_key(cursor)
        value = self._parse_parameter_value(key, cursor)
        return Parameter(key=key.name, type_expr=key.type_expr, value=value)

    def _parse_default_parameter(self, cursor: ByteCursor) -> DefaultParameter:
        default_types = cursor.take_u8()
        key = self._parse_key(cursor)
        value = self._parse_parameter_value(key, cursor)
        return DefaultParameter(
            default_types=default_types, key=key.name, type_expr=key.type_expr, value=value
        )

    # Data section records

    def _parse_logged_string(self, msg_type: int, cursor: ByteCursor) -> LoggedString:
        level = LogLevel.from_byte(cursor.take_u8())
        tag = cursor.take_u16() if msg_type == ULogMessageType.LOGGING_TAGGED else None
        timestamp = cursor.take_u64()
        text = cursor.take_string(cursor.remaining_len())
        return LoggedString(level=level, timestamp=timestamp, text=text, tag=tag)

    def _parse_logged_data(self, subscription: Subscription, cursor: ByteCursor) -> LoggedData:
        definition = self._formats.get_or_raise(subscription.message_name)
        data = self._decode_format(definition, cursor, 1)

        timestamp = _find_timestamp(data)
        if timestamp is None:
            raise MissingTimestampError(definition.name)

        if subscription.message_name in self._multi_instance_names:
            data.multi_id_index = subscription.multi_id

        if not cursor.is_empty():
            logger.warning(
                "%d leftover bytes after decoding '%s' data. Possible data corruption.",
                cursor.remaining_len(),
                definition.name,
            )

        data.fields = [f for f in data.fields if self._keep_top_level(f)]
        return LoggedData(timestamp=timestamp, msg_id=subscription.msg_id, data=data)

    def _keep_top_level(self, field: InstanceField) -> bool:
        if field.name == TIMESTAMP_FIELD:
            return self._config.include_timestamp
        if field.name.startswith(PADDING_PREFIX):
            return self._config.include_padding
        return True

    # Recursive decode

    def _decode_format(
        self, definition: FormatDefinition, cursor: ByteCursor, depth: int
    ) -> FormatInstance:
        if depth > self._config.max_nesting_depth:
            raise NestingDepthError(definition.name, self._config.max_nesting_depth)

        fields: list[InstanceField] = []
        timestamp: int | None = None
        for field in definition.fields:
            if field.is_padding:
                padding = self._decode_padding(field, cursor)
                if padding is not None:
                    fields.append(padding)
                continue

            value = self._decode_value(field.type_expr, cursor, depth)
            if timestamp is None and field.is_timestamp:
                timestamp = value.value
            fields.append(InstanceField(name=field.name, type_expr=field.type_expr, value=value))

        return FormatInstance(
            name=definition.name, fields=fields, definition=definition, timestamp=timestamp
        )

    def _decode_padding(self, field: FieldDefinition, cursor: ByteCursor) -> InstanceField | None:
        if not field.type_expr.is_array:
            logger.warning("Padding '%s' has a scalar type. Ignoring.", field.name)
            return None

        base_type = field.type_expr.base_type
        element_size = 1 if isinstance(base_type, OtherType) else base_type.size_bytes
        size = field.type_expr.array_size * element_size

        if size > cursor.remaining_len():
            if cursor.is_empty():
                logger.debug("Padding '%s' past the end of the message, ignoring", field.name)
            else:
                logger.warning(
                    "Padding '%s' is %d bytes but only %d remain. Ignoring.",
                    field.name,
                    size,
                    cursor.remaining_len(),
                )
            return None

        raw = cursor.advance(size)
        if not self._config.include_padding:
            return None
        return InstanceField(
            name=field.name,
            type_expr=field.type_expr,
            value=FieldValue(PrimitiveType.UINT8, list(raw), is_array=True),
        )

    def _decode_value(self, type_expr: TypeExpr, cursor: ByteCursor, depth: int) -> FieldValue:
        base_type = type_expr.base_type
        if isinstance(base_type, OtherType):
            child = self._formats.get_or_raise(base_type.name)
            if type_expr.is_array:
                items = [
                    self._decode_format(child, cursor, depth + 1)
                    for _ in range(type_expr.array_size)  # type: ignore[arg-type]
                ]
                return FieldValue(base_type, items, is_array=True)
            return FieldValue(base_type, self._decode_format(child, cursor, depth + 1))

        start = cursor.position
        if type_expr.is_array:
            values = cursor.take_primitive_array(base_type, type_expr.array_size)  # type: ignore[arg-type]
            value = FieldValue(base_type, values, is_array=True)
        else:
            value = FieldValue(base_type, cursor.take_primitive(base_type))
        if base_type is PrimitiveType.FLOAT and value.has_nan:
            # NaN payload bits do not survive the widening to a python float
            value.raw = cursor.consumed_since(start)
        return value


def _find_timestamp(instance: FormatInstance) -> int | None:
    """Return the first ``uint64_t timestamp`` value, searching depth-first."""
    for field in instance.fields:
        value = field.value
        if field.name == TIMESTAMP_FIELD and value.base_type is PrimitiveType.UINT64 and not value.is_array:
            return value.value
        if isinstance(value.base_type, OtherType):
            nested = value.value if value.is_array else [value.value]
            for item in nested:
                found = _find_timestamp(item)
                if found is not None:
                    return found
    return None


def iter_messages(
    path_or_stream: str | os.PathLike[str] | BinaryIO,
    config: ParserConfig | None = None,
    **overrides: Any,
) -> Iterator[ULogMessage]:
    """Yield every message of a log file or binary stream.

    Paths are opened here and closed when iteration finishes.
    """
    if isinstance(path_or_stream, (str, os.PathLike)):
        with open(path_or_stream, "rb") as f:
            yield from ULogEngine(f, config, **overrides)
    else:
        yield from ULogEngine(path_or_stream, config, **overrides)
