"""ULog Codec - Streaming decoder and byte-exact encoder for ULOG flight logs."""

from ulog_codec.config import ParserConfig
from ulog_codec.encoder import ULogWriter, encode_content, encode_message, write_messages
from ulog_codec.engine import EngineState, SubscriptionFilter, ULogEngine, iter_messages
from ulog_codec.errors import ULogError
from ulog_codec.instance import FieldValue, FormatInstance, InstanceField
from ulog_codec.messages import (
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
from ulog_codec.parsing import FormatParser, encode_format
from ulog_codec.projection import ProjectedStream, RecordBinding, build_index, project
from ulog_codec.types import (
    FieldDefinition,
    FormatDefinition,
    FormatRegistry,
    OtherType,
    PrimitiveType,
    TypeExpr,
)

__all__ = [
    # Main API
    "ULogEngine",
    "iter_messages",
    "ParserConfig",
    "ULogWriter",
    "write_messages",
    "encode_message",
    "encode_content",
    "EngineState",
    "SubscriptionFilter",
    "ULogError",
    # Format definitions
    "FormatParser",
    "encode_format",
    "FormatDefinition",
    "FieldDefinition",
    "FormatRegistry",
    "PrimitiveType",
    "OtherType",
    "TypeExpr",
    # Decoded data
    "FormatInstance",
    "InstanceField",
    "FieldValue",
    # Messages
    "ULogMessage",
    "ULogMessageType",
    "FileHeader",
    "FlagBits",
    "FormatMessage",
    "LoggedData",
    "AddSubscription",
    "Subscription",
    "Info",
    "MultiInfo",
    "Parameter",
    "DefaultParameter",
    "LoggedString",
    "LogLevel",
    "Dropout",
    "Unhandled",
    "Ignored",
    # Projection
    "RecordBinding",
    "ProjectedStream",
    "build_index",
    "project",
]

__version__ = "0.1.0"
