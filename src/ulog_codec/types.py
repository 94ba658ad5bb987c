"""Format (schema) definitions for ULOG logs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Union

from ulog_codec.errors import UndefinedFormatError

logger = logging.getLogger(__name__)

PADDING_PREFIX = "_padding"
TIMESTAMP_FIELD = "timestamp"


class PrimitiveType(Enum):
    """The fixed-width primitive types a ULOG format can use."""

    INT8 = "int8_t"
    INT16 = "int16_t"
    INT32 = "int32_t"
    INT64 = "int64_t"
    UINT8 = "uint8_t"
    UINT16 = "uint16_t"
    UINT32 = "uint32_t"
    UINT64 = "uint64_t"
    FLOAT = "float"
    DOUBLE = "double"
    BOOL = "bool"
    CHAR = "char"

    @property
    def size_bytes(self) -> int:
        """Return the size in bytes for this primitive type."""
        return _SIZES[self]

    @property
    def struct_format(self) -> str:
        """Return the little-endian ``struct`` code for this type."""
        return _STRUCT_FORMATS[self]

    @property
    def is_integer(self) -> bool:
        return self in _INTEGER_TYPES

    @property
    def is_float(self) -> bool:
        return self in (PrimitiveType.FLOAT, PrimitiveType.DOUBLE)


_SIZES = {
    PrimitiveType.INT8: 1,
    PrimitiveType.INT16: 2,
    PrimitiveType.INT32: 4,
    PrimitiveType.INT64: 8,
    PrimitiveType.UINT8: 1,
    PrimitiveType.UINT16: 2,
    PrimitiveType.UINT32: 4,
    PrimitiveType.UINT64: 8,
    PrimitiveType.FLOAT: 4,
    PrimitiveType.DOUBLE: 8,
    PrimitiveType.BOOL: 1,
    PrimitiveType.CHAR: 1,
}

_STRUCT_FORMATS = {
    PrimitiveType.INT8: "b",
    PrimitiveType.INT16: "h",
    PrimitiveType.INT32: "i",
    PrimitiveType.INT64: "q",
    PrimitiveType.UINT8: "B",
    PrimitiveType.UINT16: "H",
    PrimitiveType.UINT32: "I",
    PrimitiveType.UINT64: "Q",
    PrimitiveType.FLOAT: "f",
    PrimitiveType.DOUBLE: "d",
    PrimitiveType.BOOL: "?",
    PrimitiveType.CHAR: "c",
}

_INTEGER_TYPES = frozenset({
    PrimitiveType.INT8,
    PrimitiveType.INT16,
    PrimitiveType.INT32,
    PrimitiveType.INT64,
    PrimitiveType.UINT8,
    PrimitiveType.UINT16,
    PrimitiveType.UINT32,
    PrimitiveType.UINT64,
})

# Mapping from wire type names to PrimitiveType enum values
PRIMITIVE_TYPE_NAMES: dict[str, PrimitiveType] = {pt.value: pt for pt in PrimitiveType}


@dataclass(frozen=True)
class OtherType:
    """Reference to another format by name, resolved when data is decoded."""

    name: str


BaseType = Union[PrimitiveType, OtherType]


def resolve_base_type(name: str) -> BaseType:
    """Map a wire type identifier to a primitive, or a lazy format reference."""
    primitive = PRIMITIVE_TYPE_NAMES.get(name)
    if primitive is not None:
        return primitive
    return OtherType(name)


def base_type_name(base_type: BaseType) -> str:
    if isinstance(base_type, OtherType):
        return base_type.name
    return base_type.value


@dataclass(frozen=True)
class TypeExpr:
    """A base type plus an optional fixed array size, e.g. ``float[4]``."""

    base_type: BaseType
    array_size: int | None = None

    @property
    def is_array(self) -> bool:
        return self.array_size is not None

    @property
    def is_scalar(self) -> bool:
        return self.array_size is None

    @property
    def is_other(self) -> bool:
        return isinstance(self.base_type, OtherType)

    @property
    def type_name(self) -> str:
        """Return the wire name of the base type."""
        return base_type_name(self.base_type)

    def __str__(self) -> str:
        if self.array_size is None:
            return self.type_name
        return f"{self.type_name}[{self.array_size}]"


@dataclass(frozen=True)
class FieldDefinition:
    """Definition of a field within a format."""

    name: str
    type_expr: TypeExpr

    @property
    def is_padding(self) -> bool:
        return self.name.startswith(PADDING_PREFIX)

    @property
    def is_timestamp(self) -> bool:
        """True for a scalar ``uint64_t timestamp`` field."""
        return (
            self.name == TIMESTAMP_FIELD
            and self.type_expr.base_type is PrimitiveType.UINT64
            and self.type_expr.is_scalar
        )


@dataclass(frozen=True)
class FormatDefinition:
    """A named, ordered list of fields: the layout of a logged message.

    Definitions are immutable once parsed and are shared by every decoded
    instance (and every array element) that conforms to them.
    """

    name: str
    fields: tuple[FieldDefinition, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.fields, tuple):
            object.__setattr__(self, "fields", tuple(self.fields))

    def get_field(self, name: str) -> FieldDefinition | None:
        """Get a field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def has_timestamp_field(self) -> bool:
        """True if a top-level ``uint64_t timestamp`` field is declared."""
        return any(f.is_timestamp for f in self.fields)

    @property
    def nested_type_names(self) -> list[str]:
        """Names of the formats referenced by this definition's fields."""
        return [f.type_expr.type_name for f in self.fields if f.type_expr.is_other]


class FormatRegistry:
    """Registry of the formats defined in one parse session.

    Formats are keyed by name. Registering a name twice replaces the earlier
    definition; instances decoded before the replacement keep a reference to
    the definition they were decoded with.
    """

    def __init__(self) -> None:
        self._formats: dict[str, FormatDefinition] = {}

    def register(self, format_def: FormatDefinition) -> None:
        """Register a format definition."""
        if format_def.name in self._formats:
            logger.debug("Format '%s' redefined, replacing earlier definition", format_def.name)
        self._formats[format_def.name] = format_def

    def get(self, name: str) -> FormatDefinition | None:
        """Get a format by name."""
        return self._formats.get(name)

    def get_or_raise(self, name: str) -> FormatDefinition:
        """Get a format by name, raising if not found."""
        format_def = self._formats.get(name)
        if format_def is None:
            raise UndefinedFormatError(name)
        return format_def

    def list_formats(self) -> list[str]:
        """List all registered format names."""
        return list(self._formats.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._formats

    def __len__(self) -> int:
        return len(self._formats)

    def __iter__(self):
        return iter(self._formats.values())
