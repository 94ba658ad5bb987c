"""Decoded instances of ULOG formats."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from ulog_codec.types import (
    BaseType,
    FormatDefinition,
    OtherType,
    PrimitiveType,
    TypeExpr,
)

_VARIANT_SUFFIX = {
    PrimitiveType.UINT8: "U8",
    PrimitiveType.UINT16: "U16",
    PrimitiveType.UINT32: "U32",
    PrimitiveType.UINT64: "U64",
    PrimitiveType.INT8: "I8",
    PrimitiveType.INT16: "I16",
    PrimitiveType.INT32: "I32",
    PrimitiveType.INT64: "I64",
    PrimitiveType.FLOAT: "F32",
    PrimitiveType.DOUBLE: "F64",
    PrimitiveType.BOOL: "Bool",
    PrimitiveType.CHAR: "Char",
}


@dataclass
class FieldValue:
    """A decoded value tagged with its base type.

    Scalars of primitive types hold ``int``, ``float`` or ``bool``; a scalar
    ``char`` holds a one-byte ``bytes``. Arrays hold a list, except ``char``
    arrays which hold ``bytes``. Values of another format hold a
    ``FormatInstance`` (or a list of them for arrays).

    ``raw`` keeps the wire bytes of float values holding a NaN, so the NaN
    payload can be written back unchanged.
    """

    base_type: BaseType
    value: Any
    is_array: bool = False
    raw: bytes | None = field(default=None, compare=False, repr=False)

    @property
    def is_other(self) -> bool:
        return isinstance(self.base_type, OtherType)

    @property
    def has_nan(self) -> bool:
        if self.base_type not in (PrimitiveType.FLOAT, PrimitiveType.DOUBLE):
            return False
        values = self.value if self.is_array else [self.value]
        return any(math.isnan(v) for v in values)

    @property
    def variant(self) -> str:
        """Name of the union member, e.g. ``ScalarU8`` or ``ArrayOther``."""
        prefix = "Array" if self.is_array else "Scalar"
        if isinstance(self.base_type, OtherType):
            return f"{prefix}Other"
        return f"{prefix}{_VARIANT_SUFFIX[self.base_type]}"

    def as_text(self) -> str:
        """Decode char data to a string, replacing invalid UTF-8."""
        if self.base_type is not PrimitiveType.CHAR:
            raise TypeError(f"{self.variant} is not character data")
        return bytes(self.value).decode("utf-8", errors="replace")

    def to_scalars(self) -> list[FieldValue]:
        """Split an array value into scalar values."""
        if not self.is_array:
            raise TypeError(f"{self.variant} is not an array")
        if self.base_type is PrimitiveType.CHAR:
            return [FieldValue(self.base_type, bytes([b])) for b in self.value]
        scalars = [FieldValue(self.base_type, v) for v in self.value]
        if self.raw is not None:
            size = len(self.raw) // len(self.value)
            for i, scalar in enumerate(scalars):
                if scalar.has_nan:
                    scalar.raw = self.raw[i * size:(i + 1) * size]
        return scalars

    def to_python(self) -> Any:
        """Convert to plain python data (nested formats become dicts)."""
        if isinstance(self.base_type, OtherType):
            if self.is_array:
                return [item.to_dict() for item in self.value]
            return self.value.to_dict()
        if self.base_type is PrimitiveType.CHAR:
            return self.as_text()
        if self.is_array:
            return list(self.value)
        return self.value

    def __str__(self) -> str:
        if self.base_type is PrimitiveType.CHAR:
            text = self.as_text()
            return f'"{text}"' if self.is_array else f"'{text}'"
        if isinstance(self.base_type, OtherType):
            if self.is_array:
                return "[" + ", ".join(f"{{{item}}}" for item in self.value) + "]"
            return f"{{{self.value}}}"
        if self.is_array:
            return "[" + ", ".join(str(v) for v in self.value) + "]"
        return str(self.value)


@dataclass
class InstanceField:
    """A named, typed value within a decoded format instance."""

    name: str
    type_expr: TypeExpr
    value: FieldValue


@dataclass
class FormatInstance:
    """Concrete data decoded according to a FormatDefinition.

    ``timestamp`` holds the value of the instance's own ``uint64_t timestamp``
    field, if it has one. ``multi_id_index`` is only set for top-level
    records of a multi-instance subscription.
    """

    name: str
    fields: list[InstanceField]
    definition: FormatDefinition
    timestamp: int | None = None
    multi_id_index: int | None = field(default=None)

    def get_field(self, name: str) -> InstanceField | None:
        """Get a field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def __getitem__(self, name: str) -> Any:
        f = self.get_field(name)
        if f is None:
            raise KeyError(f"Field '{name}' not found in '{self.name}'")
        return f.value.value

    def __contains__(self, name: object) -> bool:
        return any(f.name == name for f in self.fields)

    def to_dict(self) -> dict[str, Any]:
        """Return the fields as a dict of plain python values."""
        return {f.name: f.value.to_python() for f in self.fields}

    def flatten(self, prefix: str | None = None) -> list[tuple[str, FieldValue]]:
        """Flatten nested formats and arrays into (path, scalar value) pairs.

        Paths are ``/``-separated; array elements get a two-digit suffix,
        e.g. ``vehicle_status/accel.02``.
        """
        path = self.name if prefix is None else prefix
        flattened: list[tuple[str, FieldValue]] = []

        for f in self.fields:
            current_path = f"{path}/{f.name}"
            if not f.value.is_array:
                flattened.extend(_flatten_value(current_path, f.value))
                continue
            for index, value in enumerate(f.value.to_scalars()):
                flattened.extend(_flatten_value(f"{current_path}.{index:02}", value))

        return flattened

    def __str__(self) -> str:
        parts = ", ".join(f"{f.name}: {f.value}" for f in self.fields)
        if self.multi_id_index is not None:
            return f"{self.name}[{self.multi_id_index}] {parts}"
        return f"{self.name} {parts}"


def _flatten_value(path: str, value: FieldValue) -> list[tuple[str, FieldValue]]:
    if isinstance(value.base_type, OtherType):
        return value.value.flatten(path)
    return [(path, value)]
