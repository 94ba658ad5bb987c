"""Project decoded records onto user dataclasses.

A ``RecordBinding`` ties a dataclass to a subscription name. For each format
definition the binding is used with, ``build_index`` checks that every
required attribute has a field on the wire, once. ``project`` then builds
dataclass instances from decoded ``FormatInstance`` values::

    @dataclass
    class VehicleStatus:
        timestamp: int
        arming_state: int
        nav_state: int = field(metadata={"ulog_field": "nav_state_user"})

    for status in ProjectedStream(open("flight.ulg", "rb"), [VehicleStatus]):
        ...
"""

from __future__ import annotations

import dataclasses
import logging
import re
import types
import typing
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Union

from ulog_codec.engine import ULogEngine
from ulog_codec.errors import (
    InvalidConfigurationError,
    MissingFieldsError,
    TypeMismatchError,
)
from ulog_codec.instance import FieldValue, FormatInstance
from ulog_codec.messages import LoggedData, ULogMessage
from ulog_codec.types import TIMESTAMP_FIELD, FormatDefinition, OtherType, PrimitiveType

logger = logging.getLogger(__name__)

FIELD_NAME_METADATA = "ulog_field"


def snake_case(name: str) -> str:
    """``VehicleGPSPosition`` -> ``vehicle_gps_position``."""
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", name)
    return name.lower()


@dataclass
class RecordBinding:
    """Binds a dataclass to the subscription whose records it receives.

    Attributes:
        record_type: The dataclass to build.
        subscription_name: Defaults to the snake_case class name.
        multi_id: Only accept this instance of a multi-instance
            subscription. None accepts every instance.
    """

    record_type: type
    subscription_name: str | None = None
    multi_id: int | None = None

    def __post_init__(self) -> None:
        if not (isinstance(self.record_type, type) and dataclasses.is_dataclass(self.record_type)):
            raise InvalidConfigurationError(
                f"Record type must be a dataclass, got {self.record_type!r}"
            )
        if self.subscription_name is None:
            self.subscription_name = snake_case(self.record_type.__name__)

    def accepts(self, message_name: str, multi_id: int) -> bool:
        if message_name != self.subscription_name:
            return False
        return self.multi_id is None or self.multi_id == multi_id


@dataclass(frozen=True)
class _Slot:
    attr_name: str
    wire_name: str
    annotation: Any
    optional: bool


@dataclass
class FieldIndex:
    """Resolved mapping from a dataclass to one format definition.

    ``positions`` maps each wire field name to its position in the
    definition.
    """

    record_type: type
    definition: FormatDefinition
    positions: dict[str, int]
    slots: list[_Slot]
    _nested: dict[tuple[type, int], tuple[FormatDefinition, FieldIndex]] = field(
        default_factory=dict, repr=False
    )

    def nested_index(self, record_type: type, definition: FormatDefinition) -> FieldIndex:
        """Index for a nested dataclass, built on first use."""
        key = (record_type, id(definition))
        cached = self._nested.get(key)
        if cached is not None and cached[0] is definition:
            return cached[1]
        index = build_index(record_type, definition)
        self._nested[key] = (definition, index)
        return index


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    origin = typing.get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) != len(typing.get_args(annotation)) and len(args) == 1:
            return args[0], True
    return annotation, False


def _slots(record_type: type) -> list[_Slot]:
    hints = typing.get_type_hints(record_type)
    slots = []
    for f in dataclasses.fields(record_type):
        annotation, optional = _unwrap_optional(hints[f.name])
        wire_name = f.metadata.get(FIELD_NAME_METADATA, f.name)
        slots.append(_Slot(f.name, wire_name, annotation, optional))
    return slots


def build_index(record_type: type, definition: FormatDefinition) -> FieldIndex:
    """Map the attributes of ``record_type`` to the fields of ``definition``.

    Raises:
        MissingFieldsError: listing every required attribute with no
            matching field.
    """
    positions = {f.name: i for i, f in enumerate(definition.fields)}
    slots = _slots(record_type)
    missing = [s.wire_name for s in slots if s.wire_name not in positions and not s.optional]
    if missing:
        raise MissingFieldsError(definition.name, missing)
    logger.debug("Indexed %s against format '%s'", record_type.__name__, definition.name)
    return FieldIndex(record_type, definition, positions, slots)


def project(index: FieldIndex, instance: FormatInstance) -> Any:
    """Build ``index.record_type`` from a decoded instance."""
    values = {f.name: f.value for f in instance.fields}
    kwargs: dict[str, Any] = {}
    for slot in index.slots:
        value = values.get(slot.wire_name)
        if value is None:
            if slot.wire_name == TIMESTAMP_FIELD and instance.timestamp is not None:
                # Top-level timestamp filtered out of the fields
                kwargs[slot.attr_name] = instance.timestamp
                continue
            if not slot.optional:
                raise MissingFieldsError(instance.name, [slot.wire_name])
            kwargs[slot.attr_name] = None
            continue
        kwargs[slot.attr_name] = _convert(index, slot, value)
    return index.record_type(**kwargs)


def _mismatch(slot: _Slot, value: FieldValue) -> TypeMismatchError:
    return TypeMismatchError(
        f"Field '{slot.wire_name}' is {value.variant}, cannot convert to {slot.annotation!r}"
    )


def _convert(index: FieldIndex, slot: _Slot, value: FieldValue) -> Any:
    annotation = slot.annotation
    base_type = value.base_type

    if annotation is Any or annotation is object:
        return value.to_python()
    if annotation is FieldValue:
        return value

    if dataclasses.is_dataclass(annotation) and isinstance(annotation, type):
        if not isinstance(base_type, OtherType) or value.is_array:
            raise _mismatch(slot, value)
        nested = index.nested_index(annotation, value.value.definition)
        return project(nested, value.value)

    origin = typing.get_origin(annotation)
    if origin is list:
        (item_type,) = typing.get_args(annotation) or (Any,)
        if not value.is_array:
            raise _mismatch(slot, value)
        if dataclasses.is_dataclass(item_type) and isinstance(item_type, type):
            if not isinstance(base_type, OtherType):
                raise _mismatch(slot, value)
            return [
                project(index.nested_index(item_type, item.definition), item)
                for item in value.value
            ]
        if isinstance(base_type, OtherType):
            raise _mismatch(slot, value)
        if item_type is not Any and not _scalar_matches(item_type, base_type):
            raise _mismatch(slot, value)
        return list(value.value)

    if isinstance(base_type, OtherType):
        raise _mismatch(slot, value)

    if annotation is str:
        if base_type is not PrimitiveType.CHAR:
            raise _mismatch(slot, value)
        return value.as_text()
    if annotation is bytes:
        if base_type is PrimitiveType.CHAR:
            return bytes(value.value)
        if base_type is PrimitiveType.UINT8 and value.is_array:
            return bytes(value.value)
        raise _mismatch(slot, value)

    if value.is_array or not _scalar_matches(annotation, base_type):
        raise _mismatch(slot, value)
    return value.value


def _scalar_matches(annotation: Any, base_type: PrimitiveType) -> bool:
    if annotation is bool:
        return base_type is PrimitiveType.BOOL
    if annotation is int:
        return base_type.is_integer
    if annotation is float:
        return base_type.is_float
    return False


class ProjectedStream:
    """Yields projected records for the bound subscriptions of a log.

    The engine's allow-list is set to the bound subscription names, so
    records of any other subscription are not decoded. With
    ``forward_other`` every other message is yielded unchanged alongside
    the projected records.
    """

    def __init__(
        self,
        source: ULogEngine | BinaryIO,
        bindings: Iterable[RecordBinding | type],
        forward_other: bool = False,
    ) -> None:
        self.engine = source if isinstance(source, ULogEngine) else ULogEngine(source)
        self.bindings = [b if isinstance(b, RecordBinding) else RecordBinding(b) for b in bindings]
        if not self.bindings:
            raise InvalidConfigurationError("ProjectedStream needs at least one binding")
        self.forward_other = forward_other
        self._indexes: dict[tuple[int, int], tuple[FormatDefinition, FieldIndex]] = {}
        self.engine.set_subscription_allow_list(
            {b.subscription_name for b in self.bindings}  # type: ignore[misc]
        )

    def _index_for(self, binding_pos: int, definition: FormatDefinition) -> FieldIndex:
        key = (binding_pos, id(definition))
        cached = self._indexes.get(key)
        if cached is not None and cached[0] is definition:
            return cached[1]
        index = build_index(self.bindings[binding_pos].record_type, definition)
        self._indexes[key] = (definition, index)
        return index

    def _binding_for(self, message: LoggedData) -> int | None:
        subscription = self.engine.get_subscription(message.msg_id)
        for pos, binding in enumerate(self.bindings):
            if binding.accepts(subscription.message_name, subscription.multi_id):
                return pos
        return None

    def __iter__(self) -> Iterator[Any]:
        for message in self.engine:
            if isinstance(message, LoggedData):
                pos = self._binding_for(message)
                if pos is not None:
                    index = self._index_for(pos, message.data.definition)
                    yield project(index, message.data)
                    continue
            if self.forward_other:
                yield message

    def records(self) -> Iterator[Any]:
        """Projected records only, regardless of ``forward_other``."""
        for item in self:
            if not isinstance(item, ULogMessage):
                yield item
