"""
Buffer layout builder for parameter binding.

Turns an ordered list of typed values into an engine descriptor plus a
contiguous input buffer:

1. every value becomes a slot request (type, subtype, declared length)
2. the engine allocates the descriptor, deciding offsets and padding
3. each slot's null indicator and payload are written at the engine's offsets

Fixed-width payloads are written in host byte order. Varying slots carry a
2-byte little-endian length prefix. Every write is bounds-checked against the
slot extent the descriptor declares.
"""
import logging
import struct
import sys
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any

from rowcodec.cache import cached_layout
from rowcodec.engine import Engine, engine_errors
from rowcodec.exceptions import DescriptorError, UnsupportedTypeError
from rowcodec.exceptions import ValidationError
from rowcodec.options import CodecOptions
from rowcodec.types import NULL_INDICATOR_SIZE, SqlType
from rowcodec.types import as_sql_type, has_declared_length, python_types
from rowcodec.types import slot_extent, strip_nullable, type_name
from rowcodec.values import Kind, TypedValue, to_typed_value

logger = logging.getLogger(__name__)

BYTEORDER = sys.byteorder
NULL_INDICATOR = struct.Struct('=h')
VARYING_PREFIX = struct.Struct('<H')


@dataclass(frozen=True)
class SlotRequest:
    """One slot as registered with the engine's metadata facility.
    """
    sql_type: int
    subtype: int = 0
    length: int | None = None
    nullable: bool = True

    @property
    def raw_type(self) -> int:
        return self.sql_type | 1 if self.nullable else self.sql_type


@dataclass(frozen=True)
class ColumnDescriptor:
    """Engine-supplied metadata of one slot, captured once.

    A raw type code with the nullable bit set is normalized on construction.
    For varying slots `length` is the payload capacity; the slot occupies two
    more bytes for the length prefix.
    """
    sql_type: int
    length: int
    offset: int
    null_offset: int
    subtype: int = 0
    scale: int = 0
    nullable: bool = True
    name: str = ''
    alias: str = ''
    charset: int = 0

    def __post_init__(self):
        code, flagged = strip_nullable(self.sql_type)
        if flagged:
            object.__setattr__(self, 'sql_type', code)
            object.__setattr__(self, 'nullable', True)
        object.__setattr__(self, 'sql_type', as_sql_type(self.sql_type))

    @property
    def extent(self) -> int:
        return slot_extent(self.sql_type, self.length)

    @property
    def type_name(self) -> str:
        return type_name(self.sql_type)

    @property
    def label(self) -> str:
        return self.alias or self.name

    def to_dict(self) -> dict[str, Any]:
        python_type = python_types.get(self.sql_type)
        return {
            'name': self.name,
            'alias': self.alias,
            'type_code': int(self.sql_type),
            'type_name': self.type_name,
            'python_type': python_type.__name__ if python_type else None,
            'subtype': self.subtype,
            'scale': self.scale,
            'length': self.length,
            'nullable': self.nullable,
            'charset': self.charset,
        }


@dataclass(frozen=True)
class MessageDescriptor:
    """Immutable descriptor of a whole row buffer.
    """
    columns: tuple[ColumnDescriptor, ...]
    length: int

    def __post_init__(self):
        object.__setattr__(self, 'columns', tuple(self.columns))
        for i, col in enumerate(self.columns):
            if col.offset < 0 or col.offset + col.extent > self.length:
                raise DescriptorError(
                    f'Slot {i} ({col.type_name}) spans {col.offset}..{col.offset + col.extent},'
                    f' beyond buffer length {self.length}')
            if col.null_offset < 0 or col.null_offset + NULL_INDICATOR_SIZE > self.length:
                raise DescriptorError(
                    f'Null indicator of slot {i} at {col.null_offset} is beyond buffer length {self.length}')

    def __len__(self) -> int:
        return len(self.columns)

    def __iter__(self) -> Iterator[ColumnDescriptor]:
        return iter(self.columns)

    def __getitem__(self, index: int) -> ColumnDescriptor:
        return self.columns[index]


@dataclass
class InputMessage:
    """Descriptor plus filled buffer, ready to hand to the engine.
    """
    descriptor: MessageDescriptor
    buffer: bytearray


def _text_bytes(value: TypedValue, encoding: str) -> bytes:
    if isinstance(value.payload, str):
        return value.payload.encode(encoding)
    return value.payload


def slot_request(value: TypedValue, encoding: str = 'utf-8') -> SlotRequest:
    """Slot registration for one typed value.

    NULL registers as a nullable SMALLINT placeholder. Text and octets declare
    the payload's byte length.
    """
    if value.kind is Kind.NULL:
        return SlotRequest(SqlType.SHORT)
    if has_declared_length(value.sql_type):
        length = len(_text_bytes(value, encoding))
        if value.kind is Kind.VARIABLE_OCTETS and length > 0xFFFF:
            raise ValidationError(f'{length} bytes do not fit a varying slot')
        return SlotRequest(value.sql_type, value.subtype, length)
    return SlotRequest(value.sql_type, value.subtype)


_pack_bool = struct.Struct('=B').pack
_pack_short = struct.Struct('=h').pack
_pack_long = struct.Struct('=i').pack
_pack_int64 = struct.Struct('=q').pack
_pack_float = struct.Struct('=f').pack
_pack_double = struct.Struct('=d').pack
_pack_date = struct.Struct('=i').pack
_pack_time = struct.Struct('=I').pack
_pack_time_tz = struct.Struct('=IH').pack
_pack_timestamp = struct.Struct('=iI').pack
_pack_timestamp_tz = struct.Struct('=iIH').pack

Encoder = Callable[[TypedValue, ColumnDescriptor, str], bytes]

_ENCODERS: dict[Kind, Encoder] = {
    Kind.BOOLEAN: lambda v, col, enc: _pack_bool(1 if v.payload else 0),
    Kind.INT16: lambda v, col, enc: _pack_short(v.payload),
    Kind.INT32: lambda v, col, enc: _pack_long(v.payload),
    Kind.INT64: lambda v, col, enc: _pack_int64(v.payload),
    Kind.INT128: lambda v, col, enc: v.payload.to_bytes(16, BYTEORDER, signed=True),
    Kind.FLOAT32: lambda v, col, enc: _pack_float(v.payload),
    Kind.FLOAT64: lambda v, col, enc: _pack_double(v.payload),
    Kind.DECIMAL64: lambda v, col, enc: v.payload,
    Kind.DECIMAL128: lambda v, col, enc: v.payload,
    Kind.DATE: lambda v, col, enc: _pack_date(v.payload.encode()),
    Kind.TIME: lambda v, col, enc: _pack_time(v.payload.encode()),
    Kind.TIME_WITH_ZONE: lambda v, col, enc: _pack_time_tz(*v.payload.encode()),
    Kind.TIMESTAMP: lambda v, col, enc: _pack_timestamp(*v.payload.encode()),
    Kind.TIMESTAMP_WITH_ZONE: lambda v, col, enc: _pack_timestamp_tz(*v.payload.encode()),
    Kind.FIXED_TEXT: lambda v, col, enc: _text_bytes(v, enc),
    Kind.VARIABLE_OCTETS: lambda v, col, enc: VARYING_PREFIX.pack(len(v.payload)) + v.payload,
    Kind.LARGE_OBJECT_HANDLE: lambda v, col, enc: v.payload.to_bytes(col.length, BYTEORDER),
    Kind.NULL: lambda v, col, enc: b'',
}


def allocate_descriptor(engine: Engine, slots: Sequence[SlotRequest],
                        options: CodecOptions | None = None) -> MessageDescriptor:
    """Ask the engine to lay out the slots, reusing a cached layout when allowed.
    """
    options = options or CodecOptions()
    slots = tuple(slots)

    def allocate() -> MessageDescriptor:
        with engine_errors(engine, 'allocate_descriptor'):
            columns, length = engine.allocate_descriptor(slots)
        descriptor = MessageDescriptor(tuple(columns), length)
        logger.debug(f'Allocated {len(slots)} slots in {length} bytes')
        return descriptor

    if not options.cache_layouts:
        return allocate()
    return cached_layout(engine, slots, allocate,
                         maxsize=options.layout_cache_size, ttl=options.layout_cache_ttl)


def write_slot(buffer: bytearray, column: ColumnDescriptor, value: TypedValue,
               options: CodecOptions) -> None:
    """Write one value's null indicator and payload at the column's offsets.
    """
    encoder = _ENCODERS.get(value.kind)
    if encoder is None:
        raise UnsupportedTypeError(f'Not implemented parameter type: {type_name(value.sql_type)}')

    indicator = options.null_indicator if value.is_null else 0
    NULL_INDICATOR.pack_into(buffer, column.null_offset, indicator)
    if value.is_null:
        return

    try:
        data = encoder(value, column, options.encoding)
    except (OverflowError, struct.error) as e:
        raise DescriptorError(f'{value.kind.name} value does not fit slot of {column.length} bytes') from e
    if len(data) > column.extent:
        raise DescriptorError(
            f'{value.kind.name} payload of {len(data)} bytes overflows'
            f' {column.type_name} slot of {column.extent} bytes')
    buffer[column.offset:column.offset + len(data)] = data


def build_input(values: Iterable[Any], engine: Engine,
                options: CodecOptions | None = None) -> InputMessage | None:
    """Build descriptor and buffer for an ordered parameter list.

    Plain Python values are inferred into typed values first. An empty list
    returns None, meaning "no descriptor, no buffer".
    """
    options = options or CodecOptions()
    typed = [to_typed_value(v) for v in values]
    if not typed:
        return None

    slots = [slot_request(v, options.encoding) for v in typed]
    descriptor = allocate_descriptor(engine, slots, options)
    if len(descriptor) != len(typed):
        raise DescriptorError(f'Engine returned {len(descriptor)} slots for {len(typed)} values')

    buffer = bytearray(descriptor.length)
    for value, column in zip(typed, descriptor.columns):
        write_slot(buffer, column, value, options)

    logger.debug(f'Built input message: {len(typed)} values, {len(buffer)} bytes')
    return InputMessage(descriptor, buffer)

