"""
Row decoder for result extraction.

A `Row` is a view over one output buffer described by a `MessageDescriptor`.
`Field` accessors convert a column's bytes into a requested Python value.
Conversions are driven by the column's engine type: each target accepts a
fixed set of source types and anything else raises `TypeConversionError`
naming both.

Calling a typed accessor on a NULL column decodes whatever bytes the slot
holds. Check `is_null()` first; `value` does so for you.

Zoned columns store UTC. DATE, TIME and TIMESTAMP taken from them are the
stored UTC components; only the zoned accessors resolve the zone.
"""
import datetime
import decimal
import enum
import logging
import struct
from collections.abc import Callable, Iterator
from typing import Any

import numpy as np

from libb import attrdict

from rowcodec.exceptions import ColumnIndexError, DescriptorError
from rowcodec.exceptions import TypeConversionError
from rowcodec.layout import BYTEORDER, NULL_INDICATOR, VARYING_PREFIX
from rowcodec.layout import ColumnDescriptor, MessageDescriptor
from rowcodec.temporal import Timestamp, TimestampTz, TimeTz, decode_date
from rowcodec.temporal import decode_time, resolve_time_zone
from rowcodec.types import OCTETS_CHARSET, SqlType, type_name, type_width
from rowcodec.values import BlobId

logger = logging.getLogger(__name__)


class Target(enum.Enum):
    """Application types a column can be requested as."""

    BOOLEAN = 'BOOLEAN'
    SMALLINT = 'SMALLINT'
    INTEGER = 'INTEGER'
    BIGINT = 'BIGINT'
    INT128 = 'INT128'
    FLOAT = 'FLOAT'
    DOUBLE = 'DOUBLE PRECISION'
    DEC16 = 'DEC16'
    DEC34 = 'DEC34'
    TEXT = 'TEXT'
    OCTETS = 'OCTETS'
    DATE = 'DATE'
    TIME = 'TIME'
    TIME_TZ = 'TIME WITH TIME ZONE'
    TIMESTAMP = 'TIMESTAMP'
    TIMESTAMP_TZ = 'TIMESTAMP WITH TIME ZONE'
    BLOB = 'BLOB'


_INTEGERS = frozenset({SqlType.SHORT, SqlType.LONG, SqlType.INT64})
_ZONED_TIMESTAMPS = frozenset({SqlType.TIMESTAMP_TZ, SqlType.TIMESTAMP_TZ_EX})
_ZONED_TIMES = frozenset({SqlType.TIME_TZ, SqlType.TIME_TZ_EX})
_SCALED = _INTEGERS | {SqlType.INT128}

# None accepts every source type
COMPATIBLE: dict[Target, frozenset | None] = {
    Target.BOOLEAN: frozenset({SqlType.BOOLEAN}),
    Target.SMALLINT: frozenset({SqlType.SHORT, SqlType.BOOLEAN}),
    Target.INTEGER: frozenset({SqlType.LONG, SqlType.SHORT, SqlType.BOOLEAN}),
    Target.BIGINT: _INTEGERS | {SqlType.BOOLEAN},
    Target.INT128: _INTEGERS | {SqlType.INT128, SqlType.BOOLEAN},
    Target.FLOAT: _INTEGERS | {SqlType.FLOAT},
    Target.DOUBLE: _INTEGERS | {SqlType.DOUBLE, SqlType.FLOAT},
    Target.DEC16: frozenset({SqlType.DEC16}),
    Target.DEC34: frozenset({SqlType.DEC34}),
    Target.TEXT: _INTEGERS | {SqlType.TEXT, SqlType.VARYING, SqlType.BOOLEAN,
                              SqlType.FLOAT, SqlType.DOUBLE},
    Target.OCTETS: None,
    Target.DATE: _ZONED_TIMESTAMPS | {SqlType.DATE, SqlType.TIMESTAMP},
    Target.TIME: _ZONED_TIMESTAMPS | {SqlType.TIME, SqlType.TIMESTAMP},
    Target.TIME_TZ: _ZONED_TIMES | _ZONED_TIMESTAMPS,
    Target.TIMESTAMP: _ZONED_TIMESTAMPS | {SqlType.TIMESTAMP},
    Target.TIMESTAMP_TZ: _ZONED_TIMESTAMPS,
    Target.BLOB: frozenset({SqlType.BLOB}),
}

_FORMATS: dict[int, struct.Struct] = {
    SqlType.BOOLEAN: struct.Struct('=B'),
    SqlType.SHORT: struct.Struct('=h'),
    SqlType.LONG: struct.Struct('=i'),
    SqlType.INT64: struct.Struct('=q'),
    SqlType.FLOAT: struct.Struct('=f'),
    SqlType.DOUBLE: struct.Struct('=d'),
    SqlType.DATE: struct.Struct('=i'),
    SqlType.TIME: struct.Struct('=I'),
    SqlType.TIMESTAMP: struct.Struct('=iI'),
    SqlType.TIME_TZ: struct.Struct('=IH'),
    SqlType.TIME_TZ_EX: struct.Struct('=IHh'),
    SqlType.TIMESTAMP_TZ: struct.Struct('=iIH'),
    SqlType.TIMESTAMP_TZ_EX: struct.Struct('=iIHh'),
}


def render_scaled(value: int, scale: int) -> str:
    """Decimal text of an integer stored with a decimal exponent.

    >>> render_scaled(12345, -2)
    '123.45'
    >>> render_scaled(-5, -2)
    '-0.05'
    >>> render_scaled(7, 2)
    '700'
    """
    if scale >= 0:
        return str(value * 10 ** scale)
    digits = str(abs(value)).rjust(-scale + 1, '0')
    sign = '-' if value < 0 else ''
    return f'{sign}{digits[:scale]}.{digits[scale:]}'


class Field:
    """One column of a row buffer.

    Holds the column descriptor and a reference to the buffer; every accessor
    returns a fresh copy of the decoded value.
    """

    def __init__(self, column: ColumnDescriptor, buffer: bytes | bytearray,
                 guard: Callable[[], None] | None = None, encoding: str = 'utf-8') -> None:
        self.column = column
        self._buffer = buffer
        self._guard = guard
        self._encoding = encoding

    def __repr__(self) -> str:
        return f'Field({self.column.label!r}, {self.column.type_name})'

    @property
    def name(self) -> str:
        return self.column.name

    @property
    def alias(self) -> str:
        return self.column.alias

    @property
    def charset(self) -> int:
        return self.column.charset

    @property
    def type(self) -> tuple[int, int]:
        """Engine type code and subtype."""
        return self.column.sql_type, self.column.subtype

    @property
    def is_nullable(self) -> bool:
        return self.column.nullable

    @property
    def scale(self) -> int:
        return self.column.scale

    @property
    def length(self) -> int:
        return self.column.length

    def is_null(self) -> bool:
        self._check()
        return NULL_INDICATOR.unpack_from(self._buffer, self.column.null_offset)[0] != 0

    def _check(self) -> None:
        if self._guard is not None:
            self._guard()

    def _raw(self) -> bytes:
        """Copy of the slot bytes."""
        self._check()
        col = self.column
        return bytes(self._buffer[col.offset:col.offset + col.extent])

    def _unpack(self) -> tuple:
        raw = self._raw()
        fmt = _FORMATS[self.column.sql_type]
        return fmt.unpack_from(raw)

    def _accept(self, target: Target) -> SqlType:
        sql_type = self.column.sql_type
        accepted = COMPATIBLE[target]
        if accepted is not None and sql_type not in accepted:
            raise TypeConversionError(type_name(sql_type), target.value)
        return sql_type

    def _integer(self, target: Target) -> int:
        self._accept(target)
        return self._unpack()[0]

    def as_bool(self) -> bool:
        return bool(self._integer(Target.BOOLEAN))

    def as_int16(self) -> int:
        return self._integer(Target.SMALLINT)

    def as_int32(self) -> int:
        return self._integer(Target.INTEGER)

    def as_int64(self) -> int:
        return self._integer(Target.BIGINT)

    def as_int128(self) -> int:
        """INT128 as stored; narrower integers are zero-extended, scale ignored.
        """
        if self._accept(Target.INT128) == SqlType.INT128:
            return int.from_bytes(self._raw(), BYTEORDER, signed=True)
        width = type_width(self.column.sql_type)
        return int.from_bytes(self._raw()[:width], BYTEORDER, signed=False)

    def _real(self, target: Target) -> float:
        sql_type = self._accept(target)
        value = self._unpack()[0]
        if sql_type in _INTEGERS and self.scale != 0:
            return value / 10 ** -self.scale
        return float(value)

    def as_float(self) -> float:
        """Single precision value, returned as a Python float."""
        return float(np.float32(self._real(Target.FLOAT)))

    def as_double(self) -> float:
        return self._real(Target.DOUBLE)

    def as_decimal64(self) -> bytes:
        """Raw engine encoding of a DEC16 column."""
        self._accept(Target.DEC16)
        return self._raw()

    def as_decimal128(self) -> bytes:
        """Raw engine encoding of a DEC34 column."""
        self._accept(Target.DEC34)
        return self._raw()

    def _varying(self) -> bytes:
        raw = self._raw()
        (size,) = VARYING_PREFIX.unpack_from(raw)
        if size > self.column.length:
            raise DescriptorError(
                f'Varying length {size} exceeds slot capacity {self.column.length}')
        return raw[VARYING_PREFIX.size:VARYING_PREFIX.size + size]

    def as_str(self) -> str:
        """Text of the column.

        CHAR comes back with its padding. Numbers render in decimal, scaled
        integers with the decimal point placed by the scale.
        """
        sql_type = self._accept(Target.TEXT)
        if sql_type in {SqlType.TEXT, SqlType.VARYING}:
            data = self._raw() if sql_type == SqlType.TEXT else self._varying()
            try:
                return data.decode(self._encoding)
            except UnicodeDecodeError as e:
                raise TypeConversionError(type_name(sql_type), Target.TEXT.value,
                                          f'Cannot decode {self.column.label or "column"}'
                                          f' as {self._encoding}: {e}') from e
        value = self._unpack()[0]
        if sql_type == SqlType.BOOLEAN:
            return '1' if value else '0'
        if sql_type == SqlType.FLOAT:
            return str(np.float32(value))
        if sql_type == SqlType.DOUBLE:
            return repr(value)
        return render_scaled(value, self.scale)

    def as_bytes(self) -> bytes:
        """Slot bytes; for VARYING only the prefixed length."""
        if self.column.sql_type == SqlType.VARYING:
            return self._varying()
        return self._raw()

    def _stamp(self, target: Target) -> Timestamp:
        """Stored timestamp components; UTC for the zoned types."""
        self._accept(target)
        fields = self._unpack()
        return Timestamp(decode_date(fields[0]), decode_time(fields[1]))

    def _zoned_stamp(self, target: Target) -> TimestampTz:
        sql_type = self._accept(target)
        fields = self._unpack()
        ext_offset = fields[3] if sql_type == SqlType.TIMESTAMP_TZ_EX else None
        stamp = Timestamp(decode_date(fields[0]), decode_time(fields[1]))
        return TimestampTz(stamp, fields[2], ext_offset)

    def _resolvable(self, value: TimeTz | TimestampTz) -> bool:
        if resolve_time_zone(value.time_zone, value.ext_offset) is None:
            logger.debug(f'Unknown time zone id {value.time_zone} in {self.column.label or "column"}'
                         ', returning stored UTC components')
            return False
        return True

    def as_date(self) -> datetime.date:
        if self._accept(Target.DATE) == SqlType.DATE:
            return decode_date(self._unpack()[0]).to_python()
        return self._stamp(Target.DATE).date.to_python()

    def as_time(self) -> datetime.time:
        if self._accept(Target.TIME) == SqlType.TIME:
            return decode_time(self._unpack()[0]).to_python()
        return self._stamp(Target.TIME).time.to_python()

    def as_time_tz(self) -> datetime.time | TimeTz:
        """Wall time in the stored zone, time zone aware.

        A zone id the codec cannot resolve gives back the stored TimeTz.
        """
        sql_type = self._accept(Target.TIME_TZ)
        if sql_type in _ZONED_TIMESTAMPS:
            zoned = self._zoned_stamp(Target.TIME_TZ)
            if not self._resolvable(zoned):
                return TimeTz(zoned.utc_timestamp.time, zoned.time_zone, zoned.ext_offset)
            return zoned.to_python().timetz()
        fields = self._unpack()
        ext_offset = fields[2] if sql_type == SqlType.TIME_TZ_EX else None
        value = TimeTz(decode_time(fields[0]), fields[1], ext_offset)
        return value.to_python() if self._resolvable(value) else value

    def as_timestamp(self) -> datetime.datetime:
        return self._stamp(Target.TIMESTAMP).to_python()

    def as_timestamp_tz(self) -> datetime.datetime | TimestampTz:
        """Aware timestamp, or the stored TimestampTz for an unknown zone id."""
        zoned = self._zoned_stamp(Target.TIMESTAMP_TZ)
        return zoned.to_python() if self._resolvable(zoned) else zoned

    def as_blob_id(self) -> BlobId:
        self._accept(Target.BLOB)
        return BlobId.from_bytes(self._raw(), BYTEORDER)

    def as_(self, target: Target | str) -> Any:
        """Generic accessor, `target` as a Target or its display name."""
        return _ACCESSORS[Target(target)](self)

    @property
    def value(self) -> Any:
        """Natural Python value of the column, None when NULL.
        """
        if self.is_null():
            return None
        sql_type = self.column.sql_type
        if sql_type in _SCALED and self.scale != 0:
            raw = self.as_int128() if sql_type == SqlType.INT128 else self._unpack()[0]
            return decimal.Decimal(render_scaled(raw, self.scale))
        if sql_type in {SqlType.TEXT, SqlType.VARYING} and self.charset == OCTETS_CHARSET:
            return self.as_bytes()
        natural = _NATURAL.get(sql_type)
        if natural is None:
            return self._raw()
        return _ACCESSORS[natural](self)


_ACCESSORS: dict[Target, Callable[[Field], Any]] = {
    Target.BOOLEAN: Field.as_bool,
    Target.SMALLINT: Field.as_int16,
    Target.INTEGER: Field.as_int32,
    Target.BIGINT: Field.as_int64,
    Target.INT128: Field.as_int128,
    Target.FLOAT: Field.as_float,
    Target.DOUBLE: Field.as_double,
    Target.DEC16: Field.as_decimal64,
    Target.DEC34: Field.as_decimal128,
    Target.TEXT: Field.as_str,
    Target.OCTETS: Field.as_bytes,
    Target.DATE: Field.as_date,
    Target.TIME: Field.as_time,
    Target.TIME_TZ: Field.as_time_tz,
    Target.TIMESTAMP: Field.as_timestamp,
    Target.TIMESTAMP_TZ: Field.as_timestamp_tz,
    Target.BLOB: Field.as_blob_id,
}

_NATURAL: dict[int, Target] = {
    SqlType.BOOLEAN: Target.BOOLEAN,
    SqlType.SHORT: Target.SMALLINT,
    SqlType.LONG: Target.INTEGER,
    SqlType.INT64: Target.BIGINT,
    SqlType.INT128: Target.INT128,
    SqlType.FLOAT: Target.DOUBLE,
    SqlType.DOUBLE: Target.DOUBLE,
    SqlType.DEC16: Target.DEC16,
    SqlType.DEC34: Target.DEC34,
    SqlType.TEXT: Target.TEXT,
    SqlType.VARYING: Target.TEXT,
    SqlType.DATE: Target.DATE,
    SqlType.TIME: Target.TIME,
    SqlType.TIME_TZ: Target.TIME_TZ,
    SqlType.TIME_TZ_EX: Target.TIME_TZ,
    SqlType.TIMESTAMP: Target.TIMESTAMP,
    SqlType.TIMESTAMP_TZ: Target.TIMESTAMP_TZ,
    SqlType.TIMESTAMP_TZ_EX: Target.TIMESTAMP_TZ,
    SqlType.BLOB: Target.BLOB,
}


class Row:
    """Decoder over one row buffer.

    With a guard the row is a live view of a result set buffer and raises
    StaleRowError once that buffer moves on; `copy()` detaches it.
    """

    def __init__(self, descriptor: MessageDescriptor, buffer: bytes | bytearray,
                 guard: Callable[[], None] | None = None, encoding: str = 'utf-8') -> None:
        if len(buffer) < descriptor.length:
            raise DescriptorError(
                f'Buffer of {len(buffer)} bytes is shorter than descriptor length {descriptor.length}')
        self.descriptor = descriptor
        self._buffer = buffer
        self._guard = guard
        self._encoding = encoding

    def __len__(self) -> int:
        return self.ncols

    def __iter__(self) -> Iterator[Field]:
        return (self.get(i) for i in range(self.ncols))

    def __repr__(self) -> str:
        return f'Row({self.aliases()})'

    @property
    def ncols(self) -> int:
        return len(self.descriptor)

    def get(self, index: int) -> Field:
        """Field at a zero-based column index."""
        if not 0 <= index < self.ncols:
            raise ColumnIndexError(f'Column index {index} out of range for {self.ncols} columns')
        return Field(self.descriptor[index], self._buffer, self._guard, self._encoding)

    def is_null(self, index: int) -> bool:
        return self.get(index).is_null()

    def names(self) -> list[str]:
        return [col.name for col in self.descriptor]

    def aliases(self) -> list[str]:
        return [col.label for col in self.descriptor]

    def types(self) -> list[tuple[int, int]]:
        return [(col.sql_type, col.subtype) for col in self.descriptor]

    def values(self) -> list[Any]:
        return [field.value for field in self]

    def to_dict(self) -> attrdict:
        return attrdict(zip(self.aliases(), self.values()))

    def copy(self) -> 'Row':
        """Detached row over a private copy of the buffer."""
        if self._guard is not None:
            self._guard()
        return Row(self.descriptor, bytes(self._buffer[:self.descriptor.length]),
                   encoding=self._encoding)
