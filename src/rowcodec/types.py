"""
Engine type catalog.

This module provides:
- SqlType: the engine's type codes
- type_name: display names for diagnostics
- type_width, type_alignment: slot sizing rules used by layout engines
- python_types: the natural Python type of each engine type
"""
import datetime
import decimal
import enum
import logging

logger = logging.getLogger(__name__)

UNKNOWN = 'UNKNOWN'
NULL_INDICATOR_SIZE = 2
VARYING_PREFIX_SIZE = 2
OCTETS_CHARSET = 1


class SqlType(enum.IntEnum):
    """Engine type codes with the nullable bit cleared."""

    VARYING = 448
    TEXT = 452
    DOUBLE = 480
    FLOAT = 482
    LONG = 496
    SHORT = 500
    TIMESTAMP = 510
    BLOB = 520
    D_FLOAT = 530
    ARRAY = 540
    QUAD = 550
    TIME = 560
    DATE = 570
    INT64 = 580
    TIMESTAMP_TZ_EX = 32748
    TIME_TZ_EX = 32750
    INT128 = 32752
    TIMESTAMP_TZ = 32754
    TIME_TZ = 32756
    DEC16 = 32760
    DEC34 = 32762
    BOOLEAN = 32764
    NULL = 32766


_type_names: dict[int, str] = {
    SqlType.ARRAY: 'ARRAY',
    SqlType.BLOB: 'BLOB',
    SqlType.BOOLEAN: 'BOOLEAN',
    SqlType.DEC16: 'DEC16',
    SqlType.DEC34: 'DEC34',
    SqlType.DOUBLE: 'DOUBLE',
    SqlType.D_FLOAT: 'D_FLOAT',
    SqlType.FLOAT: 'FLOAT',
    SqlType.INT128: 'INT128',
    SqlType.INT64: 'BIGINT',
    SqlType.LONG: 'INT',
    SqlType.SHORT: 'SMALLINT',
    SqlType.TEXT: 'CHAR',
    SqlType.TIMESTAMP: 'TIMESTAMP',
    SqlType.TIMESTAMP_TZ: 'TIMESTAMP_TZ',
    SqlType.TIMESTAMP_TZ_EX: 'TIMESTAMP_TZ_EX',
    SqlType.TIME_TZ: 'TIME_TZ',
    SqlType.TIME_TZ_EX: 'TIME_TZ_EX',
    SqlType.DATE: 'DATE',
    SqlType.TIME: 'TIME',
    SqlType.VARYING: 'VARCHAR',
}

_type_widths: dict[int, int] = {}

for v in [SqlType.BOOLEAN]:
    _type_widths[v] = 1

_type_widths[SqlType.SHORT] = 2

for v in [SqlType.LONG, SqlType.FLOAT, SqlType.DATE, SqlType.TIME]:
    _type_widths[v] = 4

for v in [SqlType.INT64, SqlType.DOUBLE, SqlType.D_FLOAT, SqlType.TIMESTAMP,
          SqlType.TIME_TZ, SqlType.TIME_TZ_EX, SqlType.DEC16, SqlType.QUAD]:
    _type_widths[v] = 8

for v in [SqlType.TIMESTAMP_TZ, SqlType.TIMESTAMP_TZ_EX]:
    _type_widths[v] = 12

for v in [SqlType.INT128, SqlType.DEC34, SqlType.BLOB, SqlType.ARRAY]:
    _type_widths[v] = 16

_zoned_types = frozenset({SqlType.TIME_TZ, SqlType.TIME_TZ_EX,
                          SqlType.TIMESTAMP_TZ, SqlType.TIMESTAMP_TZ_EX})

python_types: dict[int, type] = {}

for v in [SqlType.TEXT, SqlType.VARYING]:
    python_types[v] = str

for v in [SqlType.SHORT, SqlType.LONG, SqlType.INT64, SqlType.INT128]:
    python_types[v] = int

for v in [SqlType.FLOAT, SqlType.DOUBLE, SqlType.D_FLOAT]:
    python_types[v] = float

for v in [SqlType.DEC16, SqlType.DEC34]:
    python_types[v] = decimal.Decimal

python_types[SqlType.BOOLEAN] = bool
python_types[SqlType.DATE] = datetime.date

for v in [SqlType.TIME, SqlType.TIME_TZ, SqlType.TIME_TZ_EX]:
    python_types[v] = datetime.time

for v in [SqlType.TIMESTAMP, SqlType.TIMESTAMP_TZ, SqlType.TIMESTAMP_TZ_EX]:
    python_types[v] = datetime.datetime

for v in [SqlType.BLOB, SqlType.ARRAY, SqlType.QUAD]:
    python_types[v] = bytes


def type_name(type_code: int) -> str:
    """Display name of an engine type code, `UNKNOWN` when not catalogued.
    """
    return _type_names.get(type_code, UNKNOWN)


def is_variable_width(type_code: int) -> bool:
    """True only for length-prefixed (varying) slots.
    """
    return type_code == SqlType.VARYING


def has_declared_length(type_code: int) -> bool:
    """True for the text family, whose slot length is set per value.
    """
    return type_code in {SqlType.TEXT, SqlType.VARYING}


def type_width(type_code: int) -> int | None:
    """Implicit byte width of a fixed-width type, None for the text family.
    """
    return _type_widths.get(type_code)


def type_alignment(type_code: int) -> int:
    """Byte alignment a layout engine applies to a slot of this type.
    """
    if type_code == SqlType.TEXT:
        return 1
    if type_code == SqlType.VARYING:
        return VARYING_PREFIX_SIZE
    if type_code in _zoned_types:
        return 4
    return min(_type_widths.get(type_code, 1), 8)


def slot_extent(type_code: int, length: int) -> int:
    """Bytes a slot occupies in the buffer, including a varying prefix.
    """
    if is_variable_width(type_code):
        return length + VARYING_PREFIX_SIZE
    return length


def align(offset: int, alignment: int) -> int:
    """Round offset up to the next multiple of alignment.
    """
    return (offset + alignment - 1) // alignment * alignment


def strip_nullable(type_code: int) -> tuple[int, bool]:
    """Split a raw engine code into (type code, nullable flag).
    """
    return type_code & ~1, bool(type_code & 1)


def as_sql_type(type_code: int) -> SqlType | int:
    """Return the SqlType member for a code, or the bare int when unknown.
    """
    try:
        return SqlType(type_code)
    except ValueError:
        logger.debug(f'Unknown engine type code {type_code}')
        return type_code
