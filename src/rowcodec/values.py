"""
Typed values for parameter binding.

This module provides:
- Kind: the tag of a typed value and the engine type it binds as
- BlobId: the 128-bit large-object handle
- TypedValue: one bound parameter, a tag plus a matching payload
- TypeConverter: normalizes NumPy, pandas and PyArrow scalars
- to_typed_value: infers a TypedValue from a plain Python value
"""
import datetime
import decimal
import enum
import logging
import math
from dataclasses import dataclass
from typing import Any, NamedTuple

import numpy as np
import pandas as pd
import pyarrow as pa

from rowcodec.exceptions import TypeConversionError, ValidationError
from rowcodec.temporal import Date, Time, Timestamp, TimestampTz, TimeTz
from rowcodec.types import SqlType

logger = logging.getLogger(__name__)

NUMPY_FLOAT_TYPES = (np.floating,)
NUMPY_INT_TYPES = (np.integer, np.unsignedinteger)


class Kind(enum.Enum):
    """Typed value tags, each carrying the engine type it binds as."""

    BOOLEAN = SqlType.BOOLEAN
    INT16 = SqlType.SHORT
    INT32 = SqlType.LONG
    INT64 = SqlType.INT64
    INT128 = SqlType.INT128
    FLOAT32 = SqlType.FLOAT
    FLOAT64 = SqlType.DOUBLE
    DECIMAL64 = SqlType.DEC16
    DECIMAL128 = SqlType.DEC34
    FIXED_TEXT = SqlType.TEXT
    VARIABLE_OCTETS = SqlType.VARYING
    DATE = SqlType.DATE
    TIME = SqlType.TIME
    TIME_WITH_ZONE = SqlType.TIME_TZ
    TIMESTAMP = SqlType.TIMESTAMP
    TIMESTAMP_WITH_ZONE = SqlType.TIMESTAMP_TZ
    LARGE_OBJECT_HANDLE = SqlType.BLOB
    NULL = SqlType.NULL

    @property
    def sql_type(self) -> SqlType:
        return self.value


class BlobId(NamedTuple):
    """Engine-assigned large-object handle, two words.
    """
    high: int
    low: int

    @classmethod
    def from_bytes(cls, data: bytes, byteorder: str) -> 'BlobId':
        half = len(data) // 2
        return cls(int.from_bytes(data[:half], byteorder),
                   int.from_bytes(data[half:], byteorder))

    def to_bytes(self, length: int, byteorder: str) -> bytes:
        half = length // 2
        return self.high.to_bytes(half, byteorder) + self.low.to_bytes(half, byteorder)


_int_ranges: dict[Kind, tuple[int, int]] = {
    Kind.INT16: (-2 ** 15, 2 ** 15 - 1),
    Kind.INT32: (-2 ** 31, 2 ** 31 - 1),
    Kind.INT64: (-2 ** 63, 2 ** 63 - 1),
    Kind.INT128: (-2 ** 127, 2 ** 127 - 1),
}

_raw_sizes: dict[Kind, int] = {
    Kind.DECIMAL64: 8,
    Kind.DECIMAL128: 16,
}

_payload_types: dict[Kind, type | tuple[type, ...]] = {
    Kind.BOOLEAN: bool,
    Kind.FLOAT32: float,
    Kind.FLOAT64: float,
    Kind.FIXED_TEXT: (str, bytes),
    Kind.VARIABLE_OCTETS: bytes,
    Kind.DATE: Date,
    Kind.TIME: Time,
    Kind.TIME_WITH_ZONE: TimeTz,
    Kind.TIMESTAMP: Timestamp,
    Kind.TIMESTAMP_WITH_ZONE: TimestampTz,
    Kind.LARGE_OBJECT_HANDLE: BlobId,
}


@dataclass(frozen=True)
class TypedValue:
    """One bound parameter: a kind and the payload variant it implies.

    Payloads per kind:
    - BOOLEAN: bool
    - INT16/INT32/INT64/INT128: int within the width
    - FLOAT32/FLOAT64: float
    - DECIMAL64/DECIMAL128: the engine's raw 8/16-byte encoding
    - FIXED_TEXT: str (encoded at bind time) or bytes
    - VARIABLE_OCTETS: bytes
    - DATE/TIME/TIMESTAMP and the zoned variants: temporal components
    - LARGE_OBJECT_HANDLE: BlobId
    - NULL: None
    """
    kind: Kind
    payload: Any = None
    subtype: int = 0

    def __post_init__(self):
        if not isinstance(self.kind, Kind):
            raise ValidationError(f'Not a typed value kind: {self.kind!r}')
        if self.kind is Kind.NULL:
            if self.payload is not None:
                raise ValidationError('NULL carries no payload')
            return
        if self.kind in _int_ranges:
            self._check_int()
            return
        if self.kind in _raw_sizes:
            self._check_raw()
            return
        expected = _payload_types[self.kind]
        if not isinstance(self.payload, expected):
            raise ValidationError(
                f'{self.kind.name} expects {_describe(expected)}, got {type(self.payload).__name__}')

    def _check_int(self) -> None:
        if isinstance(self.payload, bool) or not isinstance(self.payload, int):
            raise ValidationError(f'{self.kind.name} expects int, got {type(self.payload).__name__}')
        lo, hi = _int_ranges[self.kind]
        if not lo <= self.payload <= hi:
            raise ValidationError(f'{self.payload} does not fit {self.kind.name}')

    def _check_raw(self) -> None:
        size = _raw_sizes[self.kind]
        if not isinstance(self.payload, bytes) or len(self.payload) != size:
            raise ValidationError(f'{self.kind.name} expects {size} raw bytes')

    @property
    def sql_type(self) -> SqlType:
        return self.kind.sql_type

    @property
    def is_null(self) -> bool:
        return self.kind is Kind.NULL

    @classmethod
    def null(cls) -> 'TypedValue':
        return cls(Kind.NULL)

    @classmethod
    def boolean(cls, value: bool) -> 'TypedValue':
        return cls(Kind.BOOLEAN, bool(value))

    @classmethod
    def int16(cls, value: int) -> 'TypedValue':
        return cls(Kind.INT16, value)

    @classmethod
    def int32(cls, value: int) -> 'TypedValue':
        return cls(Kind.INT32, value)

    @classmethod
    def int64(cls, value: int) -> 'TypedValue':
        return cls(Kind.INT64, value)

    @classmethod
    def int128(cls, value: int) -> 'TypedValue':
        return cls(Kind.INT128, value)

    @classmethod
    def float32(cls, value: float) -> 'TypedValue':
        return cls(Kind.FLOAT32, float(value))

    @classmethod
    def float64(cls, value: float) -> 'TypedValue':
        return cls(Kind.FLOAT64, float(value))

    @classmethod
    def decimal64(cls, raw: bytes) -> 'TypedValue':
        return cls(Kind.DECIMAL64, bytes(raw))

    @classmethod
    def decimal128(cls, raw: bytes) -> 'TypedValue':
        return cls(Kind.DECIMAL128, bytes(raw))

    @classmethod
    def text(cls, value: str | bytes, subtype: int = 0) -> 'TypedValue':
        return cls(Kind.FIXED_TEXT, value, subtype)

    @classmethod
    def octets(cls, value: bytes | bytearray | memoryview, subtype: int = 0) -> 'TypedValue':
        return cls(Kind.VARIABLE_OCTETS, bytes(value), subtype)

    @classmethod
    def date(cls, value: datetime.date | Date) -> 'TypedValue':
        if not isinstance(value, Date):
            value = Date.from_python(value)
        return cls(Kind.DATE, value)

    @classmethod
    def time(cls, value: datetime.time | Time) -> 'TypedValue':
        if not isinstance(value, Time):
            value = Time.from_python(value)
        return cls(Kind.TIME, value)

    @classmethod
    def time_tz(cls, value: datetime.time | TimeTz) -> 'TypedValue':
        if not isinstance(value, TimeTz):
            value = TimeTz.from_python(value)
        return cls(Kind.TIME_WITH_ZONE, value)

    @classmethod
    def timestamp(cls, value: datetime.datetime | Timestamp) -> 'TypedValue':
        if not isinstance(value, Timestamp):
            value = Timestamp.from_python(value)
        return cls(Kind.TIMESTAMP, value)

    @classmethod
    def timestamp_tz(cls, value: datetime.datetime | TimestampTz) -> 'TypedValue':
        if not isinstance(value, TimestampTz):
            value = TimestampTz.from_python(value)
        return cls(Kind.TIMESTAMP_WITH_ZONE, value)

    @classmethod
    def blob(cls, value: BlobId, subtype: int = 0) -> 'TypedValue':
        return cls(Kind.LARGE_OBJECT_HANDLE, value, subtype)


def _describe(expected: type | tuple[type, ...]) -> str:
    if isinstance(expected, tuple):
        return ' or '.join(t.__name__ for t in expected)
    return expected.__name__


def _convert_pyarrow_value(value: Any) -> Any:
    """Convert PyArrow scalar to Python type."""
    if not value.is_valid:
        return None
    return value.as_py()


def _convert_numpy_value(val: Any) -> Any:
    """Convert NumPy scalar to Python type."""
    if isinstance(val, np.floating) and np.isnan(val):
        return None

    if isinstance(val, np.datetime64):
        if np.isnat(val):
            return None
        return pd.Timestamp(val).to_pydatetime()

    if isinstance(val, np.bool_):
        return bool(val)

    return val.item()


class TypeConverter:
    """Normalizes NumPy, pandas and PyArrow scalars to plain Python values.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a plain Python value, NaN and NaT to None."""
        if value is None:
            return None

        if isinstance(value, float) and math.isnan(value):
            return None

        if value is pd.NaT or value is pd.NA:
            return None

        if isinstance(value, (*NUMPY_FLOAT_TYPES, *NUMPY_INT_TYPES, np.bool_, np.datetime64)):
            return _convert_numpy_value(value)

        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()

        if isinstance(value, pa.Scalar):
            return _convert_pyarrow_value(value)

        return value

    @staticmethod
    def convert_params(params: Any) -> list[Any]:
        """Convert a collection of parameters."""
        return [TypeConverter.convert_value(v) for v in params]


def _infer_int(value: int) -> TypedValue:
    for kind in (Kind.INT32, Kind.INT64, Kind.INT128):
        lo, hi = _int_ranges[kind]
        if lo <= value <= hi:
            return TypedValue(kind, value)
    raise ValidationError(f'{value} does not fit INT128')


def to_typed_value(value: Any) -> TypedValue:
    """Infer a typed value from a Python value.
    """
    from rowcodec.blob import BlobStream

    if isinstance(value, TypedValue):
        return value

    value = TypeConverter.convert_value(value)

    if value is None:
        return TypedValue.null()
    if isinstance(value, bool):
        return TypedValue.boolean(value)
    if isinstance(value, int):
        return _infer_int(value)
    if isinstance(value, float):
        return TypedValue.float64(value)
    if isinstance(value, decimal.Decimal):
        return TypedValue.text(str(value))
    if isinstance(value, str):
        return TypedValue.text(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return TypedValue.octets(value)
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            return TypedValue.timestamp_tz(value)
        return TypedValue.timestamp(value)
    if isinstance(value, datetime.date):
        return TypedValue.date(value)
    if isinstance(value, datetime.time):
        if value.tzinfo is not None:
            return TypedValue.time_tz(value)
        return TypedValue.time(value)
    if isinstance(value, BlobId):
        return TypedValue.blob(value)
    if isinstance(value, BlobStream):
        return TypedValue.blob(value.blob_id)

    raise TypeConversionError(type(value).__name__, 'typed value',
                              f'Cannot bind value of type {type(value).__name__}')
