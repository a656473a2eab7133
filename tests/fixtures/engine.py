"""
In-memory engine for codec tests.

Lays out slots with the catalog's alignment rules, serves canned result rows
and stores segmented large objects, counting every call.

Usage:
    def test_select(engine, executor):
        engine.describe_result(('ID', SqlType.LONG), ('NAME', SqlType.VARYING, 20))
        engine.add_row(TypedValue.int32(1), TypedValue.octets(b'Alice'))
        with executor.cursor() as rs:
            ...
"""
from collections import Counter
from dataclasses import dataclass, field

import pytest
from rowcodec import Executor
from rowcodec.blob import BlobInfo
from rowcodec.engine import SegmentStatus
from rowcodec.layout import ColumnDescriptor, MessageDescriptor, SlotRequest
from rowcodec.layout import write_slot
from rowcodec.options import CodecOptions
from rowcodec.types import NULL_INDICATOR_SIZE, SqlType, align, slot_extent
from rowcodec.types import type_alignment, type_width
from rowcodec.values import BlobId, TypedValue, to_typed_value


class EngineFailure(Exception):
    """Engine-specific failure that must never reach codec callers."""


def layout(slots, names=None, scales=None, charsets=None):
    """Columns and buffer length for slots laid out one after another.

    Each payload is aligned for its type and followed by its 2-byte null
    indicator.
    """
    columns = []
    pos = 0
    for i, slot in enumerate(slots):
        length = slot.length if slot.length is not None else type_width(slot.sql_type)
        offset = align(pos, type_alignment(slot.sql_type))
        pos = offset + slot_extent(slot.sql_type, length)
        null_offset = align(pos, NULL_INDICATOR_SIZE)
        pos = null_offset + NULL_INDICATOR_SIZE
        columns.append(ColumnDescriptor(
            sql_type=slot.raw_type,
            length=length,
            offset=offset,
            null_offset=null_offset,
            subtype=slot.subtype,
            scale=scales[i] if scales else 0,
            name=names[i] if names else '',
            alias=names[i] if names else '',
            charset=charsets[i] if charsets else 0))
    return columns, align(pos, 8)


@dataclass
class MemoryCursor:
    rows: list
    position: int = 0
    closed: bool = False


class MemoryBlob:
    """Blob handle over a list of stored segments."""

    def __init__(self, engine, segments, writable):
        self.engine = engine
        self.segments = segments
        self.writable = writable
        self.closed = False
        self._segment = 0
        self._offset = 0

    def write_segment(self, data):
        self.engine.calls['write_segment'] += 1
        if not self.writable:
            raise EngineFailure('blob is read only')
        self.segments.append(bytes(data))

    def read_segment(self, max_bytes):
        self.engine.calls['read_segment'] += 1
        if self._segment >= len(self.segments):
            return SegmentStatus.NO_DATA, b''
        segment = self.segments[self._segment]
        data = segment[self._offset:self._offset + max_bytes]
        self._offset += len(data)
        if self._offset < len(segment):
            return SegmentStatus.SEGMENT, data
        self._segment += 1
        self._offset = 0
        return SegmentStatus.OK, data

    def get_info(self, items, buffer_size):
        self.engine.calls['get_info'] += 1
        item = items[0]
        values = {
            BlobInfo.NUM_SEGMENTS: len(self.segments),
            BlobInfo.MAX_SEGMENT: max((len(s) for s in self.segments), default=0),
            BlobInfo.TOTAL_LENGTH: sum(len(s) for s in self.segments),
            BlobInfo.TYPE: self.engine.blob_type,
        }
        if item not in values:
            raise EngineFailure(f'unknown info item {item}')
        response = bytes([item]) + (4).to_bytes(2, 'little') \
            + values[item].to_bytes(4, 'little', signed=True) + bytes([BlobInfo.END])
        if len(response) > buffer_size:
            return bytes([BlobInfo.TRUNCATED])
        return response

    def close(self):
        self.engine.calls['close_blob'] += 1
        if self.closed:
            raise EngineFailure('blob handle released twice')
        self.closed = True


@dataclass
class FakeEngine:
    """Engine double that records what the codec hands it."""

    affected: int = 1
    blob_type: int = 0
    calls: Counter = field(default_factory=Counter)
    executed: list = field(default_factory=list)
    blobs: dict = field(default_factory=dict)
    output: MessageDescriptor | None = None
    rows: list = field(default_factory=list)
    fail_on: set = field(default_factory=set)
    cursors: list = field(default_factory=list)

    def _enter(self, operation):
        self.calls[operation] += 1
        if operation in self.fail_on:
            raise EngineFailure(f'{operation} failed')

    def format_error(self, exc):
        return f'engine says: {exc}'

    def allocate_descriptor(self, slots):
        self._enter('allocate_descriptor')
        return layout(slots)

    def execute(self, descriptor, buffer):
        self._enter('execute')
        self.executed.append((descriptor, None if buffer is None else bytes(buffer)))
        return self.affected

    def open_cursor(self, descriptor, buffer):
        self._enter('open_cursor')
        self.executed.append((descriptor, None if buffer is None else bytes(buffer)))
        cursor = MemoryCursor(list(self.rows))
        self.cursors.append(cursor)
        return self.output, cursor

    def fetch_next(self, cursor, out_buffer):
        self._enter('fetch_next')
        if cursor.position >= len(cursor.rows):
            return False
        out_buffer[:] = cursor.rows[cursor.position]
        cursor.position += 1
        return True

    def close_cursor(self, cursor):
        self._enter('close_cursor')
        cursor.closed = True

    def create_blob(self):
        self._enter('create_blob')
        blob_id = BlobId(0, len(self.blobs) + 1)
        self.blobs[blob_id] = []
        return blob_id, MemoryBlob(self, self.blobs[blob_id], writable=True)

    def open_blob(self, blob_id):
        self._enter('open_blob')
        if blob_id not in self.blobs:
            raise EngineFailure(f'blob {blob_id} not found')
        return MemoryBlob(self, self.blobs[blob_id], writable=False)

    def describe_result(self, *specs, scales=None, charsets=None):
        """Set the output descriptor from (name, sql_type[, length]) specs."""
        slots = [SlotRequest(spec[1], length=spec[2] if len(spec) > 2 else None)
                 for spec in specs]
        names = [spec[0] for spec in specs]
        columns, length = layout(slots, names, scales, charsets)
        self.output = MessageDescriptor(tuple(columns), length)
        self.rows = []
        return self.output

    def add_row(self, *values, options=None):
        """Encode one output row for the current descriptor."""
        options = options or CodecOptions()
        buffer = bytearray(self.output.length)
        for column, value in zip(self.output.columns, values):
            if column.sql_type == SqlType.VARYING and isinstance(value, str):
                value = TypedValue.octets(value.encode(options.encoding))
            write_slot(buffer, column, to_typed_value(value), options)
        self.rows.append(bytes(buffer))
        return buffer


@pytest.fixture
def engine():
    """Fresh in-memory engine."""
    return FakeEngine()


@pytest.fixture
def executor(engine):
    """Executor bound to the in-memory engine."""
    return Executor(engine)
