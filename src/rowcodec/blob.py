"""
Segmented large-object streams.

A stream is opened in exactly one mode: `'w'` for a freshly created object,
`'r'` for an existing one. Writes are split into segments of at most
`CodecOptions.segment_size` bytes; reads return one segment or drain the
object until the engine reports no more data.
"""
import enum
import logging
from typing import Any, Self

from more_itertools import sliced

from rowcodec.engine import BlobHandle, Engine, SegmentStatus, engine_errors
from rowcodec.exceptions import EngineError, LogicError
from rowcodec.options import CodecOptions
from rowcodec.values import BlobId

logger = logging.getLogger(__name__)

__all__ = ['BlobInfo', 'BlobStream', 'SegmentStatus', 'portable_integer']


class BlobInfo(enum.IntEnum):
    """Info request items and response markers."""

    END = 1
    TRUNCATED = 2
    NUM_SEGMENTS = 4
    MAX_SEGMENT = 5
    TOTAL_LENGTH = 6
    TYPE = 7


def portable_integer(data: bytes) -> int:
    """Little-endian signed integer of any width, as info responses carry them.
    """
    return int.from_bytes(data, 'little', signed=True)


class BlobStream:
    """Reader or writer over one engine large object.

    Basic usage:
        with executor.create_blob() as blob:
            blob.put(payload)
        executor.execute(blob.blob_id)
    """

    def __init__(self, engine: Engine, handle: BlobHandle, blob_id: BlobId, mode: str,
                 options: CodecOptions | None = None) -> None:
        if mode not in {'r', 'w'}:
            raise LogicError(f'Invalid blob mode: {mode!r}')
        self.engine = engine
        self.handle = handle
        self.blob_id = blob_id
        self.mode = mode
        self.options = options or CodecOptions()
        self.closed = False

    @classmethod
    def create(cls, engine: Engine, options: CodecOptions | None = None) -> Self:
        """Create a new large object and open it for writing."""
        with engine_errors(engine, 'create_blob'):
            blob_id, handle = engine.create_blob()
        logger.debug(f'Created blob {blob_id}')
        return cls(engine, handle, blob_id, 'w', options)

    @classmethod
    def open(cls, engine: Engine, blob_id: BlobId, options: CodecOptions | None = None) -> Self:
        """Open an existing large object for reading."""
        with engine_errors(engine, 'open_blob'):
            handle = engine.open_blob(blob_id)
        logger.debug(f'Opened blob {blob_id}')
        return cls(engine, handle, blob_id, 'r', options)

    def __repr__(self) -> str:
        state = 'closed' if self.closed else 'open'
        return f'BlobStream({self.blob_id}, mode={self.mode!r}, {state})'

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        if not self.closed:
            self.close()

    def _require(self, mode: str, operation: str) -> None:
        if self.closed:
            raise LogicError(f'Cannot {operation} on a closed blob stream')
        if self.mode != mode:
            raise LogicError(f'Cannot {operation} on a blob opened with mode {self.mode!r}')

    def put(self, data: bytes | bytearray | memoryview) -> None:
        """Append bytes, one segment write per chunk of at most segment_size."""
        self._require('w', 'put')
        data = bytes(data)
        size = self.options.segment_size
        chunks = [data] if len(data) <= size else list(sliced(data, size))
        for chunk in chunks:
            with engine_errors(self.engine, 'write_segment'):
                self.handle.write_segment(chunk)
        logger.debug(f'Wrote {len(data)} bytes in {len(chunks)} segments to blob {self.blob_id}')

    def put_text(self, text: str) -> None:
        self.put(text.encode(self.options.encoding))

    def _read_segment(self, max_bytes: int) -> tuple[SegmentStatus, bytes]:
        with engine_errors(self.engine, 'read_segment'):
            status, data = self.handle.read_segment(max_bytes)
        status = SegmentStatus(status)
        if status == SegmentStatus.ERROR:
            raise EngineError(f'read_segment: engine reported an error on blob {self.blob_id}')
        return status, bytes(data)

    def get(self, max_bytes: int | None = None) -> bytes:
        """Read one segment of up to max_bytes, or the whole remaining object.

        The engine may return fewer bytes than requested. Without max_bytes,
        segments are pulled until the engine stops reporting more data.
        """
        self._require('r', 'get')
        if max_bytes is not None:
            _, data = self._read_segment(max_bytes)
            return data

        parts = []
        status = SegmentStatus.OK
        while status in {SegmentStatus.OK, SegmentStatus.SEGMENT}:
            status, data = self._read_segment(self.options.segment_size)
            parts.append(data)
        result = b''.join(parts)
        logger.debug(f'Read {len(result)} bytes in {len(parts)} calls from blob {self.blob_id}')
        return result

    def get_text(self) -> str:
        return self.get().decode(self.options.encoding)

    def info(self, item: BlobInfo | int) -> int:
        """Query one info item of the object.

        The response is `[item][length: 2 bytes LE][value: length bytes LE]`.
        """
        if self.closed:
            raise LogicError('Cannot query info on a closed blob stream')
        request = bytes([item, BlobInfo.END])
        with engine_errors(self.engine, 'get_info'):
            response = bytes(self.handle.get_info(request, self.options.info_buffer_size))
        if not response or response[0] != item:
            got = response[0] if response else None
            raise LogicError(f'Unexpected blob info response {got} for item {int(item)}')
        length = portable_integer(response[1:3])
        return portable_integer(response[3:3 + length])

    @property
    def num_segments(self) -> int:
        return self.info(BlobInfo.NUM_SEGMENTS)

    @property
    def max_segment(self) -> int:
        return self.info(BlobInfo.MAX_SEGMENT)

    @property
    def total_length(self) -> int:
        return self.info(BlobInfo.TOTAL_LENGTH)

    @property
    def blob_type(self) -> int:
        return self.info(BlobInfo.TYPE)

    def close(self) -> None:
        """Release the engine handle. A second close is an error."""
        if self.closed:
            raise LogicError(f'Blob stream {self.blob_id} already closed')
        self.closed = True
        with engine_errors(self.engine, 'close_blob'):
            self.handle.close()
        logger.debug(f'Closed blob {self.blob_id}')
