"""
Interface of the tabular engine the codec talks to.

The engine owns layout rules, statement execution, cursors and large-object
storage. The codec only calls it through these protocols and wraps every call
in `engine_errors` so that engine exception types never leak to callers.
"""
import enum
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Protocol

from rowcodec.exceptions import CodecError, EngineError

if TYPE_CHECKING:
    from rowcodec.layout import ColumnDescriptor, MessageDescriptor, SlotRequest
    from rowcodec.values import BlobId

logger = logging.getLogger(__name__)


class SegmentStatus(enum.IntEnum):
    """Status of one segment read."""

    ERROR = -1
    OK = 0
    NO_DATA = 1
    SEGMENT = 2


class BlobHandle(Protocol):
    """Engine-side large-object handle."""

    def read_segment(self, max_bytes: int) -> tuple[SegmentStatus, bytes]: ...

    def write_segment(self, data: bytes) -> None: ...

    def get_info(self, items: bytes, buffer_size: int) -> bytes: ...

    def close(self) -> None: ...


class CursorHandle(Protocol):
    """Opaque engine cursor."""


class Engine(Protocol):
    """Operations the codec needs from the tabular engine."""

    def allocate_descriptor(self, slots: Sequence['SlotRequest']
                            ) -> tuple[Sequence['ColumnDescriptor'], int]: ...

    def execute(self, descriptor: 'MessageDescriptor | None', buffer: bytes | None) -> int: ...

    def open_cursor(self, descriptor: 'MessageDescriptor | None', buffer: bytes | None
                    ) -> tuple['MessageDescriptor', CursorHandle]: ...

    def fetch_next(self, cursor: CursorHandle, out_buffer: bytearray) -> bool: ...

    def close_cursor(self, cursor: CursorHandle) -> None: ...

    def create_blob(self) -> tuple['BlobId', BlobHandle]: ...

    def open_blob(self, blob_id: 'BlobId') -> BlobHandle: ...


def format_engine_error(engine: Any, exc: BaseException) -> str:
    """Human-readable message for an engine failure.

    Uses the engine's own `format_error` when it offers one.
    """
    formatter = getattr(engine, 'format_error', None)
    if callable(formatter):
        try:
            return formatter(exc)
        except Exception as e:
            logger.warning(f'Engine error formatter failed: {e}')
    return str(exc) or type(exc).__name__


@contextmanager
def engine_errors(engine: Any, operation: str) -> Iterator[None]:
    """Re-raise any engine failure inside the block as EngineError.
    """
    try:
        yield
    except CodecError:
        raise
    except Exception as exc:
        message = format_engine_error(engine, exc)
        logger.error(f'Engine call {operation} failed: {message}')
        raise EngineError(f'{operation}: {message}', cause=exc) from exc
