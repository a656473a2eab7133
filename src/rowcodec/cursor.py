"""
Result sets over engine cursors.

A ResultSet owns one output buffer sized from the engine's output descriptor.
Every fetch refills that buffer in place, so rows handed out by `row` are
live views that go stale on the next fetch; iteration yields detached copies.
"""
import logging
import time
from collections.abc import Callable, Iterator
from functools import wraps
from typing import TYPE_CHECKING, Any, Self

from rowcodec.engine import CursorHandle, engine_errors
from rowcodec.exceptions import LogicError, StaleRowError
from rowcodec.layout import MessageDescriptor
from rowcodec.row import Field, Row

if TYPE_CHECKING:
    from rowcodec.executor import Executor

logger = logging.getLogger(__name__)


def dumpmessage(func):
    """Decorator for logging engine calls, their parameter count and timing."""
    @wraps(func)
    def wrapper(self, *values: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'{func.__name__}: {len(values)} values')
        try:
            return func(self, *values, **kwargs)
        except Exception:
            logger.error(f'Error in {func.__name__} with values: {values}')
            raise
        finally:
            elapsed = time.time() - start
            getattr(self, 'executor', self).addcall(elapsed)
            logger.debug(f'{func.__name__} time: {elapsed:.4f}s')
    return wrapper


class ResultSet:
    """Forward-only result set.

    Basic usage:
        with executor.cursor(*params) as rs:
            while rs.next():
                print(rs.get(0).as_str())
    """

    def __init__(self, executor: 'Executor', descriptor: MessageDescriptor,
                 cursor: CursorHandle) -> None:
        self.executor = executor
        self.descriptor = descriptor
        self.cursor = cursor
        self.buffer = bytearray(descriptor.length)
        self.closed = False
        self._generation = 0
        self._has_row = False

    @property
    def engine(self) -> Any:
        return self.executor.engine

    @property
    def options(self) -> Any:
        return self.executor.options

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        if not self.closed:
            self.close()

    def __iter__(self) -> Iterator[Row]:
        while self.next():
            yield self.row.copy()

    def _guard(self, generation: int) -> Callable[[], None]:
        def check() -> None:
            if self.closed:
                raise StaleRowError('Result set was closed after the row was fetched')
            if generation != self._generation:
                raise StaleRowError('Row buffer was refilled by a later fetch')
        return check

    def next(self) -> bool:
        """Fetch the next row into the buffer, False at end of data."""
        if self.closed:
            raise LogicError('Cannot fetch from a closed result set')
        self._generation += 1
        with engine_errors(self.engine, 'fetch_next'):
            self._has_row = bool(self.engine.fetch_next(self.cursor, self.buffer))
        return self._has_row

    @property
    def ncols(self) -> int:
        return len(self.descriptor)

    def names(self) -> list[str]:
        return [col.name for col in self.descriptor]

    def aliases(self) -> list[str]:
        return [col.label for col in self.descriptor]

    def types(self) -> list[tuple[int, int]]:
        return [(col.sql_type, col.subtype) for col in self.descriptor]

    @property
    def row(self) -> Row:
        """Live view of the current row."""
        if self.closed:
            raise LogicError('Result set is closed')
        if not self._has_row:
            raise LogicError('No current row, call next() first')
        return Row(self.descriptor, self.buffer, self._guard(self._generation),
                   self.options.encoding)

    def get(self, index: int) -> Field:
        return self.row.get(index)

    def fetchall(self) -> Any:
        """Remaining rows through the configured data loader."""
        data = [row.to_dict() for row in self]
        return self.options.data_loader(data, self.descriptor.columns)

    def close(self) -> None:
        """Close the engine cursor. A second close is an error."""
        if self.closed:
            raise LogicError('Result set already closed')
        self.closed = True
        self._has_row = False
        with engine_errors(self.engine, 'close_cursor'):
            self.engine.close_cursor(self.cursor)
        logger.debug(f'Result set closed after {self._generation} fetches')
