"""
Execution facade over an engine.

The Executor marshals Python values into an input message, runs it through
the engine and wraps the results:

- execute(*values): run without a cursor, return the affected row count
- cursor(*values): open a ResultSet
- select, select_row, select_scalar: fetch through the data loader
- create_blob, open_blob: segmented large-object streams
- statement(): accumulate parameters before running
"""
import logging
from typing import Any, Self

from rowcodec.blob import BlobStream
from rowcodec.cursor import ResultSet, dumpmessage
from rowcodec.engine import Engine, engine_errors
from rowcodec.exceptions import DescriptorError, LogicError, ValidationError
from rowcodec.layout import InputMessage, MessageDescriptor, build_input
from rowcodec.options import CodecOptions, iterdict_data_loader
from rowcodec.row import Field
from rowcodec.values import BlobId

logger = logging.getLogger(__name__)


def _unpack(message: InputMessage | None) -> tuple[Any, Any]:
    if message is None:
        return None, None
    return message.descriptor, message.buffer


class Executor:
    """Runs typed parameter lists against one engine.

    Options come from a CodecOptions instance or as keyword arguments.
    """

    def __init__(self, engine: Engine, options: CodecOptions | dict | None = None,
                 **kwargs: Any) -> None:
        if options is None:
            options = CodecOptions(**kwargs)
        elif isinstance(options, dict):
            options = CodecOptions(**(options | kwargs))
        self.engine = engine
        self.options = options
        self.calls = 0
        self.time = 0

    def __repr__(self) -> str:
        return f'Executor({self.engine!r}, calls={self.calls})'

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    @dumpmessage
    def execute(self, *values: Any) -> int:
        """Run the parameter list without a cursor and return the affected row count.
        """
        descriptor, buffer = _unpack(build_input(values, self.engine, self.options))
        with engine_errors(self.engine, 'execute'):
            count = self.engine.execute(descriptor, buffer)
        logger.debug(f'Affected rows: {count}')
        return count

    @dumpmessage
    def cursor(self, *values: Any) -> ResultSet:
        """Open a result set for the parameter list.
        """
        descriptor, buffer = _unpack(build_input(values, self.engine, self.options))
        with engine_errors(self.engine, 'open_cursor'):
            output, handle = self.engine.open_cursor(descriptor, buffer)
        if not isinstance(output, MessageDescriptor):
            columns, length = output
            try:
                output = MessageDescriptor(tuple(columns), length)
            except DescriptorError:
                with engine_errors(self.engine, 'close_cursor'):
                    self.engine.close_cursor(handle)
                raise
        return ResultSet(self, output, handle)

    def select(self, *values: Any) -> Any:
        """Fetch every row through the configured data loader.
        """
        with self.cursor(*values) as rs:
            return rs.fetchall()

    def _select_dicts(self, *values: Any) -> list[dict]:
        with self.cursor(*values) as rs:
            data = [row.to_dict() for row in rs]
        return iterdict_data_loader(data, rs.descriptor.columns)

    def select_row(self, *values: Any) -> Any:
        """Fetch exactly one row as an attrdict.

        Raises ValidationError if the result has zero or several rows.
        """
        data = self._select_dicts(*values)
        if len(data) != 1:
            raise ValidationError(f'Expected one row, returned {len(data)}')
        return data[0]

    def select_row_or_none(self, *values: Any) -> Any | None:
        data = self._select_dicts(*values)
        if len(data) > 1:
            raise ValidationError(f'Expected at most one row, returned {len(data)}')
        return data[0] if data else None

    def select_scalar(self, *values: Any) -> Any:
        """First column of exactly one row.
        """
        row = self.select_row(*values)
        if not row:
            raise ValidationError('Expected a column, the row is empty')
        return next(iter(row.values()))

    def create_blob(self) -> BlobStream:
        """New large object open for writing; bind its `blob_id` afterwards."""
        return BlobStream.create(self.engine, self.options)

    def open_blob(self, source: BlobId | Field | ResultSet, column: int | None = None) -> BlobStream:
        """Open a large object for reading.

        `source` is a BlobId, a BLOB field, or a result set positioned on a
        row together with the column index of the BLOB.
        """
        if isinstance(source, ResultSet):
            if column is None:
                raise LogicError('A column index is required to open a blob from a result set')
            source = source.get(column)
        if isinstance(source, Field):
            source = source.as_blob_id()
        if not isinstance(source, BlobId):
            raise LogicError(f'Cannot open a blob from {type(source).__name__}')
        return BlobStream.open(self.engine, source, self.options)

    def statement(self, *values: Any) -> 'Statement':
        return Statement(self, *values)


class Statement:
    """Parameter list built up before it runs.

    Basic usage:
        stmt = executor.statement()
        stmt.add(1, 'a').add(None)
        stmt.execute()
    """

    def __init__(self, executor: Executor, *values: Any) -> None:
        self.executor = executor
        self.values: list[Any] = list(values)

    def __len__(self) -> int:
        return len(self.values)

    def __repr__(self) -> str:
        return f'Statement({len(self.values)} values)'

    def add(self, *values: Any) -> Self:
        self.values.extend(values)
        return self

    def clear(self) -> None:
        self.values.clear()

    def execute(self, *extra: Any) -> int:
        """Run the accumulated values plus one-shot extras."""
        return self.executor.execute(*self.values, *extra)

    def cursor(self, *extra: Any) -> ResultSet:
        return self.executor.cursor(*self.values, *extra)
