"""
Row buffer codec for a tabular engine.

Marshals typed parameters into engine-described input buffers, decodes
output row buffers back into Python values, and streams segmented large
objects.

Typical use goes through an Executor:
- executor.execute(*values)
- executor.cursor(*values) -> ResultSet
- executor.create_blob() / executor.open_blob(blob_id)
"""
__version__ = '0.1.0'

from rowcodec.blob import BlobInfo, BlobStream
from rowcodec.cache import Cache
from rowcodec.cursor import ResultSet
from rowcodec.engine import BlobHandle, Engine, SegmentStatus
from rowcodec.exceptions import CodecError, ColumnIndexError, DescriptorError
from rowcodec.exceptions import EngineError, LogicError, StaleRowError
from rowcodec.exceptions import TypeConversionError, UnsupportedTypeError
from rowcodec.exceptions import ValidationError
from rowcodec.executor import Executor, Statement
from rowcodec.layout import ColumnDescriptor, InputMessage, MessageDescriptor
from rowcodec.layout import SlotRequest, build_input
from rowcodec.options import CodecOptions, iterdict_data_loader
from rowcodec.options import pandas_numpy_data_loader, pandas_pyarrow_data_loader
from rowcodec.row import Field, Row, Target, render_scaled
from rowcodec.temporal import register_time_zone
from rowcodec.types import SqlType, is_variable_width, type_name
from rowcodec.values import BlobId, Kind, TypedValue, to_typed_value

__all__ = [
    # Execution
    'Executor',
    'Statement',
    'ResultSet',
    'BlobStream',
    'BlobInfo',
    # Engine interface
    'Engine',
    'BlobHandle',
    'SegmentStatus',
    # Values and layout
    'Kind',
    'TypedValue',
    'BlobId',
    'to_typed_value',
    'SlotRequest',
    'ColumnDescriptor',
    'MessageDescriptor',
    'InputMessage',
    'build_input',
    # Decoding
    'Row',
    'Field',
    'Target',
    'render_scaled',
    # Catalog
    'SqlType',
    'type_name',
    'is_variable_width',
    'register_time_zone',
    # Options
    'CodecOptions',
    'Cache',
    'iterdict_data_loader',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
    # Exceptions
    'CodecError',
    'EngineError',
    'LogicError',
    'UnsupportedTypeError',
    'TypeConversionError',
    'ColumnIndexError',
    'StaleRowError',
    'DescriptorError',
    'ValidationError',
]
