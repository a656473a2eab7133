import codecs
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pandas as pd
import pyarrow as pa

from libb import ConfigOptions

__all__ = [
    'CodecOptions',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
    'iterdict_data_loader',
]

MAX_SEGMENT_SIZE = 32 * 1024


def _column_names(columns) -> list[str]:
    return [col.label for col in columns]


def _column_types(columns) -> dict[str, dict]:
    return {col.label: col.to_dict() for col in columns}


def iterdict_data_loader(data, columns, **kwargs) -> list[dict]:
    """Minimal data loader.

    Accepts additional keyword arguments for compatibility with other data
    loaders, but doesn't use them.
    """
    if not data:
        return []
    return list(data)


def _empty_dataframe(columns) -> pd.DataFrame:
    """Create empty DataFrame with column metadata."""
    df = pd.DataFrame(columns=_column_names(columns))
    df.attrs['column_types'] = _column_types(columns)
    return df


def pandas_numpy_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """Standard pandas DataFrame loader using NumPy.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    Includes type information in the DataFrame.attrs attribute.
    """
    if not data:
        return _empty_dataframe(columns)

    df = pd.DataFrame.from_records(list(data), columns=_column_names(columns))
    df.attrs['column_types'] = _column_types(columns)
    return df


def pandas_pyarrow_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """PyArrow-based pandas DataFrame loader.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    """
    if not data:
        return _empty_dataframe(columns)

    column_names = _column_names(columns)
    columns_data = [[row[col] for row in data] for col in column_names]
    df = pa.table(columns_data, names=column_names).to_pandas(types_mapper=pd.ArrowDtype)
    df.attrs['column_types'] = _column_types(columns)
    return df


@dataclass
class CodecOptions(ConfigOptions):
    """Options

    Text and null handling:
    - encoding: Codec for TEXT/VARYING slots and text blobs (default: utf-8)
    - null_indicator: Nonzero value written for NULL parameters (default: -1)

    Large objects:
    - segment_size: Largest segment written or read in one call (default: 32 KiB)
    - info_buffer_size: Response buffer for blob info requests (default: 16)

    Layout caching:
    - cache_layouts: Reuse descriptors for identical slot lists (default: True)
    - layout_cache_size: Maximum cached layouts (default: 100)
    - layout_cache_ttl: Seconds a cached layout stays valid (default: 300)
    """
    encoding: str = 'utf-8'
    null_indicator: int = -1
    segment_size: int = MAX_SEGMENT_SIZE
    info_buffer_size: int = 16
    cache_layouts: bool = True
    layout_cache_size: int = 100
    layout_cache_ttl: int = 300
    data_loader: Callable[..., Any] | None = None

    def __post_init__(self):
        try:
            codecs.lookup(self.encoding)
        except LookupError as e:
            raise ValueError(f'Unknown encoding: {self.encoding}') from e
        if self.null_indicator == 0 or not -2 ** 15 <= self.null_indicator < 2 ** 15:
            raise ValueError('null_indicator must be a nonzero 16-bit value')
        if not 0 < self.segment_size <= 0xFFFF:
            raise ValueError('segment_size must be between 1 and 65535')
        if self.info_buffer_size < 4:
            raise ValueError('info_buffer_size must hold at least one item')
        if self.data_loader is None:
            self.data_loader = iterdict_data_loader
