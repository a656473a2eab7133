import datetime

import pandas as pd
import pytest
from rowcodec import Executor
from rowcodec.exceptions import DescriptorError, EngineError, LogicError
from rowcodec.exceptions import StaleRowError, ValidationError
from rowcodec.layout import ColumnDescriptor
from rowcodec.options import CodecOptions, pandas_numpy_data_loader
from rowcodec.row import Row
from rowcodec.types import SqlType
from rowcodec.values import BlobId, TypedValue

from tests.fixtures.engine import EngineFailure


@pytest.fixture
def people(engine):
    """Output descriptor with three rows: id, name, born"""
    engine.describe_result(('ID', SqlType.LONG), ('NAME', SqlType.VARYING, 16),
                           ('BORN', SqlType.DATE))
    engine.add_row(1, 'Alice', datetime.date(1990, 1, 2))
    engine.add_row(2, 'Bob', None)
    engine.add_row(3, 'Carol', datetime.date(1985, 5, 6))
    return engine


class TestExecute:

    def test_without_parameters(self, engine, executor):
        engine.affected = 4
        assert executor.execute() == 4
        assert engine.executed == [(None, None)]

    def test_with_parameters(self, engine, executor):
        executor.execute(1, 'x', None)
        descriptor, buffer = engine.executed[0]
        assert len(descriptor) == 3
        assert len(buffer) == descriptor.length

    def test_tracks_calls(self, executor):
        executor.execute()
        executor.execute(1)
        assert executor.calls == 2
        assert executor.time >= 0

    def test_engine_failure(self, engine, executor):
        engine.fail_on.add('execute')
        with pytest.raises(EngineError, match='execute: engine says: execute failed') as exc_info:
            executor.execute(1)
        assert isinstance(exc_info.value.cause, EngineFailure)
        assert executor.calls == 1

    def test_options_from_kwargs(self, engine):
        executor = Executor(engine, null_indicator=1)
        assert executor.options.null_indicator == 1
        executor = Executor(engine, {'encoding': 'latin-1'})
        assert executor.options.encoding == 'latin-1'
        options = CodecOptions()
        assert Executor(engine, options).options is options


class TestResultSet:

    def test_next_and_get(self, people, executor):
        with executor.cursor() as rs:
            assert rs.ncols == 3
            assert rs.names() == ['ID', 'NAME', 'BORN']
            assert rs.aliases() == ['ID', 'NAME', 'BORN']
            assert rs.types()[1] == (SqlType.VARYING, 0)
            assert rs.next()
            assert rs.get(0).as_int32() == 1
            assert rs.get(1).as_str() == 'Alice'
            assert rs.get(2).as_date() == datetime.date(1990, 1, 2)
            assert rs.next()
            assert rs.get(2).is_null()
            assert rs.next()
            assert not rs.next()

    def test_parameters_passed_to_cursor(self, people, executor):
        with executor.cursor(TypedValue.int16(2)) as rs:
            pass
        descriptor, _ = people.executed[0]
        assert descriptor[0].sql_type == SqlType.SHORT
        assert rs.closed

    def test_row_before_fetch(self, people, executor):
        with executor.cursor() as rs, pytest.raises(LogicError, match='call next'):
            rs.row

    def test_field_goes_stale_after_fetch(self, people, executor):
        with executor.cursor() as rs:
            rs.next()
            field = rs.get(1)
            assert field.as_str() == 'Alice'
            rs.next()
            with pytest.raises(StaleRowError):
                field.as_str()

    def test_field_goes_stale_after_close(self, people, executor):
        rs = executor.cursor()
        rs.next()
        row = rs.row
        rs.close()
        with pytest.raises(StaleRowError):
            row.values()

    def test_iteration_yields_detached_rows(self, people, executor):
        with executor.cursor() as rs:
            rows = list(rs)
        assert all(isinstance(r, Row) for r in rows)
        assert [r.get(1).as_str() for r in rows] == ['Alice', 'Bob', 'Carol']

    def test_fetchall_iterdict(self, people, executor):
        with executor.cursor() as rs:
            data = rs.fetchall()
        assert data[0] == {'ID': 1, 'NAME': 'Alice', 'BORN': datetime.date(1990, 1, 2)}
        assert data[1].BORN is None

    def test_fetchall_pandas(self, people):
        executor = Executor(people, data_loader=pandas_numpy_data_loader)
        df = executor.select()
        assert isinstance(df, pd.DataFrame)
        assert list(df.columns) == ['ID', 'NAME', 'BORN']
        assert df.iloc[2]['NAME'] == 'Carol'
        assert df.attrs['column_types']['ID']['type_name'] == 'INT'

    def test_second_close_fails(self, people, executor):
        rs = executor.cursor()
        rs.close()
        with pytest.raises(LogicError, match='already closed'):
            rs.close()
        with pytest.raises(LogicError):
            rs.next()
        assert people.calls['close_cursor'] == 1

    def test_bad_output_descriptor_closes_cursor(self, engine, executor):
        engine.output = ((ColumnDescriptor(SqlType.LONG, 4, 8, 0),), 10)
        with pytest.raises(DescriptorError, match='beyond buffer length'):
            executor.cursor()
        assert engine.calls['close_cursor'] == 1
        assert engine.cursors[0].closed

    def test_fetch_failure(self, people, executor):
        people.fail_on.add('fetch_next')
        with executor.cursor() as rs, pytest.raises(EngineError, match='fetch_next'):
            rs.next()


class TestSelect:

    def test_select_row(self, people, executor):
        people.rows = people.rows[:1]
        row = executor.select_row()
        assert row.NAME == 'Alice'

    def test_select_row_requires_one(self, people, executor):
        with pytest.raises(ValidationError, match='returned 3'):
            executor.select_row()

    def test_select_row_or_none(self, people, executor):
        people.rows = []
        assert executor.select_row_or_none() is None

    def test_select_scalar(self, people, executor):
        people.rows = people.rows[1:2]
        assert executor.select_scalar() == 2


class TestStatement:

    def test_accumulates_values(self, engine, executor):
        stmt = executor.statement(1)
        stmt.add('a').add(None)
        assert len(stmt) == 3
        stmt.execute(2.5)
        descriptor, _ = engine.executed[0]
        assert [c.sql_type for c in descriptor] == [SqlType.LONG, SqlType.TEXT, SqlType.SHORT,
                                                    SqlType.DOUBLE]

    def test_clear(self, engine, executor):
        stmt = executor.statement(1, 2)
        stmt.clear()
        assert len(stmt) == 0
        stmt.execute()
        assert engine.executed == [(None, None)]

    def test_cursor(self, people, executor):
        with executor.statement().cursor() as rs:
            assert rs.next()


class TestBlobs:

    def test_write_then_bind(self, engine, executor):
        with executor.create_blob() as blob:
            blob.put(b'payload')
        executor.execute(blob)
        descriptor, _ = engine.executed[0]
        assert descriptor[0].sql_type == SqlType.BLOB

    def test_open_from_result_set(self, engine, executor):
        with executor.create_blob() as blob:
            blob.put(b'payload')
        engine.describe_result(('DATA', SqlType.BLOB))
        engine.add_row(blob.blob_id)
        with executor.cursor() as rs:
            rs.next()
            with executor.open_blob(rs, 0) as reader:
                assert reader.get() == b'payload'
            with executor.open_blob(rs.get(0)) as reader:
                assert reader.mode == 'r'

    def test_open_from_result_set_needs_column(self, engine, executor):
        engine.describe_result(('DATA', SqlType.BLOB))
        with executor.cursor() as rs, pytest.raises(LogicError, match='column index'):
            executor.open_blob(rs)

    def test_open_from_id(self, engine, executor):
        with executor.create_blob() as blob:
            blob.put(b'abc')
        with executor.open_blob(BlobId(*blob.blob_id)) as reader:
            assert reader.get() == b'abc'

    def test_open_from_other(self, executor):
        with pytest.raises(LogicError, match='Cannot open a blob from str'):
            executor.open_blob('nope')


if __name__ == '__main__':
    __import__('pytest').main([__file__])
