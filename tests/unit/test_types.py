import datetime

import pytest
from rowcodec.types import UNKNOWN, SqlType, align, as_sql_type
from rowcodec.types import has_declared_length, is_variable_width, python_types
from rowcodec.types import slot_extent, strip_nullable, type_alignment
from rowcodec.types import type_name, type_width


@pytest.mark.parametrize(('code', 'name'), [
    (SqlType.TEXT, 'CHAR'),
    (SqlType.VARYING, 'VARCHAR'),
    (SqlType.SHORT, 'SMALLINT'),
    (SqlType.LONG, 'INT'),
    (SqlType.INT64, 'BIGINT'),
    (SqlType.INT128, 'INT128'),
    (SqlType.TIMESTAMP_TZ, 'TIMESTAMP_TZ'),
    (SqlType.BLOB, 'BLOB'),
])
def test_type_name(code, name):
    assert type_name(code) == name


def test_type_name_unknown():
    """Unknown codes map to the sentinel instead of failing"""
    assert type_name(12345) == UNKNOWN
    assert type_name(SqlType.NULL) == UNKNOWN


def test_is_variable_width():
    assert is_variable_width(SqlType.VARYING)
    assert not is_variable_width(SqlType.TEXT)
    assert not is_variable_width(SqlType.LONG)
    assert not is_variable_width(9999)


def test_has_declared_length():
    assert has_declared_length(SqlType.TEXT)
    assert has_declared_length(SqlType.VARYING)
    assert not has_declared_length(SqlType.BLOB)


def test_widths():
    assert type_width(SqlType.BOOLEAN) == 1
    assert type_width(SqlType.SHORT) == 2
    assert type_width(SqlType.DATE) == 4
    assert type_width(SqlType.TIMESTAMP) == 8
    assert type_width(SqlType.TIME_TZ) == 8
    assert type_width(SqlType.TIMESTAMP_TZ) == 12
    assert type_width(SqlType.BLOB) == 16
    assert type_width(SqlType.TEXT) is None


def test_alignment():
    assert type_alignment(SqlType.TEXT) == 1
    assert type_alignment(SqlType.VARYING) == 2
    assert type_alignment(SqlType.INT128) == 8
    assert type_alignment(SqlType.TIMESTAMP_TZ) == 4
    assert type_alignment(SqlType.LONG) == 4


def test_slot_extent_adds_prefix_for_varying():
    assert slot_extent(SqlType.VARYING, 10) == 12
    assert slot_extent(SqlType.TEXT, 10) == 10
    assert slot_extent(SqlType.LONG, 4) == 4


def test_align():
    assert align(0, 8) == 0
    assert align(5, 4) == 8
    assert align(8, 8) == 8
    assert align(3, 1) == 3


def test_strip_nullable():
    assert strip_nullable(SqlType.LONG | 1) == (SqlType.LONG, True)
    assert strip_nullable(SqlType.LONG) == (SqlType.LONG, False)


def test_as_sql_type():
    assert as_sql_type(496) is SqlType.LONG
    assert as_sql_type(12344) == 12344


def test_python_types():
    assert python_types[SqlType.VARYING] is str
    assert python_types[SqlType.TIMESTAMP_TZ] is datetime.datetime
    assert python_types[SqlType.DATE] is datetime.date


if __name__ == '__main__':
    __import__('pytest').main([__file__])
