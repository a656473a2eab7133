import pytest
from rowcodec.options import MAX_SEGMENT_SIZE, CodecOptions, iterdict_data_loader


def test_init_defaults():
    """Test default initialization"""
    options = CodecOptions()

    assert options.encoding == 'utf-8'
    assert options.null_indicator == -1
    assert options.segment_size == MAX_SEGMENT_SIZE == 32768
    assert options.info_buffer_size == 16
    assert options.data_loader == iterdict_data_loader

    assert options.cache_layouts is True
    assert options.layout_cache_size == 100
    assert options.layout_cache_ttl == 300


def test_custom_options():
    """Test overriding options"""
    options = CodecOptions(encoding='latin-1', null_indicator=1, segment_size=1024,
                           cache_layouts=False)

    assert options.encoding == 'latin-1'
    assert options.null_indicator == 1
    assert options.segment_size == 1024
    assert options.cache_layouts is False


@pytest.mark.parametrize('kwargs', [
    {'encoding': 'no-such-codec'},
    {'null_indicator': 0},
    {'null_indicator': 2 ** 15},
    {'segment_size': 0},
    {'segment_size': 0x10000},
    {'info_buffer_size': 2},
])
def test_validation(kwargs):
    """Test validation rules"""
    with pytest.raises(ValueError):
        CodecOptions(**kwargs)


if __name__ == '__main__':
    __import__('pytest').main([__file__])
