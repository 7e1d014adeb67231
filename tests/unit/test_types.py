import datetime
import decimal
import io

import numpy as np
import pytest
from dbmanager.types import BLOB, DOUBLE, INTEGER, STRING, UNTYPED
from dbmanager.types import BindParameter, ParameterBuffer, determine_type
from dbmanager.types import to_driver_value


@pytest.mark.parametrize(('value', 'expected'), [
    (None, STRING),
    ('text', STRING),
    ('', STRING),
    (True, INTEGER),
    (42, INTEGER),
    (np.int64(7), INTEGER),
    (b'\x00\x01', BLOB),
    (bytearray(b'x'), BLOB),
    (memoryview(b'x'), BLOB),
    (io.BytesIO(b'stream'), BLOB),
    (1.5, DOUBLE),
    (np.float32(2.5), DOUBLE),
    (decimal.Decimal('1.10'), UNTYPED),
    (datetime.date(2025, 1, 1), UNTYPED),
])
def test_determine_type(value, expected):
    assert determine_type(value) == expected


def test_buffer_keeps_bind_order_and_tags():
    buf = ParameterBuffer(['a', 1])
    buf.bind(2.0)
    buf.bind_all([None, b'x'])
    assert buf.values == ['a', 1, 2.0, None, b'x']
    assert buf.types == 'sidsb'
    assert len(buf) == 5


def test_extend_keeps_existing_tags():
    inner = ParameterBuffer([1, 'x'])
    outer = ParameterBuffer([3.5])
    outer.extend(inner)
    assert outer.types == 'dis'
    assert list(outer)[1] == BindParameter(1, INTEGER)


def test_driver_values_read_streams_and_unwrap_numpy():
    buf = ParameterBuffer([io.BytesIO(b'payload'), np.int64(3), np.float64(0.5), 'x'])
    values = buf.driver_values()
    assert values == (b'payload', 3, 0.5, 'x')
    assert type(values[1]) is int
    assert type(values[2]) is float


def test_plain_values_pass_through():
    when = datetime.datetime(2025, 3, 1, 12, 0)
    assert to_driver_value(BindParameter(when, UNTYPED)) is when


def test_repr_shows_types_and_values():
    assert repr(ParameterBuffer([1])) == "ParameterBuffer(types='i', values=[1])"
