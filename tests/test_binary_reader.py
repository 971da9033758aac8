"""
Tests for the bounds-checked binary cursor and the error taxonomy.
"""

import os
import struct
import sys

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from map_builder.binary_reader import BinaryReader, decode_legacy_string
from map_builder.errors import MapFormatError, TruncatedDataError

from map_fixtures import collect_tests, run_suite


def test_primitive_reads():
    data = struct.pack('<BHhiIf', 0xAB, 0xBEEF, -2, -100000, 0xDEADBEEF, 0.5)
    r = BinaryReader(data)
    assert r.read_u8() == 0xAB
    assert r.read_u16() == 0xBEEF
    assert r.read_i16() == -2
    assert r.read_i32() == -100000
    assert r.read_u32() == 0xDEADBEEF
    assert r.read_f32() == 0.5
    assert r.remaining == 0, "cursor should be at end, {} left".format(
        r.remaining)


def test_f32_reinterprets_raw_bits():
    r = BinaryReader(struct.pack('<I', 0x3F800000))
    assert r.read_f32() == 1.0


def test_vec3_and_floats():
    r = BinaryReader(struct.pack('<5f', 1.0, 2.0, 3.0, 4.0, 5.0))
    assert r.read_vec3() == (1.0, 2.0, 3.0)
    assert r.read_floats(2) == (4.0, 5.0)


def test_truncated_read_reports_section_and_offset():
    r = BinaryReader(b'\x01\x02\x03\x04')
    r.read_u8()
    r.section = 'cells'
    try:
        r.read_i32()
        assert False, "expected TruncatedDataError"
    except TruncatedDataError as e:
        assert e.section == 'cells'
        assert e.offset == 1
        assert e.needed == 4
        assert e.available == 3, e.available
        assert 'cells @ 0x1' in str(e), str(e)
    # cursor did not move on failure
    assert r.tell() == 1


def test_truncated_is_value_error():
    r = BinaryReader(b'')
    try:
        r.read_u8()
        assert False, "expected TruncatedDataError"
    except ValueError as e:
        assert isinstance(e, MapFormatError)


def test_read_bytes_and_skip_are_bounded():
    r = BinaryReader(b'abcdef')
    assert r.read_bytes(2) == b'ab'
    r.skip(2)
    assert r.read_bytes(2) == b'ef'
    for fn in (lambda: r.read_bytes(1), lambda: r.skip(1),
               lambda: r.read_bytes(-1)):
        try:
            fn()
            assert False, "expected TruncatedDataError"
        except TruncatedDataError:
            pass


def test_can_read():
    r = BinaryReader(b'1234')
    assert r.can_read(4)
    assert not r.can_read(5)
    assert not r.can_read(-1)


def test_string_trims_at_nul():
    r = BinaryReader(b'grass.bmp\x00junk\x00\x00' + b'x' * 4)
    assert r.read_string(16) == 'grass.bmp'
    assert r.tell() == 16


def test_string_without_nul_uses_full_width():
    r = BinaryReader(b'abcdefgh')
    assert r.read_string(8) == 'abcdefgh'


def test_string_decodes_legacy_code_page():
    korean = u'유저인터페이스'
    raw = (korean + u'\\bg.bmp').encode('cp949')
    field = raw.ljust(40, b'\x00')
    assert BinaryReader(field).read_string(40) == korean + u'\\bg.bmp'


def test_string_falls_back_to_byte_preserving_decode():
    assert decode_legacy_string(b'\xff\xfe\x00') == u'\xff\xfe'


def main():
    return run_suite("Binary reader", collect_tests(globals()))


if __name__ == '__main__':
    sys.exit(main())
