"""
バイナリリーダーのテスト
"""

import io
import struct

import pytest

from arc.errors import ReaderError
from arc.reader import BinaryReader, Endianness, primitive_size


class TestPrimitives:

    def test_little_and_big_endian(self):
        reader = BinaryReader.le(io.BytesIO(b'\x01\x02\x01\x02'))
        assert reader.read('u16') == 0x0201
        assert reader.read_be('u16') == 0x0102

    def test_big_endian_reader(self):
        reader = BinaryReader.be(io.BytesIO(b'\x00\x00\x01\x00'))
        assert reader.endianness is Endianness.BIG
        assert reader.read('u32') == 256

    def test_signed_and_float(self):
        data = struct.pack('<bhid', -1, -2, -3, 1.5)
        reader = BinaryReader.le(io.BytesIO(data))
        assert reader.read('i8') == -1
        assert reader.read('i16') == -2
        assert reader.read('i32') == -3
        assert reader.read('f64') == 1.5

    def test_128bit_integers(self):
        data = (2 ** 100).to_bytes(16, 'little') + (-5).to_bytes(16, 'little', signed=True)
        reader = BinaryReader.le(io.BytesIO(data))
        assert reader.read('u128') == 2 ** 100
        assert reader.read('i128') == -5

    def test_read_array(self):
        reader = BinaryReader.le(io.BytesIO(struct.pack('<3I', 7, 8, 9)))
        assert reader.read_array('u32', 3) == [7, 8, 9]

    def test_unknown_primitive(self):
        with pytest.raises(ValueError):
            primitive_size('u24')

    def test_short_read_reports_offset(self):
        reader = BinaryReader.le(io.BytesIO(b'\x01\x02\x03'))
        reader.read('u16')
        with pytest.raises(ReaderError) as exc_info:
            reader.read('u32')
        assert exc_info.value.offset == 2


class TestStrings:

    def test_terminated_string(self):
        reader = BinaryReader.le(io.BytesIO(b'abc\0def\0'))
        assert reader.read_terminated_string() == 'abc'
        assert reader.read_string() == 'def'

    def test_terminated_string_without_terminator(self):
        reader = BinaryReader.le(io.BytesIO(b'abc'))
        with pytest.raises(ReaderError):
            reader.read_terminated_string()

    def test_custom_terminator(self):
        reader = BinaryReader.le(io.BytesIO(b'line\nrest'))
        assert reader.read_terminated_string(0x0A) == 'line'

    def test_length_prefixed_string(self):
        text = 'テクスチャ'.encode('utf-8')
        reader = BinaryReader.le(io.BytesIO(struct.pack('<i', len(text)) + text))
        assert reader.read_length_string('i32') == 'テクスチャ'

    def test_negative_length_rejected(self):
        reader = BinaryReader.le(io.BytesIO(struct.pack('<i', -4) + b'abcd'))
        with pytest.raises(ReaderError):
            reader.read_length_string('i32')

    def test_invalid_utf8(self):
        reader = BinaryReader.le(io.BytesIO(b'\xff\xfe\0'))
        with pytest.raises(ReaderError):
            reader.read_string()


class TestSeeking:

    def test_size_keeps_position(self):
        reader = BinaryReader.le(io.BytesIO(b'0123456789'))
        reader.skip(3)
        assert reader.size() == 10
        assert reader.position() == 3
        assert reader.bytes_remaining() == 7

    def test_skip_past_end(self):
        reader = BinaryReader.le(io.BytesIO(b'0123'))
        with pytest.raises(ReaderError):
            reader.skip(5)

    def test_rewind(self):
        reader = BinaryReader.le(io.BytesIO(b'\x05\x06'))
        reader.read('u8')
        reader.rewind()
        assert reader.read('u8') == 5
